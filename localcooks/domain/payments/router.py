"""Payment router - Manager revenue, refunds and Stripe webhooks"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from sqlalchemy.orm import Session

from ...auth import require_manager
from ...database import get_db
from ...models import User
from ...rate_limiter import create_rate_limiter
from .schemas import TransactionRefundRequest, TransactionRefundResponse, TransactionResponse
from .service import PaymentService
from .stripe_service import PaymentProviderError, StripeService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/manager/revenue", tags=["Payments"])
webhooks_router = APIRouter(prefix="/webhooks", tags=["Webhooks"])

webhook_rate_limit = create_rate_limiter(limit=300, window_seconds=60, key_prefix="stripe_webhook", use_ip=False)


def get_payment_service(db: Session = Depends(get_db)) -> PaymentService:
    """Dependency injection for PaymentService"""
    return PaymentService(db)


@router.get("/transactions", response_model=list[TransactionResponse])
async def get_transactions(
    status: Optional[str] = Query(None),
    current_user: User = Depends(require_manager),
    service: PaymentService = Depends(get_payment_service),
):
    """List payment transactions for the manager's locations"""
    return service.get_manager_transactions(current_user, status)


@router.post("/transactions/{transaction_id}/refund", response_model=TransactionRefundResponse)
async def refund_transaction(
    transaction_id: int,
    data: TransactionRefundRequest,
    current_user: User = Depends(require_manager),
    service: PaymentService = Depends(get_payment_service),
):
    """Refund part or all of a captured transaction (capped at the manager's remaining balance)"""
    return service.refund_transaction(current_user, transaction_id, data.amount, data.reason)


@webhooks_router.post("/stripe")
async def stripe_webhook(
    request: Request,
    service: PaymentService = Depends(get_payment_service),
    _: None = Depends(webhook_rate_limit),
):
    """Stripe webhook endpoint (signature verified)"""
    payload = await request.body()
    signature = request.headers.get("stripe-signature")
    try:
        event = StripeService().construct_webhook_event(payload, signature)
    except PaymentProviderError as e:
        logger.warning(f"⚠️ Rejected Stripe webhook: {e}")
        raise HTTPException(status_code=400, detail=str(e)) from e
    return service.handle_webhook_event(event)
