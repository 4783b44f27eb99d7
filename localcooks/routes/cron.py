"""
Cron endpoints for external schedulers

Same jobs the ARQ worker runs, reachable over HTTP with
`Authorization: Bearer <CRON_SECRET>`.
"""

import hmac
import logging
from typing import Optional

from fastapi import APIRouter, Depends, Header, HTTPException
from sqlalchemy.orm import Session

from .. import config
from ..database import get_db
from ..domain.bookings.service import BookingService
from ..domain.damage_claims.service import DamageClaimService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/cron", tags=["Cron"])


def verify_cron_secret(authorization: Optional[str] = Header(None)) -> None:
    """Reject requests that do not carry the shared cron secret"""
    expected = config.CRON_SECRET
    if not expected:
        logger.error("❌ CRON_SECRET is not configured, rejecting cron request")
        raise HTTPException(status_code=503, detail="Cron endpoints are not configured")

    token = ""
    if authorization and authorization.startswith("Bearer "):
        token = authorization[len("Bearer ") :]
    if not token or not hmac.compare_digest(token, expected):
        logger.warning("⚠️ Cron request with invalid secret")
        raise HTTPException(status_code=401, detail="Invalid cron secret")


@router.post("/capture-payments")
async def capture_payments(
    _: None = Depends(verify_cron_secret),
    db: Session = Depends(get_db),
):
    """Capture authorizations whose cancellation window has closed"""
    logger.info("⏰ Cron: capturing due payments")
    return BookingService(db).capture_due_payments()


@router.post("/process-expired-claims")
async def process_expired_claims(
    _: None = Depends(verify_cron_secret),
    db: Session = Depends(get_db),
):
    logger.info("⏰ Cron: processing expired damage claims")
    results = await DamageClaimService(db).process_expired_claims()
    return {"processed": len(results), "results": results}
