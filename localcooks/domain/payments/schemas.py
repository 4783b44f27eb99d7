"""Payment domain schemas - Pydantic models for validation"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field


class TransactionResponse(BaseModel):
    """Schema for a payment transaction in the manager revenue view"""

    id: int
    bookingId: int
    bookingType: str
    amount: int
    baseAmount: int
    serviceFee: int
    managerRevenue: int
    stripeProcessingFee: int
    refundAmount: int
    status: str
    currency: str
    paymentIntentId: Optional[str] = None
    paidAt: Optional[datetime] = None
    createdAt: Optional[datetime] = None


class TransactionRefundRequest(BaseModel):
    """Manager-entered refund, in cents"""

    amount: int = Field(..., gt=0, description="Refund amount in cents")
    reason: Optional[str] = None


class TransactionRefundResponse(BaseModel):
    success: bool = True
    refundId: str
    status: str
    customerReceived: int
    managerDebited: int
    totalRefunded: int
    remainingCharged: int
    maxRefundable: int
    managerRemainingBalance: int
    originalStripeFee: int
    transferReversalId: Optional[str] = None
