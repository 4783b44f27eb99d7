"""Booking router - Chef checkout and manager booking decisions"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ...auth import require_chef, require_manager
from ...database import get_db
from ...models import User
from .schemas import BookingResponse, BookingStatusUpdate, KitchenBookingCreate
from .service import BookingService

logger = logging.getLogger(__name__)

chef_router = APIRouter(prefix="/chef/bookings", tags=["Bookings"])
manager_router = APIRouter(prefix="/manager/bookings", tags=["Bookings"])


def get_booking_service(db: Session = Depends(get_db)) -> BookingService:
    """Dependency injection for BookingService"""
    return BookingService(db)


# ============================================================================
# CHEF ENDPOINTS
# ============================================================================


@chef_router.post("", response_model=BookingResponse)
async def create_booking(
    data: KitchenBookingCreate,
    current_user: User = Depends(require_chef),
    service: BookingService = Depends(get_booking_service),
):
    """Book a kitchen session; the total is authorised but not captured"""
    return await service.create_kitchen_booking(current_user, data)


@chef_router.get("", response_model=list[BookingResponse])
async def get_my_bookings(
    current_user: User = Depends(require_chef),
    service: BookingService = Depends(get_booking_service),
):
    return service.get_chef_bookings(current_user)


@chef_router.put("/{booking_id}/cancel", response_model=BookingResponse)
async def cancel_booking(
    booking_id: int,
    current_user: User = Depends(require_chef),
    service: BookingService = Depends(get_booking_service),
):
    return service.cancel_chef_booking(current_user, booking_id)


# ============================================================================
# MANAGER ENDPOINTS
# ============================================================================


@manager_router.get("", response_model=list[BookingResponse])
async def get_location_bookings(
    status: Optional[str] = Query(None),
    current_user: User = Depends(require_manager),
    service: BookingService = Depends(get_booking_service),
):
    """Bookings across every kitchen the manager runs"""
    return service.get_manager_bookings(current_user, status)


@manager_router.put("/{booking_id}/status")
async def update_booking_status(
    booking_id: int,
    data: BookingStatusUpdate,
    current_user: User = Depends(require_manager),
    service: BookingService = Depends(get_booking_service),
):
    """Approve, reject or partially approve a booking and settle its payment"""
    return await service.update_booking_status(current_user, booking_id, data)


@manager_router.get("/{booking_id}/preview")
async def preview_booking_action(
    booking_id: int,
    storage_rejected: list[int] = Query([]),
    equipment_rejected: list[int] = Query([]),
    kitchen_rejected: bool = Query(False),
    current_user: User = Depends(require_manager),
    service: BookingService = Depends(get_booking_service),
):
    """Capture/release or refund figures for a decision before it is made"""
    return service.preview_booking_action(
        current_user, booking_id, storage_rejected, equipment_rejected, kitchen_rejected
    )
