import logging
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from ..auth import get_current_user
from ..models import User

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/users", tags=["Users"])


class UserResponse(BaseModel):
    id: int
    firebase_uid: str
    email: str
    username: Optional[str] = None
    full_name: Optional[str] = None
    role: str
    is_chef: bool
    is_manager: bool
    has_stripe_connect: bool
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


@router.get("/me", response_model=UserResponse)
async def get_me(current_user: User = Depends(get_current_user)):
    """Profile of the signed-in user"""
    return UserResponse(
        id=current_user.id,
        firebase_uid=current_user.firebase_uid,
        email=current_user.email,
        username=current_user.username,
        full_name=current_user.full_name,
        role=current_user.role,
        is_chef=bool(current_user.is_chef),
        is_manager=bool(current_user.is_manager),
        has_stripe_connect=bool(current_user.stripe_connect_account_id),
        created_at=current_user.created_at,
    )
