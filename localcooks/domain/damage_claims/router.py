"""Damage claim router - Manager filing, chef response and admin review"""

import logging

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ...auth import get_current_user, require_admin, require_chef, require_manager
from ...database import get_db
from ...models import User
from ...rate_limiter import create_rate_limiter
from .limits import DamageClaimLimitsService
from .schemas import (
    AdminDecision,
    ChefResponse,
    ClaimRefundRequest,
    ClaimResolveRequest,
    DamageClaimCreate,
    DamageClaimLimitsUpdate,
    DamageClaimUpdate,
    EvidenceCreate,
)
from .service import DamageClaimService

logger = logging.getLogger(__name__)

manager_router = APIRouter(prefix="/manager/damage-claims", tags=["Damage Claims"])
chef_router = APIRouter(prefix="/chef/damage-claims", tags=["Damage Claims"])
admin_router = APIRouter(prefix="/admin", tags=["Damage Claims"])
router = APIRouter(prefix="/damage-claims", tags=["Damage Claims"])

claim_rate_limit = create_rate_limiter(limit=20, window_seconds=3600, key_prefix="damage_claims")
evidence_rate_limit = create_rate_limiter(limit=60, window_seconds=3600, key_prefix="damage_claim_evidence")


def get_damage_claim_service(db: Session = Depends(get_db)) -> DamageClaimService:
    """Dependency injection for DamageClaimService"""
    return DamageClaimService(db)


def get_limits_service(db: Session = Depends(get_db)) -> DamageClaimLimitsService:
    return DamageClaimLimitsService(db)


# ============================================================================
# MANAGER ENDPOINTS
# ============================================================================


@manager_router.get("")
async def get_manager_claims(
    include_all: bool = Query(False, alias="includeAll"),
    current_user: User = Depends(require_manager),
    service: DamageClaimService = Depends(get_damage_claim_service),
):
    """Open claims by default, closed ones too with includeAll"""
    return service.get_manager_claims(current_user, include_all)


@manager_router.post("")
async def create_claim(
    data: DamageClaimCreate,
    current_user: User = Depends(require_manager),
    service: DamageClaimService = Depends(get_damage_claim_service),
    _: None = Depends(claim_rate_limit),
):
    return await service.create_damage_claim(current_user, data)


@manager_router.get("/{claim_id}")
async def get_manager_claim(
    claim_id: int,
    current_user: User = Depends(require_manager),
    service: DamageClaimService = Depends(get_damage_claim_service),
):
    return service.get_claim_by_id(current_user, claim_id)


@manager_router.put("/{claim_id}")
async def update_claim(
    claim_id: int,
    data: DamageClaimUpdate,
    current_user: User = Depends(require_manager),
    service: DamageClaimService = Depends(get_damage_claim_service),
):
    return service.update_draft_claim(current_user, claim_id, data)


@manager_router.delete("/{claim_id}")
async def delete_claim(
    claim_id: int,
    current_user: User = Depends(require_manager),
    service: DamageClaimService = Depends(get_damage_claim_service),
):
    return service.delete_draft_claim(current_user, claim_id)


@manager_router.post("/{claim_id}/submit")
async def submit_claim(
    claim_id: int,
    current_user: User = Depends(require_manager),
    service: DamageClaimService = Depends(get_damage_claim_service),
):
    """Send a draft to the chef and start the response deadline"""
    return await service.submit_claim(current_user, claim_id)


@manager_router.post("/{claim_id}/evidence")
async def add_manager_evidence(
    claim_id: int,
    data: EvidenceCreate,
    current_user: User = Depends(require_manager),
    service: DamageClaimService = Depends(get_damage_claim_service),
    _: None = Depends(evidence_rate_limit),
):
    return service.add_evidence(current_user, claim_id, data)


@manager_router.delete("/{claim_id}/evidence/{evidence_id}")
async def remove_evidence(
    claim_id: int,
    evidence_id: int,
    current_user: User = Depends(require_manager),
    service: DamageClaimService = Depends(get_damage_claim_service),
):
    return service.remove_evidence(current_user, claim_id, evidence_id)


@manager_router.post("/{claim_id}/charge")
async def retry_charge(
    claim_id: int,
    current_user: User = Depends(require_manager),
    service: DamageClaimService = Depends(get_damage_claim_service),
):
    """Retry a charge that failed"""
    return await service.retry_charge(current_user, claim_id)


@manager_router.post("/{claim_id}/resolve")
async def resolve_claim(
    claim_id: int,
    data: ClaimResolveRequest,
    current_user: User = Depends(require_manager),
    service: DamageClaimService = Depends(get_damage_claim_service),
):
    return service.resolve_claim(current_user, claim_id, data.resolutionType, data.notes)


# ============================================================================
# CHEF ENDPOINTS
# ============================================================================


@chef_router.get("")
async def get_chef_claims(
    current_user: User = Depends(require_chef),
    service: DamageClaimService = Depends(get_damage_claim_service),
):
    return service.get_chef_claims(current_user)


@chef_router.get("/unpaid")
async def get_unpaid_claims(
    current_user: User = Depends(require_chef),
    service: DamageClaimService = Depends(get_damage_claim_service),
):
    """Approved claims the chef still owes money on"""
    return service.get_chef_unpaid_claims(current_user.id)


@chef_router.get("/{claim_id}")
async def get_chef_claim(
    claim_id: int,
    current_user: User = Depends(require_chef),
    service: DamageClaimService = Depends(get_damage_claim_service),
):
    return service.get_claim_by_id(current_user, claim_id)


@chef_router.post("/{claim_id}/respond")
async def respond_to_claim(
    claim_id: int,
    data: ChefResponse,
    current_user: User = Depends(require_chef),
    service: DamageClaimService = Depends(get_damage_claim_service),
):
    """Accept or dispute a submitted claim"""
    return await service.chef_respond(current_user, claim_id, data.action, data.response)


@chef_router.post("/{claim_id}/evidence")
async def add_chef_evidence(
    claim_id: int,
    data: EvidenceCreate,
    current_user: User = Depends(require_chef),
    service: DamageClaimService = Depends(get_damage_claim_service),
    _: None = Depends(evidence_rate_limit),
):
    return service.add_evidence(current_user, claim_id, data)


# ============================================================================
# ADMIN ENDPOINTS
# ============================================================================


@admin_router.get("/damage-claims")
async def get_disputed_claims(
    current_user: User = Depends(require_admin),
    service: DamageClaimService = Depends(get_damage_claim_service),
):
    """Claims waiting for an admin decision"""
    return service.get_disputed_claims()


@admin_router.post("/damage-claims/{claim_id}/decision")
async def decide_claim(
    claim_id: int,
    data: AdminDecision,
    current_user: User = Depends(require_admin),
    service: DamageClaimService = Depends(get_damage_claim_service),
):
    return await service.admin_decision(current_user, claim_id, data)


@admin_router.post("/damage-claims/{claim_id}/refund")
async def refund_claim(
    claim_id: int,
    data: ClaimRefundRequest,
    current_user: User = Depends(require_admin),
    service: DamageClaimService = Depends(get_damage_claim_service),
):
    return await service.refund_damage_claim(current_user, claim_id, data.amountCents, data.reason)


@admin_router.get("/damage-claim-limits")
async def get_damage_claim_limits(
    current_user: User = Depends(require_admin),
    limits: DamageClaimLimitsService = Depends(get_limits_service),
):
    return {**limits.get_limits(), **limits.get_storage_checkout_settings()}


@admin_router.put("/damage-claim-limits")
async def update_damage_claim_limits(
    data: DamageClaimLimitsUpdate,
    current_user: User = Depends(require_admin),
    limits: DamageClaimLimitsService = Depends(get_limits_service),
):
    return limits.update_limits(current_user, data.model_dump(exclude_none=True))


# ============================================================================
# SHARED
# ============================================================================


@router.get("/{claim_id}/history")
async def get_claim_history(
    claim_id: int,
    current_user: User = Depends(get_current_user),
    service: DamageClaimService = Depends(get_damage_claim_service),
):
    """Audit trail, visible to both parties and admins"""
    return service.get_claim_history(current_user, claim_id)
