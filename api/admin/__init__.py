"""Administrative API endpoints: pause gate, fees, roles and upgrades."""

from fastapi import APIRouter, Depends
from typing import List, Optional
from pydantic import BaseModel, Field

from auth import get_current_user
from market import Marketplace, FeePolicy
from ..market import get_market

router = APIRouter(
    prefix="/admin",
    tags=["Administration"]
)

class FeePercentageRequest(BaseModel):
    percentage: int

class FeeBoundsRequest(BaseModel):
    min_percentage: int
    max_percentage: int

class FeeReceiversRequest(BaseModel):
    receiver_a: str
    receiver_b: str
    receiver_a_share: Optional[int] = Field(default=None, ge=0, le=100)

class ServiceFeeRequest(BaseModel):
    flat_service_fee: int = Field(ge=0)

class RoleRequest(BaseModel):
    role: str
    principal: str

class UpgradeRequest(BaseModel):
    implementation: str

class MarketStatus(BaseModel):
    paused: bool
    implementation: str
    service_fees_collected: int
    active_listings: int

@router.get("/status", response_model=MarketStatus)
async def market_status(market: Marketplace = Depends(get_market)):
    return {
        "paused": await market.is_paused(),
        "implementation": market.implementation,
        "service_fees_collected": await market.service_fees_collected(),
        "active_listings": len(await market.list_active())
    }

@router.get("/fees", response_model=FeePolicy)
async def get_fees(market: Marketplace = Depends(get_market)):
    return await market.get_fee_policy()

@router.post("/pause", status_code=204)
async def pause(caller: str = Depends(get_current_user), market: Marketplace = Depends(get_market)):
    await market.pause(caller)

@router.post("/unpause", status_code=204)
async def unpause(caller: str = Depends(get_current_user), market: Marketplace = Depends(get_market)):
    await market.unpause(caller)

@router.put("/fees/percentage", response_model=FeePolicy)
async def set_fee_percentage(
    request: FeePercentageRequest,
    caller: str = Depends(get_current_user),
    market: Marketplace = Depends(get_market)
):
    return await market.set_fee_percentage(caller, request.percentage)

@router.put("/fees/bounds", response_model=FeePolicy)
async def set_fee_bounds(
    request: FeeBoundsRequest,
    caller: str = Depends(get_current_user),
    market: Marketplace = Depends(get_market)
):
    return await market.set_fee_bounds(caller, request.min_percentage, request.max_percentage)

@router.put("/fees/receivers", response_model=FeePolicy)
async def set_fee_receivers(
    request: FeeReceiversRequest,
    caller: str = Depends(get_current_user),
    market: Marketplace = Depends(get_market)
):
    return await market.set_fee_receivers(
        caller, request.receiver_a, request.receiver_b, request.receiver_a_share
    )

@router.put("/fees/service", response_model=FeePolicy)
async def set_service_fee(
    request: ServiceFeeRequest,
    caller: str = Depends(get_current_user),
    market: Marketplace = Depends(get_market)
):
    return await market.set_service_fee(caller, request.flat_service_fee)

@router.get("/roles/{role}", response_model=List[str])
async def role_members(role: str, market: Marketplace = Depends(get_market)):
    return sorted(await market.access.role_members(role))

@router.post("/roles/grant")
async def grant_role(
    request: RoleRequest,
    caller: str = Depends(get_current_user),
    market: Marketplace = Depends(get_market)
):
    granted = await market.grant_role(caller, request.role, request.principal)
    return {"changed": granted}

@router.post("/roles/revoke")
async def revoke_role(
    request: RoleRequest,
    caller: str = Depends(get_current_user),
    market: Marketplace = Depends(get_market)
):
    revoked = await market.revoke_role(caller, request.role, request.principal)
    return {"changed": revoked}

@router.post("/upgrade")
async def upgrade(
    request: UpgradeRequest,
    caller: str = Depends(get_current_user),
    market: Marketplace = Depends(get_market)
):
    """Swap the active logic version; storage is left untouched."""
    await market.upgrade_to(caller, request.implementation)
    return {"implementation": market.implementation}

@router.post("/roles/renounce")
async def renounce_role(
    request: RoleRequest,
    caller: str = Depends(get_current_user),
    market: Marketplace = Depends(get_market)
):
    """Give up one of the caller's own roles; ``principal`` must be the caller."""
    renounced = await market.access.renounce_role(caller, request.role, request.principal)
    return {"changed": renounced}
