"""Market API endpoints."""

from fastapi import APIRouter, Depends, Request
from typing import List, Optional
from pydantic import BaseModel, Field

from auth import get_current_user
from market import Marketplace, MarketListing

router = APIRouter(
    prefix="/market",
    tags=["Market"]
)

def get_market(request: Request) -> Marketplace:
    """FastAPI dependency returning the running marketplace."""
    return request.app.state.marketplace

# Model definitions
class OfferRequest(BaseModel):
    """Request model for creating or changing an offer."""
    price: int = Field(gt=0)
    expiry: int = Field(default=0, ge=0)
    restricted_buyer: Optional[str] = None
    service_fee: int = Field(default=0, ge=0)

class CreateOfferRequest(OfferRequest):
    asset_id: int = Field(ge=0)

class ServiceFeeRequest(BaseModel):
    """Request model for operations that only carry the service fee."""
    service_fee: int = Field(default=0, ge=0)

class PurchaseRequest(BaseModel):
    """Request model for buying a listing."""
    amount: int = Field(ge=0)

class QuoteResponse(BaseModel):
    price: int
    fee: int
    total: int

class ActiveListingsResponse(BaseModel):
    asset_ids: List[int]

""" Public Endpoints - No Authentication Required """
@router.get("/listings", response_model=ActiveListingsResponse)
async def list_active(market: Marketplace = Depends(get_market)):
    """Asset ids currently for sale."""
    return {"asset_ids": await market.list_active()}

@router.get("/listings/all", response_model=List[MarketListing])
async def list_all(market: Marketplace = Depends(get_market)):
    """Every listing ever created, sold and retired ones included."""
    return await market.list_all_detailed()

@router.get("/listings/{asset_id}", response_model=MarketListing)
async def get_listing(asset_id: int, market: Marketplace = Depends(get_market)):
    """Get one listing by asset id."""
    return await market.get_listing(asset_id)

@router.get("/listings/{asset_id}/quote", response_model=QuoteResponse)
async def quote_listing(asset_id: int, market: Marketplace = Depends(get_market)):
    """Exact amount a buyer must send for a listing."""
    listing = await market.get_listing(asset_id)
    total, fee = await market.quote_total(listing.price)
    return {"price": listing.price, "fee": fee, "total": total}

""" Protected Endpoints - Bearer Token Required """
@router.post("/offers", response_model=MarketListing, status_code=201)
async def create_offer(
    request: CreateOfferRequest,
    caller: str = Depends(get_current_user),
    market: Marketplace = Depends(get_market)
):
    """List an asset owned by the caller."""
    return await market.create_offer(
        caller,
        request.asset_id,
        request.price,
        request.expiry,
        request.restricted_buyer,
        service_fee=request.service_fee
    )

@router.put("/offers/{asset_id}", response_model=MarketListing)
async def change_offer(
    asset_id: int,
    request: OfferRequest,
    caller: str = Depends(get_current_user),
    market: Marketplace = Depends(get_market)
):
    """Change price, expiry and restricted buyer of the caller's offer."""
    return await market.change_offer(
        caller,
        asset_id,
        request.price,
        request.expiry,
        request.restricted_buyer,
        service_fee=request.service_fee
    )

@router.post("/offers/{asset_id}/retire", response_model=MarketListing)
async def retire_offer(
    asset_id: int,
    request: ServiceFeeRequest,
    caller: str = Depends(get_current_user),
    market: Marketplace = Depends(get_market)
):
    return await market.retire_offer(caller, asset_id, service_fee=request.service_fee)

@router.post("/offers/{asset_id}/reoffer", response_model=MarketListing)
async def re_offer(
    asset_id: int,
    request: ServiceFeeRequest,
    caller: str = Depends(get_current_user),
    market: Marketplace = Depends(get_market)
):
    return await market.re_offer(caller, asset_id, service_fee=request.service_fee)

@router.post("/offers/{asset_id}/return", response_model=MarketListing)
async def return_card(
    asset_id: int,
    request: ServiceFeeRequest,
    caller: str = Depends(get_current_user),
    market: Marketplace = Depends(get_market)
):
    """Retire an offer and give the asset back to its seller."""
    return await market.return_card(caller, asset_id, service_fee=request.service_fee)

@router.post("/offers/{asset_id}/buy", response_model=MarketListing)
async def buy(
    asset_id: int,
    request: PurchaseRequest,
    caller: str = Depends(get_current_user),
    market: Marketplace = Depends(get_market)
):
    """Buy an offer; ``amount`` must equal the quoted total exactly."""
    return await market.sell_offer(caller, asset_id, request.amount)
