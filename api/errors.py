"""Mapping of market errors to HTTP responses."""
import logging

from fastapi import Request, status
from fastapi.responses import JSONResponse

from database.exceptions import DatabaseError
from market.errors import (
    DuplicateAsset, InvalidImplementation, InvalidPrice, InvalidState, MarketError,
    NotFound, OutOfBounds, PaymentMismatch, RestrictedBuyer, SettlementError,
    SystemPaused, Unauthorized,
)

logger = logging.getLogger(__name__)

# First match wins, so subclasses come before their bases
STATUS_CODES = (
    (Unauthorized, status.HTTP_403_FORBIDDEN),
    (RestrictedBuyer, status.HTTP_403_FORBIDDEN),
    (NotFound, status.HTTP_404_NOT_FOUND),
    (DuplicateAsset, status.HTTP_409_CONFLICT),
    (InvalidState, status.HTTP_409_CONFLICT),
    (PaymentMismatch, status.HTTP_402_PAYMENT_REQUIRED),
    (InvalidPrice, status.HTTP_400_BAD_REQUEST),
    (OutOfBounds, status.HTTP_400_BAD_REQUEST),
    (InvalidImplementation, status.HTTP_400_BAD_REQUEST),
    (SystemPaused, status.HTTP_503_SERVICE_UNAVAILABLE),
    (SettlementError, status.HTTP_502_BAD_GATEWAY),
)

def status_for(error: MarketError) -> int:
    for error_type, status_code in STATUS_CODES:
        if isinstance(error, error_type):
            return status_code
    return status.HTTP_400_BAD_REQUEST

async def market_error_handler(request: Request, exc: MarketError) -> JSONResponse:
    return JSONResponse(
        status_code=status_for(exc),
        content={'code': exc.code, 'detail': exc.reason}
    )

async def database_error_handler(request: Request, exc: DatabaseError) -> JSONResponse:
    logger.error(f"Storage failure on {request.url.path}: {exc}")
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={'code': 'STORAGE_ERROR', 'detail': 'Storage failure'}
    )
