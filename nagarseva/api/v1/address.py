"""Address normalisation endpoint."""

from __future__ import annotations

import structlog
from fastapi import APIRouter
from pydantic import BaseModel, Field

from nagarseva.services.address_parser import is_valid_city_name, normalize

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/address", tags=["address"])


class AddressParseRequest(BaseModel):
    address: str = Field(..., max_length=2000)


class AddressParseResponse(BaseModel):
    city: str
    state: str | None
    pincode: str | None
    full_address: str
    is_known_city: bool


@router.post("/parse", response_model=AddressParseResponse)
async def parse_address(body: AddressParseRequest) -> AddressParseResponse:
    """Extract city, state and pincode from free-text address."""
    parsed = normalize(body.address)
    return AddressParseResponse(
        city=parsed.city,
        state=parsed.state,
        pincode=parsed.pincode,
        full_address=parsed.full_address,
        is_known_city=is_valid_city_name(parsed.city),
    )
