"""Public business settings endpoints.

Provides:
- GET /api/settings/tax-rate - current sales tax rate
"""

from decimal import Decimal
from typing import Annotated

from fastapi import APIRouter, Depends, Query

from bakery_api.api.schemas import TaxRateResponse
from bakery_api.application.business_settings import (
    BusinessSettingsService,
    get_business_settings_service,
)

router = APIRouter(prefix="/api/settings", tags=["Settings"])


def get_service() -> BusinessSettingsService:
    """Get business settings service."""
    return get_business_settings_service()


@router.get(
    "/tax-rate",
    response_model=TaxRateResponse,
    summary="Get tax rate",
    description="Sales tax rate, optionally for a delivery zone.",
)
async def get_tax_rate(
    service: Annotated[BusinessSettingsService, Depends(get_service)],
    zone_id: Annotated[str | None, Query(description="Delivery zone")] = None,
) -> TaxRateResponse:
    """Get the sales tax rate."""
    rate = await service.get_tax_rate(zone_id)
    return TaxRateResponse(
        rate=float(rate),
        percentage=float((rate * Decimal(100)).normalize()),
    )
