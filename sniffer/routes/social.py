from typing import List

from fastapi import APIRouter, Depends, HTTPException

from sniffer.errors import AggregateError, InvalidAddressError
from sniffer.models import SocialProfile
from sniffer.routes import get_aggregator
from sniffer.services.data_aggregator import DataAggregator

router = APIRouter(prefix="/api/social", tags=["social"])


@router.get(
    "/{address_or_name}",
    response_model=List[SocialProfile],
    summary="Profils sociaux (ENS, Farcaster, Lens, Zora, Base) d'une adresse ou d'un nom ENS",
)
async def get_social_profiles(
    address_or_name: str,
    force_refresh: bool = False,
    aggregator: DataAggregator = Depends(get_aggregator),
):
    try:
        return await aggregator.get_social_profiles(address_or_name, force_refresh=force_refresh)
    except InvalidAddressError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except AggregateError as e:
        raise HTTPException(status_code=502, detail={"error": str(e), "failures": e.failures})
