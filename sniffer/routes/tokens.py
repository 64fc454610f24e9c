from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException

from sniffer.errors import AggregateError
from sniffer.models import TokenRecord
from sniffer.routes import get_aggregator
from sniffer.services.data_aggregator import DataAggregator

router = APIRouter(prefix="/api/tokens", tags=["tokens"])


@router.get(
    "",
    response_model=List[TokenRecord],
    summary="Tokens de l'écosystème (recherche, tendance ou liste large)",
)
async def list_tokens(
    search: Optional[str] = None,
    trending: bool = False,
    force_refresh: bool = False,
    aggregator: DataAggregator = Depends(get_aggregator),
):
    """
    Exemples :
    GET /api/tokens
    GET /api/tokens?search=clanker
    GET /api/tokens?trending=true
    """
    try:
        return await aggregator.get_token_list(
            search=search, trending=trending, force_refresh=force_refresh
        )
    except AggregateError as e:
        raise HTTPException(status_code=502, detail={"error": str(e), "failures": e.failures})
