from typing import List

from fastapi import APIRouter, Depends, HTTPException, Query

from sniffer.errors import AggregateError, InvalidAddressError
from sniffer.insights import WalletInsights, build_wallet_insights
from sniffer.models import TokenTransferRecord, TransactionRecord, WalletAggregate
from sniffer.routes import get_aggregator
from sniffer.services.data_aggregator import MAX_PAGE_SIZE, DataAggregator

router = APIRouter(prefix="/api/wallet", tags=["wallet"])


@router.get(
    "/{address}",
    response_model=WalletAggregate,
    summary="Profil d'un wallet : solde, transactions, soldes de tokens",
)
async def get_wallet(
    address: str,
    force_refresh: bool = False,
    aggregator: DataAggregator = Depends(get_aggregator),
):
    """
    Exemple :
    GET /api/wallet/0x4200000000000000000000000000000000000006?force_refresh=true

    `partial=true` signifie que certaines sections (voir `failed_sources`) sont indisponibles.
    """
    try:
        return await aggregator.get_wallet_aggregate(address, force_refresh=force_refresh)
    except InvalidAddressError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except AggregateError as e:
        raise HTTPException(status_code=502, detail={"error": str(e), "failures": e.failures})


@router.get(
    "/{address}/insights",
    response_model=WalletInsights,
    summary="Indicateurs dérivés du profil d'un wallet",
)
async def get_wallet_insights(
    address: str,
    force_refresh: bool = False,
    aggregator: DataAggregator = Depends(get_aggregator),
):
    try:
        aggregate = await aggregator.get_wallet_aggregate(address, force_refresh=force_refresh)
    except InvalidAddressError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except AggregateError as e:
        raise HTTPException(status_code=502, detail={"error": str(e), "failures": e.failures})
    return build_wallet_insights(aggregate)


@router.get(
    "/{address}/transactions",
    response_model=List[TransactionRecord],
    summary="Historique paginé des transactions d'un wallet",
)
async def get_wallet_transactions(
    address: str,
    page: int = Query(1, ge=1),
    offset: int = Query(10, ge=1, le=MAX_PAGE_SIZE),
    aggregator: DataAggregator = Depends(get_aggregator),
):
    try:
        return await aggregator.get_transactions(address, page=page, offset=offset)
    except InvalidAddressError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except AggregateError as e:
        raise HTTPException(status_code=502, detail={"error": str(e), "failures": e.failures})


@router.get(
    "/{address}/transfers",
    response_model=List[TokenTransferRecord],
    summary="Historique paginé des transferts de tokens d'un wallet",
)
async def get_wallet_transfers(
    address: str,
    page: int = Query(1, ge=1),
    offset: int = Query(10, ge=1, le=MAX_PAGE_SIZE),
    aggregator: DataAggregator = Depends(get_aggregator),
):
    """
    Exemple :
    GET /api/wallet/0x4200000000000000000000000000000000000006/transfers?page=2&offset=25
    """
    try:
        return await aggregator.get_token_transfers(address, page=page, offset=offset)
    except InvalidAddressError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except AggregateError as e:
        raise HTTPException(status_code=502, detail={"error": str(e), "failures": e.failures})
