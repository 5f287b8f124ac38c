"""HTTP endpoints for starting, listing and purging cranks."""

from http import HTTPStatus
from typing import List

from fastapi import APIRouter, Depends, Request, Response
from fastapi.exceptions import HTTPException

from ..exceptions import (
    AlreadyRunningError,
    DuplicateMarketError,
    MarketNotFoundError,
    SignalFailedError,
    SpawnFailedError,
)
from ..logging_config import get_logger
from ..models import CrankRequest, Market
from ..supervisor.registry import RegistryGuard

logger = get_logger(__name__)

router = APIRouter(tags=["cranks"])


def get_guard(request: Request) -> RegistryGuard:
    """Dependency returning the registry guard stored on the app."""
    return request.app.state.registry_guard


@router.post("/start_crank", summary="Start a crank for a market")
async def start_crank(
    req: CrankRequest, guard: RegistryGuard = Depends(get_guard)
) -> Response:
    try:
        await guard.add_market(req.market_info, req.crank_duration)
    except (DuplicateMarketError, AlreadyRunningError) as e:
        logger.warning(f"Rejected start_crank: {e}")
        raise HTTPException(status_code=HTTPStatus.CONFLICT.value, detail=str(e))
    except SpawnFailedError as e:
        logger.error(f"start_crank failed: {e}")
        raise HTTPException(
            status_code=HTTPStatus.INTERNAL_SERVER_ERROR.value, detail=str(e)
        )
    return Response(status_code=HTTPStatus.OK.value)


@router.get(
    "/active_cranks",
    response_model=List[Market],
    response_model_by_alias=True,
    summary="List markets with an active crank",
)
async def active_cranks(guard: RegistryGuard = Depends(get_guard)) -> List[Market]:
    return await guard.list_markets()


@router.get("/logs/{market_id}", summary="Crank logs (not implemented)")
async def logs(market_id: str) -> Response:
    raise HTTPException(
        status_code=HTTPStatus.NOT_IMPLEMENTED.value,
        detail=f"log access for market {market_id} is not implemented",
    )


@router.get(
    "/purge/{market_id}",
    response_model=Market,
    response_model_by_alias=True,
    summary="Halt and remove the crank for a market",
)
async def purge(market_id: str, guard: RegistryGuard = Depends(get_guard)) -> Market:
    try:
        return await guard.purge_market(market_id)
    except MarketNotFoundError as e:
        raise HTTPException(status_code=HTTPStatus.NOT_FOUND.value, detail=str(e))
    except SignalFailedError as e:
        logger.error(f"purge failed: {e}")
        raise HTTPException(
            status_code=HTTPStatus.INTERNAL_SERVER_ERROR.value, detail=str(e)
        )
