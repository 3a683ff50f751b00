"""
Seeder Routes

Manual trigger for a catalog seeding run. The run executes as a background
task; a trigger while a run is in progress is rejected with 409 and does not
start a second run.
"""

from fastapi import APIRouter, Depends, Query, status
from fastapi.responses import JSONResponse

from .dependencies import get_seeding_orchestrator
from .models import SeedingResponse, SeedingStatusResponse
from ..config import settings
from ..seeding.orchestrator import SeedingOrchestrator, SeedingStatus

router = APIRouter(prefix="/seeder", tags=["seeder"])


@router.post(
    "/seed",
    response_model=SeedingResponse,
    status_code=status.HTTP_202_ACCEPTED,
    responses={status.HTTP_409_CONFLICT: {"model": SeedingResponse}},
)
async def seed(
    max_items: int = Query(default=settings.seed_max_items, ge=1, le=10000),
    orchestrator: SeedingOrchestrator = Depends(get_seeding_orchestrator),
):
    outcome = orchestrator.start(max_items)

    if outcome is SeedingStatus.REJECTED:
        body = SeedingResponse(
            status=outcome.value,
            message="A seeding run is already in progress",
        )
        return JSONResponse(status_code=status.HTTP_409_CONFLICT, content=body.model_dump())

    return SeedingResponse(
        status=outcome.value,
        message=f"Seeding started for up to {max_items} items",
    )


@router.get("/status", response_model=SeedingStatusResponse)
def seeding_status(
    orchestrator: SeedingOrchestrator = Depends(get_seeding_orchestrator),
) -> SeedingStatusResponse:
    last = orchestrator.last_stats
    return SeedingStatusResponse(
        state=orchestrator.state.value,
        last_run=last.as_dict() if last is not None else None,
    )
