from typing import Optional

from fastapi import APIRouter, Depends, Query

from goalsgoals.dependencies import get_claim_registry
from goalsgoals.models.claim import (
    ClaimHistoryResponse,
    ClaimListResponse,
    ClaimResponse,
    SweepResponse,
)
from goalsgoals.services.auth_service import get_admin_username, get_current_username
from goalsgoals.services.claim_service import ClaimRegistry
from goalsgoals.workers.claim_sweeper import sweep_finished_claims

router = APIRouter(prefix="/api/matches", tags=["matches"])


@router.post("/{fixture_id}/select", response_model=ClaimResponse)
async def select_match(
    fixture_id: int,
    username: str = Depends(get_current_username),
    registry: ClaimRegistry = Depends(get_claim_registry),
):
    """Claim a not-started fixture. Replaces the caller's previous selection."""
    result = await registry.claim(fixture_id, username)
    return ClaimResponse(
        message=result.message,
        replaced=result.replaced,
        selection=result.claim,
        replaced_prior=result.replaced_prior,
    )


@router.delete("/{fixture_id}/select")
async def unselect_match(
    fixture_id: int,
    username: str = Depends(get_current_username),
    registry: ClaimRegistry = Depends(get_claim_registry),
):
    await registry.release(fixture_id, username)
    return {"success": True, "message": "Match selection removed"}


@router.get("/selections", response_model=ClaimListResponse)
async def list_selections(registry: ClaimRegistry = Depends(get_claim_registry)):
    return ClaimListResponse(selections=await registry.list_active_claims())


@router.post("/archive-finished", response_model=SweepResponse)
async def archive_finished(
    admin: str = Depends(get_admin_username),
    registry: ClaimRegistry = Depends(get_claim_registry),
):
    result = await sweep_finished_claims(registry)
    archived = result.archived_count
    if not result.checked_count:
        message = "No selections to check"
    else:
        message = f"Archived {archived} finished match selection{'' if archived == 1 else 's'}"
    return SweepResponse(
        archived=archived,
        checked=result.checked_count,
        missing_fixture_ids=result.missing_fixture_ids,
        message=message,
    )


@router.get("/history", response_model=ClaimHistoryResponse)
async def selection_history(
    username: Optional[str] = Query(default=None),
    registry: ClaimRegistry = Depends(get_claim_registry),
):
    history = await registry.history(username)
    return ClaimHistoryResponse(count=len(history), history=history)
