from fastapi import APIRouter, Depends

from goalsgoals.dependencies import get_quota_tracker
from goalsgoals.models.quota import QuotaAnalytics, QuotaState, QuotaStatus
from goalsgoals.services.auth_service import get_admin_username
from goalsgoals.services.quota_service import QuotaTracker

router = APIRouter(prefix="/api/rate-limit", tags=["rate-limit"])


@router.get("/status", response_model=QuotaStatus)
async def rate_limit_status(tracker: QuotaTracker = Depends(get_quota_tracker)):
    """Current weekly provider budget. Public."""
    return await tracker.get_status()


@router.get("/analytics", response_model=QuotaAnalytics)
async def rate_limit_analytics(
    admin: str = Depends(get_admin_username),
    tracker: QuotaTracker = Depends(get_quota_tracker),
):
    return await tracker.get_analytics()


@router.post("/reset")
async def rate_limit_reset(
    admin: str = Depends(get_admin_username),
    tracker: QuotaTracker = Depends(get_quota_tracker),
):
    """Clear all tracked calls. Testing and recovery only."""
    state: QuotaState = await tracker.reset()
    return {
        "success": True,
        "message": "Rate limiter reset successfully",
        "data": state.model_dump(mode="json"),
    }
