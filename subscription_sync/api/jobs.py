"""Scheduled job endpoints, intended for a cron caller.

Implements:
- POST /api/jobs/expiry-sweep - Demote expired pro records
- GET /api/jobs/expiry-sweep - Preview pro records and their expiry
- POST /api/jobs/idempotency-cleanup - Purge old webhook markers
"""

from fastapi import APIRouter, Depends

from subscription_sync.api.deps import provide_expiry_sweep, require_cron_secret
from subscription_sync.logging_config import get_logger
from subscription_sync.models import CleanupResponse, SweepPreviewResponse, SweepResponse
from subscription_sync.repositories.idempotency_store import get_idempotency_store
from subscription_sync.services.expiry_sweep import ExpirySweep

logger = get_logger(__name__)
router = APIRouter(tags=["Jobs"], prefix="/api/jobs", dependencies=[Depends(require_cron_secret)])


@router.post("/expiry-sweep", response_model=SweepResponse, summary="Run expiry sweep")
def run_expiry_sweep(sweep: ExpirySweep = Depends(provide_expiry_sweep)) -> SweepResponse:
    """Demote every pro record whose period has ended.

    Safe to re-run; rows that fail are reported and retried next run.
    """
    return sweep.run()


@router.get("/expiry-sweep", response_model=SweepPreviewResponse, summary="Preview expiry sweep")
def preview_expiry_sweep(sweep: ExpirySweep = Depends(provide_expiry_sweep)) -> SweepPreviewResponse:
    return sweep.preview()


@router.post("/idempotency-cleanup", response_model=CleanupResponse, summary="Purge webhook markers")
def idempotency_cleanup() -> CleanupResponse:
    purged = get_idempotency_store().sweep_expired()
    logger.info("idempotency_cleanup_completed", purged=purged)
    return CleanupResponse(purged=purged)
