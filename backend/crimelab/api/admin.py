"""
Demo/test hooks

POST /api/admin/reset - clear the evidence ledger, receipts and activity log,
revert every case to UNSOLVED. Refused in production.
"""
import logging

from fastapi import APIRouter, Depends, HTTPException, status

from crimelab.config import Settings
from crimelab.repositories.base import STORAGE_ERRORS
from crimelab.services.errors import RetryableError
from crimelab.services.resolution_committer import ResolutionCommitter
from .dependencies import get_committer, get_settings_dep

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/admin", tags=["Admin"])


@router.post("/reset")
async def reset_lab(
    committer: ResolutionCommitter = Depends(get_committer),
    settings: Settings = Depends(get_settings_dep),
):
    if settings.is_production:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Reset is disabled in production")

    try:
        counts = await committer.reset()
    except (RetryableError, *STORAGE_ERRORS) as e:
        logger.error(f"Reset failed: {e}", exc_info=True)
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(e))

    return {'status': 'reset', **counts}
