"""
Case & evidence read API

Endpoints:
- GET /api/cases - all cases with requirements, solve state and missing evidence
- GET /api/cases/{id} - one case
- GET /api/evidence - storefront catalog (display metadata)
- GET /api/evidence/purchased - every evidence id ever purchased
- GET /api/metrics - case/evidence counters

Read views are non-authoritative: storage failures degrade to empty results.
"""
import logging
from datetime import datetime, timezone
from typing import List

from fastapi import APIRouter, Depends, HTTPException, status

from crimelab.repositories import CaseRepository, EvidenceLedger
from crimelab.repositories.base import STORAGE_ERRORS
from crimelab.services.errors import StorefrontError
from crimelab.services.resolution import missing_evidence
from crimelab.services.storefront_client import StorefrontClient
from .dependencies import get_case_repository, get_evidence_ledger, get_storefront

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api", tags=["Cases"])


@router.get("/cases")
async def list_cases(
    cases: CaseRepository = Depends(get_case_repository),
    ledger: EvidenceLedger = Depends(get_evidence_ledger),
) -> List[dict]:
    try:
        all_cases = await cases.list_cases()
        purchased = await ledger.purchased_set()
    except STORAGE_ERRORS as e:
        logger.warning(f"Case listing unavailable: {e}")
        return []

    results = []
    for case in all_cases:
        item = case.to_dict()
        item['missing_evidence'] = sorted(missing_evidence(purchased, case.required_evidence))
        results.append(item)
    return results


@router.get("/cases/{case_id}")
async def get_case(
    case_id: int,
    cases: CaseRepository = Depends(get_case_repository),
):
    try:
        case = await cases.get_by_id(case_id)
    except STORAGE_ERRORS as e:
        logger.warning(f"Case {case_id} unavailable: {e}")
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="Case store unavailable")

    if not case:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"Case {case_id} not found")
    return case.to_dict()


@router.get("/evidence")
async def list_evidence(storefront: StorefrontClient = Depends(get_storefront)):
    """Storefront catalog, cached for five minutes."""
    try:
        items = await storefront.list_evidence()
    except StorefrontError as e:
        logger.error(f"Evidence catalog unavailable: {e}")
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=str(e))
    return [item.to_dict() for item in items]


@router.get("/evidence/purchased")
async def list_purchased_evidence(ledger: EvidenceLedger = Depends(get_evidence_ledger)) -> List[str]:
    try:
        return sorted(await ledger.purchased_set())
    except STORAGE_ERRORS as e:
        logger.warning(f"Purchased evidence unavailable: {e}")
        return []


@router.get("/metrics")
async def get_metrics(cases: CaseRepository = Depends(get_case_repository)):
    now = datetime.now(timezone.utc).isoformat()
    try:
        counts = await cases.count_metrics()
    except STORAGE_ERRORS as e:
        logger.warning(f"Metrics unavailable: {e}")
        return {
            'total_cases': 0,
            'solved_cases': 0,
            'evidence_count': 0,
            'worker_timestamp': now,
            'error': 'Database unavailable',
        }

    return {**counts, 'worker_timestamp': now}
