"""
Catalog loader

Validates a case catalog and writes it to PostgreSQL. Integrity problems
(empty requirement sets, unknown evidence, duplicate case numbers, changed
requirements on an already solved case) are configuration errors and stop
the load before anything is committed.
"""
import json
import logging
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Union

import asyncpg

from crimelab.models.domain.case import Case
from crimelab.repositories.case_repository import CaseRepository
from crimelab.services.errors import CatalogIntegrityError

logger = logging.getLogger(__name__)

SEED_CATALOG_PATH = Path(__file__).parent / "seed_catalog.json"
SCHEMA_PATH = Path(__file__).parent.parent / "schema.sql"


def read_catalog(path: Union[str, Path] = SEED_CATALOG_PATH) -> Dict[str, Any]:
    with open(path, "r", encoding="utf-8") as f:
        return json.load(f)


def check_integrity(cases: Iterable[Case], known_evidence: Optional[Iterable[str]] = None) -> None:
    """
    Raise CatalogIntegrityError listing every violation found.

    Args:
        cases: Cases to check
        known_evidence: Valid evidence ids; None skips the unknown-evidence check
    """
    known = set(known_evidence) if known_evidence is not None else None
    problems = []
    seen_numbers = set()

    for case in cases:
        label = case.case_number or f"case {case.id}"
        if case.case_number in seen_numbers:
            problems.append(f"{label}: duplicate case number")
        seen_numbers.add(case.case_number)

        if not case.required_evidence:
            problems.append(f"{label}: empty requirement set")
        elif known is not None:
            unknown = sorted(case.required_evidence - known)
            if unknown:
                problems.append(f"{label}: unknown evidence {', '.join(unknown)}")

    if problems:
        raise CatalogIntegrityError("Catalog integrity violations:\n  " + "\n  ".join(problems))


def parse_catalog(data: Dict[str, Any]) -> List[Case]:
    """Build and validate Case models from catalog JSON."""
    known_evidence = [item['id'] for item in data.get('evidence', [])]

    cases = []
    for i, entry in enumerate(data.get('cases', [])):
        try:
            cases.append(Case(
                id=0,
                case_number=entry['number'],
                title=entry['title'],
                description=entry['description'],
                solution=entry['solution'],
                difficulty=entry.get('difficulty', 'medium'),
                required_evidence=frozenset(entry.get('required_evidence') or []),
            ))
        except (KeyError, ValueError) as e:
            raise CatalogIntegrityError(f"Catalog case #{i} is malformed: {e}") from e

    check_integrity(cases, known_evidence if known_evidence else None)
    return cases


async def apply_schema(db_pool: asyncpg.Pool, path: Union[str, Path] = SCHEMA_PATH) -> None:
    sql = Path(path).read_text(encoding="utf-8")
    async with db_pool.acquire() as conn:
        await conn.execute(sql)
    logger.info(f"Applied schema from {path}")


async def load_catalog(db_pool: asyncpg.Pool, cases: List[Case]) -> List[Case]:
    """
    Upsert cases in one transaction.

    A solved case keeps its requirement set; a catalog that tries to change
    it is rejected.
    """
    repo = CaseRepository(db_pool)
    async with db_pool.acquire() as conn:
        async with conn.transaction():
            for case in cases:
                stored = await repo.upsert_case(case, conn=conn)
                if stored.is_solved:
                    current = await repo.requirements_for(stored.id, conn=conn)
                    if current != set(case.required_evidence):
                        raise CatalogIntegrityError(
                            f"{case.case_number}: requirements of a solved case cannot change"
                        )

    logger.info(f"Loaded {len(cases)} cases")
    return cases
