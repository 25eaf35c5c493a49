"""
Case Repository - PostgreSQL storage for cases and their evidence requirements

Storage: PostgreSQL (cases, case_evidence tables)

Doubles as the case requirement index used by the resolution engine. The
index is read on every call (no cache), so a solve is never evaluated
against stale requirements.
"""
import logging
from typing import Optional, List, Set, Dict, FrozenSet, Iterable
import asyncpg

from crimelab.models.domain.case import Case
from .base import using_connection

logger = logging.getLogger(__name__)


CASE_COLUMNS = """
    c.id, c.case_number, c.title, c.description, c.solution,
    c.difficulty, c.created_at, c.solved_at,
    COALESCE(
        array_agg(ce.evidence_id ORDER BY ce.evidence_id)
            FILTER (WHERE ce.evidence_id IS NOT NULL),
        '{}'
    ) AS required_evidence
"""


class CaseRepository:
    """
    Repository for Case domain model

    Cases are created by the catalog loader and mutated only by the
    resolution committer (solved_at) and the demo reset hook.
    """

    def __init__(self, db_pool: asyncpg.Pool):
        self.db_pool = db_pool

    # =========================================================================
    # READ OPERATIONS
    # =========================================================================

    async def get_by_id(self, case_id: int, conn: Optional[asyncpg.Connection] = None) -> Optional[Case]:
        async with using_connection(self.db_pool, conn) as c:
            row = await c.fetchrow(f"""
                SELECT {CASE_COLUMNS}
                FROM cases c
                LEFT JOIN case_evidence ce ON ce.case_id = c.id
                WHERE c.id = $1
                GROUP BY c.id
            """, case_id)

            if not row:
                return None
            return self._row_to_case(row)

    async def list_cases(self, conn: Optional[asyncpg.Connection] = None) -> List[Case]:
        """All cases with their required evidence, ordered by id."""
        async with using_connection(self.db_pool, conn) as c:
            rows = await c.fetch(f"""
                SELECT {CASE_COLUMNS}
                FROM cases c
                LEFT JOIN case_evidence ce ON ce.case_id = c.id
                GROUP BY c.id
                ORDER BY c.id
            """)
            return [self._row_to_case(row) for row in rows]

    async def requirements_for(self, case_id: int, conn: Optional[asyncpg.Connection] = None) -> Set[str]:
        async with using_connection(self.db_pool, conn) as c:
            rows = await c.fetch("""
                SELECT evidence_id FROM case_evidence WHERE case_id = $1
            """, case_id)
            return {row['evidence_id'] for row in rows}

    async def unsolved_cases(self, conn: Optional[asyncpg.Connection] = None) -> List[int]:
        async with using_connection(self.db_pool, conn) as c:
            rows = await c.fetch("""
                SELECT id FROM cases WHERE solved_at IS NULL ORDER BY id
            """)
            return [row['id'] for row in rows]

    async def unsolved_requirements(
        self,
        conn: Optional[asyncpg.Connection] = None,
    ) -> Dict[int, FrozenSet[str]]:
        """
        Requirement index restricted to unsolved cases, in one round trip.

        Returns:
            {case_id: frozenset(evidence_ids)}
        """
        async with using_connection(self.db_pool, conn) as c:
            rows = await c.fetch("""
                SELECT c.id, array_agg(ce.evidence_id) AS required_evidence
                FROM cases c
                JOIN case_evidence ce ON ce.case_id = c.id
                WHERE c.solved_at IS NULL
                GROUP BY c.id
            """)
            return {row['id']: frozenset(row['required_evidence']) for row in rows}

    async def count_metrics(self, conn: Optional[asyncpg.Connection] = None) -> Dict[str, int]:
        async with using_connection(self.db_pool, conn) as c:
            row = await c.fetchrow("""
                SELECT
                    (SELECT COUNT(*) FROM cases) AS total_cases,
                    (SELECT COUNT(*) FROM cases WHERE solved_at IS NOT NULL) AS solved_cases,
                    (SELECT COUNT(DISTINCT evidence_id) FROM case_evidence) AS evidence_count
            """)
            return {
                'total_cases': row['total_cases'],
                'solved_cases': row['solved_cases'],
                'evidence_count': row['evidence_count'],
            }

    # =========================================================================
    # UPDATE OPERATIONS
    # =========================================================================

    async def mark_solved(
        self,
        case_ids: Iterable[int],
        conn: Optional[asyncpg.Connection] = None,
    ) -> Set[int]:
        """
        Transition cases UNSOLVED -> SOLVED.

        Conditional on solved_at still being NULL at write time, so a case
        already solved by a concurrent order is left untouched and not
        reported.

        Returns:
            Ids of the cases this call actually solved
        """
        case_ids = sorted(set(case_ids))
        if not case_ids:
            return set()

        async with using_connection(self.db_pool, conn) as c:
            rows = await c.fetch("""
                UPDATE cases
                SET solved_at = NOW()
                WHERE id = ANY($1::int[]) AND solved_at IS NULL
                RETURNING id
            """, case_ids)

        solved = {row['id'] for row in rows}
        if solved:
            logger.info(f"Marked cases solved: {sorted(solved)}")
        return solved

    async def reset_solved(self, conn: Optional[asyncpg.Connection] = None) -> int:
        """Revert every case to UNSOLVED (demo reset only). Returns rows reverted."""
        async with using_connection(self.db_pool, conn) as c:
            result = await c.execute("""
                UPDATE cases SET solved_at = NULL WHERE solved_at IS NOT NULL
            """)
            rows_updated = int(result.split()[-1])
            logger.warning(f"Reverted {rows_updated} solved cases")
            return rows_updated

    # =========================================================================
    # CATALOG OPERATIONS
    # =========================================================================

    async def upsert_case(self, case: Case, conn: asyncpg.Connection) -> Case:
        """
        Insert or update a catalog case by case number.

        Presentation fields are always refreshed. The requirement set is
        replaced only while the case is unsolved; the caller must run this
        inside a transaction.
        """
        row = await conn.fetchrow("""
            INSERT INTO cases (case_number, title, description, solution, difficulty, created_at)
            VALUES ($1, $2, $3, $4, $5, NOW())
            ON CONFLICT (case_number) DO UPDATE SET
                title = EXCLUDED.title,
                description = EXCLUDED.description,
                solution = EXCLUDED.solution,
                difficulty = EXCLUDED.difficulty
            RETURNING id, created_at, solved_at
        """,
            case.case_number,
            case.title,
            case.description,
            case.solution,
            case.difficulty.value,
        )

        case.id = row['id']
        case.created_at = row['created_at']
        case.solved_at = row['solved_at']

        if case.solved_at is None:
            await conn.execute("DELETE FROM case_evidence WHERE case_id = $1", case.id)
            await conn.executemany("""
                INSERT INTO case_evidence (case_id, evidence_id) VALUES ($1, $2)
            """, [(case.id, evidence_id) for evidence_id in sorted(case.required_evidence)])

        logger.info(f"Upserted case {case.case_number} (id={case.id})")
        return case

    # =========================================================================
    # HELPERS
    # =========================================================================

    def _row_to_case(self, row) -> Case:
        return Case(
            id=row['id'],
            case_number=row['case_number'],
            title=row['title'],
            description=row['description'],
            solution=row['solution'],
            difficulty=row['difficulty'],
            required_evidence=frozenset(row['required_evidence'] or []),
            created_at=row['created_at'],
            solved_at=row['solved_at'],
        )
