"""
Case domain model
"""
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional, FrozenSet
from enum import Enum


class CaseStatus(str, Enum):
    """Case lifecycle. SOLVED is terminal."""
    UNSOLVED = "unsolved"
    SOLVED = "solved"


class Difficulty(str, Enum):
    EASY = "easy"
    MEDIUM = "medium"
    HARD = "hard"


@dataclass
class Case:
    """
    Case domain model - storage-agnostic representation

    Storage: PostgreSQL (cases + case_evidence tables)

    A case is solved once every evidence unit in required_evidence has been
    purchased by anyone. The solved timestamp is set exactly once by the
    resolution committer and never cleared outside the demo reset hook.
    """
    id: int
    case_number: str
    title: str
    description: str
    solution: str

    # Evidence unit ids that must all be purchased (unordered, unique)
    required_evidence: FrozenSet[str] = field(default_factory=frozenset)

    difficulty: Difficulty = Difficulty.MEDIUM

    # Timestamps
    created_at: Optional[datetime] = None
    solved_at: Optional[datetime] = None  # None = unsolved

    def __post_init__(self):
        self.required_evidence = frozenset(self.required_evidence)
        if isinstance(self.difficulty, str):
            self.difficulty = Difficulty(self.difficulty)

    @property
    def status(self) -> CaseStatus:
        return CaseStatus.SOLVED if self.solved_at is not None else CaseStatus.UNSOLVED

    @property
    def is_solved(self) -> bool:
        return self.solved_at is not None

    def to_dict(self) -> dict:
        """Serialize for the case read API."""
        return {
            'id': self.id,
            'number': self.case_number,
            'title': self.title,
            'description': self.description,
            'solution': self.solution,
            'difficulty': self.difficulty.value,
            'required_evidence': sorted(self.required_evidence),
            'solved_at': self.solved_at.isoformat() if self.solved_at else None,
            'created_at': self.created_at.isoformat() if self.created_at else None,
        }
