"""
Resolution Evaluator

Pure coverage test: a case is satisfied when every evidence unit it requires
has been purchased. No I/O, no side effects.

Cases with an empty requirement set would be trivially satisfied; the catalog
loader rejects them, so they are not special-cased here.
"""
from typing import AbstractSet, Hashable, Iterable, Mapping, Set, TypeVar

CaseId = TypeVar('CaseId', bound=Hashable)


def evaluate(
    purchased: Iterable[str],
    requirements: Mapping[CaseId, Iterable[str]],
) -> Set[CaseId]:
    """
    Return the cases whose requirements are fully covered.

    Args:
        purchased: Every evidence id purchased so far (duplicates ignored)
        requirements: {case_id: required evidence ids} for the candidate
            (unsolved) cases

    Returns:
        Set of satisfied case ids
    """
    purchased_set = purchased if isinstance(purchased, AbstractSet) else set(purchased)
    return {
        case_id
        for case_id, required in requirements.items()
        if set(required) <= purchased_set
    }


def missing_evidence(purchased: Iterable[str], required: Iterable[str]) -> Set[str]:
    """Evidence still needed before a case can be solved."""
    return set(required) - set(purchased)
