"""
Tests for ResolutionCommitter: orders in, solved cases and case_solved
activities out.

Scenario used throughout: case 1 needs {X, Y}, case 2 needs {Y, Z}.
"""
import asyncio
import time
from decimal import Decimal

import pytest

from crimelab.models.domain.activity import ActivityType
from crimelab.services.errors import (
    ActivityWriteError,
    AnnouncementPendingError,
    LedgerWriteError,
    ResolutionCommitError,
    RetryableError,
)

from fakes import serialization_failure


async def solved_events(recorder):
    events = await recorder.recent(100)
    return [e for e in reversed(events) if e.type == ActivityType.CASE_SOLVED]


# =============================================================================
# Solving
# =============================================================================

@pytest.mark.asyncio
async def test_order_completing_one_case(committer, db, recorder):
    result = await committer.process_order('A', ['X', 'Y'], Decimal('24.00'))

    assert result.solved_case_ids == {1}
    assert result.duplicate is False
    assert result.newly_recorded == {'X', 'Y'}
    assert db.cases[1].is_solved
    assert not db.cases[2].is_solved

    events = await solved_events(recorder)
    assert len(events) == 1
    assert events[0].data['case_id'] == 1
    assert events[0].data['order_id'] == 'A'
    assert events[0].data['total_price'] == '24.00'
    assert events[0].worker_id == 'test-webhook'


@pytest.mark.asyncio
async def test_later_order_completes_case_with_earlier_evidence(committer, db, recorder):
    """Y bought for case 1 also counts toward case 2."""
    await committer.process_order('A', ['X', 'Y'])
    result = await committer.process_order('B', ['Z'])

    assert result.solved_case_ids == {2}
    assert result.newly_recorded == {'Z'}
    assert db.cases[2].is_solved

    events = await solved_events(recorder)
    assert [e.data['case_id'] for e in events] == [1, 2]


@pytest.mark.asyncio
async def test_single_order_can_solve_multiple_cases(committer, recorder):
    result = await committer.process_order('A', ['X', 'Y', 'Z'])

    assert result.solved_case_ids == {1, 2}
    events = await solved_events(recorder)
    assert sorted(e.data['case_id'] for e in events) == [1, 2]


@pytest.mark.asyncio
async def test_order_with_partial_evidence_solves_nothing(committer, db, recorder):
    result = await committer.process_order('A', ['X'])

    assert result.solved_case_ids == set()
    assert db.ledger == {'X': 'A'}
    assert await solved_events(recorder) == []


@pytest.mark.asyncio
async def test_already_purchased_evidence_is_not_rerecorded(committer, db):
    await committer.process_order('A', ['X'])
    result = await committer.process_order('B', ['X', 'Y'])

    assert result.newly_recorded == {'Y'}
    assert db.ledger['X'] == 'A'
    assert result.solved_case_ids == {1}


@pytest.mark.asyncio
async def test_solved_case_is_never_solved_again(committer, recorder):
    await committer.process_order('A', ['X', 'Y'])
    result = await committer.process_order('B', ['X', 'Y'])

    assert result.solved_case_ids == set()
    assert len(await solved_events(recorder)) == 1


@pytest.mark.asyncio
async def test_receipt_records_solved_cases(committer, db):
    await committer.process_order('A', ['X', 'Y'], '24.00')

    receipt = db.purchases['A']
    assert receipt.evidence_ids == frozenset({'X', 'Y'})
    assert receipt.solved_case_ids == frozenset({1})
    assert receipt.total_amount == Decimal('24.00')


# =============================================================================
# Idempotency
# =============================================================================

@pytest.mark.asyncio
async def test_duplicate_order_is_a_noop(committer, db, recorder):
    first = await committer.process_order('A', ['X', 'Y'])
    second = await committer.process_order('A', ['X', 'Y'])

    assert first.solved_case_ids == {1}
    assert second.duplicate is True
    assert second.solved_case_ids == set()
    assert len(await solved_events(recorder)) == 1
    assert len(db.purchases) == 1


@pytest.mark.asyncio
async def test_duplicate_delivery_with_different_payload_is_ignored(committer, db):
    await committer.process_order('A', ['X'])
    result = await committer.process_order('A', ['Y', 'Z'])

    assert result.duplicate is True
    assert set(db.ledger) == {'X'}


@pytest.mark.asyncio
async def test_concurrent_deliveries_of_same_order(committer, recorder):
    results = await asyncio.gather(
        committer.process_order('A', ['X', 'Y']),
        committer.process_order('A', ['X', 'Y']),
    )

    assert sorted(r.duplicate for r in results) == [False, True]
    assert len(await solved_events(recorder)) == 1


# =============================================================================
# Concurrency
# =============================================================================

@pytest.mark.asyncio
async def test_concurrent_orders_with_disjoint_halves_solve_exactly_once(committer, db, recorder):
    """
    Neither order alone completes case 1; together they must, once.

    FakeDatabase runs transactions one at a time, so this checks the
    committer's bookkeeping only. The write-skew under real SERIALIZABLE
    isolation is exercised by db/test_db_resolution.py.
    """
    first, second = await asyncio.gather(
        committer.process_order('A', ['X']),
        committer.process_order('B', ['Y']),
    )

    assert db.cases[1].is_solved
    assert len(first.solved_case_ids | second.solved_case_ids) == 1
    assert first.solved_case_ids.isdisjoint(second.solved_case_ids)

    events = await solved_events(recorder)
    assert [e.data['case_id'] for e in events] == [1]


@pytest.mark.asyncio
async def test_many_concurrent_orders(committer, db, recorder):
    orders = [(f'O{i}', [unit]) for i, unit in enumerate(['X', 'Y', 'Z', 'X', 'Z', 'Y'])]
    results = await asyncio.gather(*(committer.process_order(o, e) for o, e in orders))

    solved = [case_id for r in results for case_id in r.solved_case_ids]
    assert sorted(solved) == [1, 2]
    assert len(await solved_events(recorder)) == 2


# =============================================================================
# Failures
# =============================================================================

@pytest.mark.asyncio
async def test_serialization_failure_is_retried(committer, cases, db):
    cases.fail_mark_solved.append(serialization_failure())

    result = await committer.process_order('A', ['X', 'Y'])

    assert result.solved_case_ids == {1}
    assert db.rollbacks == 1
    assert db.cases[1].is_solved


@pytest.mark.asyncio
async def test_persistent_serialization_failure_becomes_retryable(committer, cases, db):
    cases.fail_mark_solved.extend(serialization_failure() for _ in range(3))

    with pytest.raises(ResolutionCommitError):
        await committer.process_order('A', ['X', 'Y'])

    # Nothing from any attempt survived
    assert db.ledger == {}
    assert db.purchases == {}
    assert not db.cases[1].is_solved


@pytest.mark.asyncio
async def test_ledger_failure_rolls_back_whole_order(committer, ledger, db, recorder):
    ledger.fail_on.add('Y')

    with pytest.raises(LedgerWriteError):
        await committer.process_order('A', ['X', 'Y'])

    assert db.ledger == {}
    assert 'A' not in db.purchases
    assert not db.cases[1].is_solved
    assert await solved_events(recorder) == []


@pytest.mark.asyncio
async def test_redelivery_after_ledger_failure_succeeds(committer, ledger, db):
    ledger.fail_on.add('Y')
    with pytest.raises(RetryableError):
        await committer.process_order('A', ['X', 'Y'])

    ledger.fail_on.clear()
    result = await committer.process_order('A', ['X', 'Y'])

    assert result.duplicate is False
    assert result.solved_case_ids == {1}


@pytest.mark.asyncio
async def test_activity_failure_after_commit_is_retryable(committer, db, fake_redis):
    fake_redis.down = True

    with pytest.raises(ActivityWriteError):
        await committer.process_order('A', ['X', 'Y'])

    # The solve itself is durable, its announcement is still owed
    assert db.cases[1].is_solved
    assert 'A' in db.purchases
    assert not db.purchases['A'].is_announced


@pytest.mark.asyncio
async def test_redelivery_after_activity_failure_announces_once(committer, db, fake_redis, recorder):
    fake_redis.down = True
    with pytest.raises(RetryableError):
        await committer.process_order('A', ['X', 'Y'], '24.00')

    fake_redis.down = False
    result = await committer.process_order('A', ['X', 'Y'], '24.00')

    assert result.duplicate is True
    assert result.solved_case_ids == {1}
    events = await solved_events(recorder)
    assert [(e.data['case_id'], e.data['order_id'], e.data['total_price']) for e in events] == [(1, 'A', '24.00')]
    assert db.purchases['A'].is_announced

    again = await committer.process_order('A', ['X', 'Y'], '24.00')

    assert again.solved_case_ids == set()
    assert len(await solved_events(recorder)) == 1


@pytest.mark.asyncio
async def test_order_that_solved_nothing_is_announced_without_the_log(committer, db, fake_redis, recorder):
    fake_redis.down = True
    await committer.process_order('A', ['X'])

    assert db.purchases['A'].is_announced
    assert await solved_events(recorder) == []


@pytest.mark.asyncio
async def test_redelivery_while_another_delivery_announces_is_retryable(committer, db, fake_redis, recorder):
    fake_redis.down = True
    with pytest.raises(ActivityWriteError):
        await committer.process_order('A', ['X', 'Y'])
    fake_redis.down = False

    # Another delivery of 'A' holds the lease
    db.announce_leases['A'] = time.monotonic()

    with pytest.raises(AnnouncementPendingError):
        await committer.process_order('A', ['X', 'Y'])
    assert await solved_events(recorder) == []

    # Its lease lapsed without the announcement finishing
    committer.announce_lease_seconds = 0
    result = await committer.process_order('A', ['X', 'Y'])

    assert result.solved_case_ids == {1}
    assert len(await solved_events(recorder)) == 1


# =============================================================================
# Reset
# =============================================================================

@pytest.mark.asyncio
async def test_reset_clears_everything(committer, db, recorder):
    await committer.process_order('A', ['X', 'Y', 'Z'])

    counts = await committer.reset()

    assert counts == {
        'evidence_cleared': 3,
        'purchases_cleared': 1,
        'cases_reverted': 2,
        'activities_cleared': 2,
    }
    assert db.ledger == {}
    assert db.purchases == {}
    assert not any(c.is_solved for c in db.cases.values())
    assert await recorder.recent() == []


@pytest.mark.asyncio
async def test_order_after_reset_solves_again(committer, recorder):
    await committer.process_order('A', ['X', 'Y'])
    await committer.reset()

    result = await committer.process_order('A', ['X', 'Y'])

    assert result.duplicate is False
    assert result.solved_case_ids == {1}
