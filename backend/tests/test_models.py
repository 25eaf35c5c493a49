"""
Tests for request models and domain serialization.
"""
from datetime import datetime, timezone
from decimal import Decimal

import pytest
from pydantic import ValidationError

from crimelab.models.api import ActivityCreate, OrderWebhook
from crimelab.models.domain.activity import ActivityType
from crimelab.models.domain.case import Case, CaseStatus


def test_order_webhook_accepts_storefront_payload():
    order = OrderWebhook.model_validate({
        'id': 5512,
        'total_price': '19.99',
        'line_items': [{'sku': 'CIPHER_KEY', 'quantity': 1}, {'sku': 'CIPHER_KEY'}],
        'customer': {'email': 'ignored@example.com'},
    })

    assert order.order_id == '5512'
    assert order.total_amount == Decimal('19.99')
    assert order.evidence_ids == {'CIPHER_KEY'}


def test_order_webhook_accepts_native_names():
    order = OrderWebhook.model_validate({'order_id': 'A', 'line_items': [{'evidence_unit_id': 'X'}]})
    assert order.evidence_ids == {'X'}


def test_order_webhook_rejects_blank_order_id():
    with pytest.raises(ValidationError):
        OrderWebhook.model_validate({'order_id': '  ', 'line_items': []})


def test_activity_create_merges_session_id():
    activity = ActivityCreate(type='cart_add', data={'evidence_id': 'X'}, session_id='s1')

    assert activity.type == ActivityType.CART_ADD
    assert activity.payload() == {'evidence_id': 'X', 'session_id': 's1'}


def test_case_status_follows_solved_at():
    case = Case(id=1, case_number='C-1', title='t', description='d', solution='s', required_evidence=['X'])
    assert case.status == CaseStatus.UNSOLVED

    case.solved_at = datetime(2024, 5, 1, tzinfo=timezone.utc)
    assert case.status == CaseStatus.SOLVED
    assert case.to_dict()['solved_at'] == '2024-05-01T00:00:00+00:00'
