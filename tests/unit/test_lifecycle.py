"""
Unit tests for the contract lifecycle (studiocrm/engine/lifecycle.py).
Pure functions — the clock is a lambda returning a fixed datetime.
"""

import itertools
from datetime import datetime, timedelta, timezone

import pytest

from studiocrm.models import Contract, ContractStatus
from studiocrm.engine.lifecycle import (
    TRANSITIONS,
    InvalidTransitionError,
    allowed_targets,
    can_transition,
    check_exhaustive,
    transition,
    utcnow,
)

S = ContractStatus
NOW = datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc)
EARLIER = datetime(2023, 11, 20, 9, 0, tzinfo=timezone.utc)

EXPECTED = {
    S.DRAFT: {S.SENT, S.ARCHIVED},
    S.SENT: {S.VIEWED, S.SIGNED, S.ARCHIVED},
    S.VIEWED: {S.SIGNED, S.ARCHIVED},
    S.SIGNED: {S.IN_PROGRESS, S.ARCHIVED},
    S.IN_PROGRESS: {S.EDITING, S.ARCHIVED},
    S.EDITING: {S.READY, S.ARCHIVED},
    S.READY: {S.DELIVERED, S.ARCHIVED},
    S.DELIVERED: {S.ARCHIVED},
    S.ARCHIVED: set(),
}


def clock():
    return NOW


def make_contract(status, **kwargs):
    return Contract(id=1, client_name='Anna Weber', status=status, **kwargs)


# ---------------------------------------------------------------------------
# Transition table
# ---------------------------------------------------------------------------

def test_table_matches_expected_transitions():
    assert {s: set(t) for s, t in TRANSITIONS.items()} == EXPECTED


def test_every_non_terminal_status_can_be_archived():
    for status in ContractStatus:
        if status is S.ARCHIVED:
            continue
        assert S.ARCHIVED in TRANSITIONS[status]


def test_check_exhaustive_rejects_incomplete_table():
    partial = {s: frozenset() for s in ContractStatus if s is not S.READY}
    with pytest.raises(RuntimeError, match='ready'):
        check_exhaustive(partial, 'partial')


def test_check_exhaustive_accepts_complete_table():
    check_exhaustive(TRANSITIONS, 'TRANSITIONS')


# ---------------------------------------------------------------------------
# can_transition / allowed_targets
# ---------------------------------------------------------------------------

@pytest.mark.parametrize('current,target', list(itertools.product(ContractStatus, ContractStatus)))
def test_legality_closure(current, target):
    legal = target in EXPECTED[current]
    assert can_transition(current, target) is legal
    if legal:
        assert transition(make_contract(current), target, clock=clock).status is target
    else:
        with pytest.raises(InvalidTransitionError):
            transition(make_contract(current), target, clock=clock)


def test_can_transition_accepts_strings():
    assert can_transition('draft', 'sent')
    assert not can_transition('draft', 'delivered')


def test_can_transition_unknown_statuses_are_false():
    assert not can_transition('draft', 'cancelled')
    assert not can_transition('cancelled', 'draft')


def test_allowed_targets_unknown_status_is_empty():
    assert allowed_targets('bogus') == frozenset()


def test_allowed_targets_archived_is_empty():
    assert allowed_targets(S.ARCHIVED) == frozenset()


# ---------------------------------------------------------------------------
# transition: errors
# ---------------------------------------------------------------------------

@pytest.mark.parametrize('target', list(ContractStatus))
def test_archived_is_terminal(target):
    with pytest.raises(InvalidTransitionError):
        transition(make_contract(S.ARCHIVED), target, clock=clock)


def test_error_carries_current_and_attempted_status():
    with pytest.raises(InvalidTransitionError) as exc_info:
        transition(make_contract(S.DRAFT), S.DELIVERED, clock=clock)
    err = exc_info.value
    assert err.current_status is S.DRAFT
    assert err.attempted_status is S.DELIVERED
    assert str(err) == 'Cannot transition from draft to delivered'


def test_error_is_a_value_error():
    with pytest.raises(ValueError):
        transition(make_contract(S.DRAFT), S.READY, clock=clock)


def test_unknown_target_string_is_rejected():
    with pytest.raises(InvalidTransitionError) as exc_info:
        transition(make_contract(S.DRAFT), 'cancelled', clock=clock)
    assert exc_info.value.attempted_status == 'cancelled'


def test_rejected_transition_leaves_input_unchanged():
    contract = make_contract(S.SIGNED, signed_at=EARLIER)
    before = Contract(**contract.__dict__)
    with pytest.raises(InvalidTransitionError):
        transition(contract, S.DELIVERED, delivery_window_days=10, clock=clock)
    assert contract == before


# ---------------------------------------------------------------------------
# transition: side effects
# ---------------------------------------------------------------------------

def test_transition_returns_new_object_and_keeps_input():
    contract = make_contract(S.DRAFT)
    result = transition(contract, S.SENT, clock=clock)
    assert result is not contract
    assert contract.status is S.DRAFT
    assert result.status is S.SENT


def test_transition_accepts_string_target():
    assert transition(make_contract(S.DRAFT), 'sent', clock=clock).status is S.SENT


def test_entering_signed_sets_signed_at():
    result = transition(make_contract(S.SENT), S.SIGNED, clock=clock)
    assert result.signed_at == NOW


def test_entering_signed_from_viewed_sets_signed_at():
    result = transition(make_contract(S.VIEWED), S.SIGNED, clock=clock)
    assert result.signed_at == NOW


def test_signed_at_is_never_overwritten():
    result = transition(make_contract(S.SENT, signed_at=EARLIER), S.SIGNED, clock=clock)
    assert result.signed_at == EARLIER


def test_event_completion_sets_timestamp_and_window():
    result = transition(make_contract(S.SIGNED), S.IN_PROGRESS, delivery_window_days=45, clock=clock)
    assert result.status is S.IN_PROGRESS
    assert result.event_completed_at == NOW
    assert result.delivery_window_days == 45


def test_event_completion_keeps_existing_window_when_not_given():
    result = transition(make_contract(S.SIGNED), S.IN_PROGRESS, clock=clock)
    assert result.delivery_window_days == 60
    assert result.estimated_delivery_date == (NOW + timedelta(days=60)).date()


def test_event_completion_keeps_custom_window_when_not_given():
    result = transition(make_contract(S.SIGNED, delivery_window_days=21), S.IN_PROGRESS, clock=clock)
    assert result.delivery_window_days == 21


def test_window_option_ignored_outside_event_completion():
    result = transition(make_contract(S.IN_PROGRESS, event_completed_at=EARLIER), S.EDITING,
                        delivery_window_days=5, clock=clock)
    assert result.delivery_window_days == 60


@pytest.mark.parametrize('current,target', [
    (S.DRAFT, S.SENT),
    (S.SENT, S.VIEWED),
    (S.IN_PROGRESS, S.EDITING),
    (S.EDITING, S.READY),
    (S.READY, S.DELIVERED),
    (S.DELIVERED, S.ARCHIVED),
    (S.DRAFT, S.ARCHIVED),
])
def test_other_transitions_only_change_status(current, target):
    contract = make_contract(current, event_completed_at=EARLIER if current in (S.IN_PROGRESS, S.EDITING, S.READY, S.DELIVERED) else None)
    result = transition(contract, target, clock=clock)
    assert {k: v for k, v in result.__dict__.items() if k != 'status'} == \
        {k: v for k, v in contract.__dict__.items() if k != 'status'}


def test_archiving_does_not_require_event_completion():
    result = transition(make_contract(S.SIGNED), S.ARCHIVED, clock=clock)
    assert result.status is S.ARCHIVED
    assert result.event_completed_at is None


def test_full_happy_path():
    contract = make_contract(S.DRAFT)
    for target in (S.SENT, S.VIEWED, S.SIGNED, S.IN_PROGRESS, S.EDITING, S.READY, S.DELIVERED, S.ARCHIVED):
        contract = transition(contract, target, delivery_window_days=30, clock=clock)
        assert contract.status is target
    assert contract.signed_at == NOW
    assert contract.event_completed_at == NOW
    assert contract.delivery_window_days == 30


# ---------------------------------------------------------------------------
# utcnow
# ---------------------------------------------------------------------------

def test_utcnow_is_timezone_aware():
    assert utcnow().tzinfo is not None
