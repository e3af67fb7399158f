from datetime import date, timedelta

import pytest

from app.core.exceptions import InvalidTransition, MissingRequiredField
from app.db.schema import SampleStatus as S
from app.domain.lifecycle import (
    PIPELINE, TERMINAL, assert_transition, can_transition, reachable,
    requires_payment_intent, validate_invoice_terms
)


@pytest.mark.parametrize("current,target", [
    (S.REQUESTED, S.INVOICE_SENT),
    (S.INVOICE_SENT, S.SAMPLE_PAID),
    (S.SAMPLE_PAID, S.IN_PRODUCTION),
    (S.IN_PRODUCTION, S.SHIPPED),
    (S.SHIPPED, S.DELIVERED),
    (S.REQUESTED, S.IN_REVIEW),
    (S.IN_REVIEW, S.APPROVED),
    (S.IN_REVIEW, S.REJECTED),
    # forward skips
    (S.REQUESTED, S.IN_PRODUCTION),
    (S.INVOICE_SENT, S.DELIVERED),
    (S.REQUESTED, S.APPROVED),
])
def test_forward_moves_are_legal(current, target):
    assert can_transition(current, target)
    assert_transition(current, target)


@pytest.mark.parametrize("current,target", [
    (S.SHIPPED, S.IN_PRODUCTION),
    (S.SAMPLE_PAID, S.INVOICE_SENT),
    (S.APPROVED, S.IN_REVIEW),
    (S.IN_REVIEW, S.INVOICE_SENT),
    (S.INVOICE_SENT, S.IN_REVIEW),
    (S.APPROVED, S.REJECTED),
])
def test_backward_and_cross_branch_moves_are_rejected(current, target):
    assert not can_transition(current, target)
    with pytest.raises(InvalidTransition):
        assert_transition(current, target)


@pytest.mark.parametrize("status", list(S))
def test_self_transition_is_rejected(status):
    assert not can_transition(status, status)


@pytest.mark.parametrize("terminal", [S.DELIVERED, S.APPROVED, S.REJECTED])
def test_terminal_statuses_have_no_exit(terminal):
    assert terminal in TERMINAL
    assert reachable(terminal) == frozenset()
    for target in S:
        assert not can_transition(terminal, target)


def test_pipeline_order():
    assert PIPELINE[0] == S.REQUESTED
    assert PIPELINE[-1] == S.DELIVERED
    for i, status in enumerate(PIPELINE[:-1]):
        assert set(PIPELINE[i + 1:]) <= reachable(status)


def test_only_invoice_sent_requires_an_intent():
    assert requires_payment_intent(S.INVOICE_SENT)
    assert not any(requires_payment_intent(s) for s in S if s != S.INVOICE_SENT)


def test_error_message_names_both_statuses():
    with pytest.raises(InvalidTransition) as exc:
        assert_transition(S.DELIVERED, S.SHIPPED)
    assert "delivered -> shipped" in exc.value.message
    assert exc.value.code == "INVALID_TRANSITION"


class TestInvoiceTerms:
    today = date(2025, 7, 1)

    def test_valid_terms(self):
        validate_invoice_terms(250, self.today + timedelta(days=1), today=self.today)

    @pytest.mark.parametrize("amount", [None, 0, -5])
    def test_amount_must_be_positive(self, amount):
        with pytest.raises(MissingRequiredField):
            validate_invoice_terms(amount, self.today + timedelta(days=7), today=self.today)

    @pytest.mark.parametrize("offset", [0, -1])
    def test_due_date_must_be_in_future(self, offset):
        with pytest.raises(MissingRequiredField):
            validate_invoice_terms(250, self.today + timedelta(days=offset), today=self.today)

    def test_due_date_required(self):
        with pytest.raises(MissingRequiredField):
            validate_invoice_terms(250, None, today=self.today)

    @pytest.mark.parametrize("amount", [float("nan"), float("inf"), float("-inf")])
    def test_amount_must_be_finite(self, amount):
        with pytest.raises(MissingRequiredField):
            validate_invoice_terms(amount, self.today + timedelta(days=7), today=self.today)

    @pytest.mark.parametrize("amount", [0.001, 0.004])
    def test_amount_below_one_cent_is_refused(self, amount):
        with pytest.raises(MissingRequiredField):
            validate_invoice_terms(amount, self.today + timedelta(days=7), today=self.today)

    def test_one_cent_is_accepted(self):
        validate_invoice_terms(0.01, self.today + timedelta(days=7), today=self.today)
