"""
Sample lifecycle state machine.

Two paths leave 'requested': the fulfilment pipeline
(requested -> invoice_sent -> sample_paid -> in_production -> shipped -> delivered)
and the review branch (requested -> in_review -> approved | rejected).
A target is legal when it is reachable from the current status, so forward
skips along a path are allowed while backward moves and self-transitions are not.
"""
import math
from datetime import date
from functools import lru_cache
from typing import FrozenSet, Optional

from app.core.exceptions import InvalidTransition, MissingRequiredField
from app.db.schema import SampleStatus
from app.integrations.payment_processor import to_minor_units


PIPELINE = (
    SampleStatus.REQUESTED,
    SampleStatus.INVOICE_SENT,
    SampleStatus.SAMPLE_PAID,
    SampleStatus.IN_PRODUCTION,
    SampleStatus.SHIPPED,
    SampleStatus.DELIVERED,
)

# Direct edges only; legality is decided on the transitive closure.
TRANSITIONS = {
    SampleStatus.REQUESTED: {SampleStatus.INVOICE_SENT, SampleStatus.IN_REVIEW},
    SampleStatus.INVOICE_SENT: {SampleStatus.SAMPLE_PAID},
    SampleStatus.SAMPLE_PAID: {SampleStatus.IN_PRODUCTION},
    SampleStatus.IN_PRODUCTION: {SampleStatus.SHIPPED},
    SampleStatus.SHIPPED: {SampleStatus.DELIVERED},
    SampleStatus.DELIVERED: set(),
    SampleStatus.IN_REVIEW: {SampleStatus.APPROVED, SampleStatus.REJECTED},
    SampleStatus.APPROVED: set(),
    SampleStatus.REJECTED: set(),
}

TERMINAL = frozenset(s for s, nxt in TRANSITIONS.items() if not nxt)

# Statuses whose notifications also go to the brand
BRAND_FACING = frozenset({SampleStatus.SHIPPED, SampleStatus.DELIVERED})


@lru_cache(maxsize=None)
def reachable(current: SampleStatus) -> FrozenSet[SampleStatus]:
    seen = set()
    stack = list(TRANSITIONS[current])
    while stack:
        status = stack.pop()
        if status in seen:
            continue
        seen.add(status)
        stack.extend(TRANSITIONS[status])
    return frozenset(seen)


def can_transition(current: SampleStatus, target: SampleStatus) -> bool:
    return target in reachable(current)


def assert_transition(current: SampleStatus, target: SampleStatus) -> None:
    if not can_transition(current, target):
        raise InvalidTransition(
            f"Illegal sample transition: {current.value} -> {target.value}")


def requires_payment_intent(target: SampleStatus) -> bool:
    return target == SampleStatus.INVOICE_SENT


def validate_invoice_terms(amount: Optional[float], due_date: Optional[date],
                           today: Optional[date] = None) -> None:
    """
    An invoice needs a finite amount worth at least one minor unit and a
    due date strictly after today.
    """
    today = today or date.today()

    if amount is None or not math.isfinite(amount) or amount <= 0:
        raise MissingRequiredField("Invoice amount must be a finite number greater than zero.")
    if to_minor_units(amount) <= 0:
        raise MissingRequiredField("Invoice amount must be at least one minor unit.")
    if due_date is None:
        raise MissingRequiredField("Invoice due date is required.")
    if due_date <= today:
        raise MissingRequiredField("Invoice due date must be in the future.")
