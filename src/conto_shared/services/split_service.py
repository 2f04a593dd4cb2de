"""
Equal split of the remaining bill.

Informational only: paying from the split screen settles the whole remaining
bill through ``settlement_service.settle_all``.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import ROUND_DOWN, ROUND_HALF_UP, Decimal

from conto_shared.constants import CENT, ZERO
from conto_shared.services.bill_service import get_bill


def _people(customer_count) -> int:
    try:
        return max(int(customer_count or 0), 1)
    except (TypeError, ValueError):
        return 1


def per_person_share(total, customer_count) -> Decimal:
    """Total divided by the head count (at least 1), rounded half-up to cents."""
    people = _people(customer_count)
    return (Decimal(str(total)) / people).quantize(CENT, ROUND_HALF_UP)


def equal_shares(total, customer_count) -> list[Decimal]:
    """
    One share per person; the last one absorbs the rounding remainder so the
    shares always add up to the total.
    """
    people = _people(customer_count)
    total = Decimal(str(total)).quantize(CENT, ROUND_HALF_UP)
    share = per_person_share(total, people)
    if share * (people - 1) > total:
        share = (total / people).quantize(CENT, ROUND_DOWN)
    shares = [share] * (people - 1)
    shares.append(total - share * (people - 1))
    return shares


@dataclass
class SplitSummary:
    session_id: int
    total: Decimal
    people: int
    per_person: Decimal
    shares: list[Decimal]


def split_bill(session_id: int, people: int | None = None, now: datetime | None = None) -> SplitSummary:
    """Split the current bill by ``people``, defaulting to the session head count."""
    bill = get_bill(session_id, now=now)
    count = _people(people if people is not None else bill.customer_count)
    total = bill.total if bill.total > ZERO else ZERO
    return SplitSummary(
        session_id=session_id,
        total=total,
        people=count,
        per_person=per_person_share(total, count),
        shares=equal_shares(total, count),
    )
