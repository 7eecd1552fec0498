"""
Module: ledger_kernel.domain.aging
Responsibility:
    Classify open receivables and payables into time-since-due buckets and
    group them by counterparty.

Architecture position:
    Kernel > Domain -- pure calculation, zero I/O.  Documents are owned by
    the sales and purchasing modules and handed in as AgedDocument values.

Invariants enforced:
    - Only documents with outstanding_amount > 0 and a status other than
      cancelled are aged.
    - Every aged document lands in exactly one bucket, so the bucket totals
      always add up to the outstanding total.
    - Deterministic: identical inputs produce identical reports.  All
      inputs are frozen dataclasses, so a tuple of documents can key a
      cache together with the as-of date.

Usage:
    from ledger_kernel.domain.aging import AgedDocument, age_documents

    report = age_documents(
        [AgedDocument("INV-1", "cust-1", "Acme", date(2024, 1, 1), Decimal("100000"))],
        as_of_date=date(2024, 2, 5),
    )
    report.totals["31-60"]  # Decimal("100000")
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import Iterable, Sequence

from ledger_kernel.logging_config import get_logger

logger = get_logger("domain.aging")

CANCELLED_STATUS = "cancelled"


@dataclass(frozen=True)
class AgeBucket:
    """
    A contiguous range of days past due.

    min_days None means unbounded below (everything not yet overdue);
    max_days None means unbounded above.
    """

    name: str
    min_days: int | None
    max_days: int | None

    def __post_init__(self) -> None:
        if (
            self.min_days is not None
            and self.max_days is not None
            and self.max_days < self.min_days
        ):
            raise ValueError("max_days cannot be less than min_days")

    def contains(self, age_days: int) -> bool:
        if self.min_days is not None and age_days < self.min_days:
            return False
        if self.max_days is not None and age_days > self.max_days:
            return False
        return True


CURRENT = "current"
DAYS_1_30 = "1-30"
DAYS_31_60 = "31-60"
DAYS_61_90 = "61-90"
OVER_90 = "over_90"

STANDARD_BUCKETS: tuple[AgeBucket, ...] = (
    AgeBucket(CURRENT, None, 0),
    AgeBucket(DAYS_1_30, 1, 30),
    AgeBucket(DAYS_31_60, 31, 60),
    AgeBucket(DAYS_61_90, 61, 90),
    AgeBucket(OVER_90, 91, None),
)


@dataclass(frozen=True)
class AgedDocument:
    """An invoice or bill as seen by the aging report."""

    document_number: str
    counterparty_id: str
    counterparty_name: str
    due_date: date
    total_amount: Decimal
    paid_amount: Decimal = Decimal("0")
    status: str = "open"
    document_date: date | None = None

    @property
    def outstanding_amount(self) -> Decimal:
        return self.total_amount - self.paid_amount

    @property
    def is_open(self) -> bool:
        return self.outstanding_amount > 0 and self.status.lower() != CANCELLED_STATUS


@dataclass(frozen=True)
class AgedItem:
    """A document with its computed age and bucket."""

    document: AgedDocument
    age_days: int
    bucket: str

    @property
    def amount(self) -> Decimal:
        return self.document.outstanding_amount

    @property
    def days_overdue(self) -> int:
        return max(0, self.age_days)


def _empty_totals(buckets: Sequence[AgeBucket]) -> dict[str, Decimal]:
    return {bucket.name: Decimal("0") for bucket in buckets}


@dataclass(frozen=True)
class CounterpartyAging:
    """Per-counterparty subtotals."""

    counterparty_id: str
    counterparty_name: str
    items: tuple[AgedItem, ...]
    totals: dict[str, Decimal] = field(default_factory=dict)

    @property
    def total(self) -> Decimal:
        return sum(self.totals.values(), Decimal("0"))


@dataclass(frozen=True)
class AgingReport:
    """
    Aging report grouped by counterparty with an overall summary.

    Guarantees:
        - ``totals`` has an entry for every bucket, zero when empty.
        - ``total`` equals the sum of outstanding amounts of the aged items.
    """

    as_of_date: date
    buckets: tuple[AgeBucket, ...]
    counterparties: tuple[CounterpartyAging, ...]
    totals: dict[str, Decimal] = field(default_factory=dict)

    @property
    def total(self) -> Decimal:
        return sum(self.totals.values(), Decimal("0"))

    @property
    def items(self) -> tuple[AgedItem, ...]:
        return tuple(item for cp in self.counterparties for item in cp.items)

    def items_in_bucket(self, bucket_name: str) -> tuple[AgedItem, ...]:
        return tuple(i for i in self.items if i.bucket == bucket_name)

    def for_counterparty(self, counterparty_id: str) -> CounterpartyAging | None:
        for cp in self.counterparties:
            if cp.counterparty_id == counterparty_id:
                return cp
        return None


def age_in_days(due_date: date, as_of_date: date) -> int:
    """Days from due_date to as_of_date; zero or negative when not yet due."""
    return (as_of_date - due_date).days


def classify(age_days: int, buckets: Sequence[AgeBucket] = STANDARD_BUCKETS) -> str:
    """
    Name of the bucket containing age_days.

    Raises:
        ValueError: If the buckets leave age_days uncovered.
    """
    for bucket in buckets:
        if bucket.contains(age_days):
            return bucket.name
    raise ValueError(f"Age {age_days} does not fit any bucket")


def age_documents(
    documents: Iterable[AgedDocument],
    as_of_date: date,
    buckets: Sequence[AgeBucket] = STANDARD_BUCKETS,
) -> AgingReport:
    """
    Bucket open documents by days past due, grouped by counterparty.

    Counterparties are ordered by name then id; items inside a
    counterparty by due date then document number.
    """
    grouped: dict[str, list[AgedItem]] = {}
    names: dict[str, str] = {}
    skipped = 0

    for doc in documents:
        if not doc.is_open:
            skipped += 1
            continue
        age = age_in_days(doc.due_date, as_of_date)
        item = AgedItem(document=doc, age_days=age, bucket=classify(age, buckets))
        grouped.setdefault(doc.counterparty_id, []).append(item)
        names.setdefault(doc.counterparty_id, doc.counterparty_name)

    overall = _empty_totals(buckets)
    counterparties: list[CounterpartyAging] = []
    for cp_id in sorted(grouped, key=lambda key: (names[key], key)):
        items = sorted(
            grouped[cp_id],
            key=lambda i: (i.document.due_date, i.document.document_number),
        )
        totals = _empty_totals(buckets)
        for item in items:
            totals[item.bucket] += item.amount
            overall[item.bucket] += item.amount
        counterparties.append(
            CounterpartyAging(
                counterparty_id=cp_id,
                counterparty_name=names[cp_id],
                items=tuple(items),
                totals=totals,
            )
        )

    logger.debug(
        "documents_aged",
        extra={
            "as_of_date": as_of_date.isoformat(),
            "counterparty_count": len(counterparties),
            "skipped_count": skipped,
        },
    )

    return AgingReport(
        as_of_date=as_of_date,
        buckets=tuple(buckets),
        counterparties=tuple(counterparties),
        totals=overall,
    )
