"""Content fingerprints used to decide whether cached analysis is stale."""

from __future__ import annotations

import hashlib
from collections import defaultdict
from typing import Sequence

from schemas import BudgetPlanIn, CategoryIn, TransactionIn


def _digest(parts: Sequence[object]) -> str:
    raw = "|".join(str(p) for p in parts)
    return hashlib.sha256(raw.encode("utf-8")).hexdigest()


def dataset_fingerprint(
    transactions: Sequence[TransactionIn],
    categories: Sequence[CategoryIn],
    plans: Sequence[BudgetPlanIn],
) -> str:
    total_cents = sum(t.amount_cents for t in transactions)
    total_planned_cents = sum(p.amount_cents for p in plans)
    latest = max((t.timestamp for t in transactions), default=None)
    return _digest(
        [
            len(transactions),
            total_cents,
            len(categories),
            len(plans),
            total_planned_cents,
            latest.isoformat() if latest else "",
        ]
    )


def category_fingerprints(
    transactions: Sequence[TransactionIn],
    categories: Sequence[CategoryIn],
) -> dict[str, str]:
    """One digest per known category over its (id, amount, timestamp) rows.

    Rows are sorted first so the digest does not depend on input order.
    """
    rows: dict[str, list[tuple[str, int, str]]] = defaultdict(list)
    for txn in transactions:
        if txn.category_id is None:
            continue
        rows[txn.category_id].append(
            (txn.id, txn.amount_cents, txn.timestamp.isoformat())
        )

    fingerprints: dict[str, str] = {}
    for category in categories:
        fingerprints[category.id] = _digest(sorted(rows.get(category.id, [])))
    return fingerprints


def changed_categories(
    previous: dict[str, str], current: dict[str, str]
) -> set[str]:
    """Categories whose digest differs from, or is missing in, ``previous``."""
    return {cid for cid, digest in current.items() if previous.get(cid) != digest}
