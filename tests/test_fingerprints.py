from datetime import date

from factories import category, plan, series, txn
from fingerprints import category_fingerprints, changed_categories, dataset_fingerprint

CATS = [category("food"), category("rent")]


def test_dataset_fingerprint_ignores_order() -> None:
    txns = series([10, 20, 30])

    assert dataset_fingerprint(txns, CATS, []) == dataset_fingerprint(
        list(reversed(txns)), CATS, []
    )


def test_dataset_fingerprint_tracks_summary_fields() -> None:
    txns = series([10, 20, 30])
    base = dataset_fingerprint(txns, CATS, [])

    assert dataset_fingerprint(series([10, 20, 31]), CATS, []) != base
    assert dataset_fingerprint(txns, CATS[:1], []) != base
    assert dataset_fingerprint(txns, CATS, [plan("p", "food", 50)]) != base
    assert (
        dataset_fingerprint(txns + [txn("late", 0, date(2025, 4, 1))], CATS, [])
        != base
    )


def test_category_fingerprints_change_only_where_data_changed() -> None:
    food = series([10, 20, 30])
    rent = series([900], category_id="rent", prefix="r")
    before = category_fingerprints(food + rent, CATS)

    after = category_fingerprints(series([10, 20, 35]) + rent, CATS)

    assert changed_categories(before, after) == {"food"}
    assert changed_categories(before, before) == set()


def test_missing_previous_fingerprint_counts_as_changed() -> None:
    current = category_fingerprints(series([10]), CATS)

    assert changed_categories({}, current) == {"food", "rent"}
