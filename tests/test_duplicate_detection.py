from datetime import date, datetime
from decimal import Decimal
from types import SimpleNamespace

import pytest
from sqlalchemy.exc import OperationalError

from money_saver.models.transaction import DuplicateCheckResult
from money_saver.services import duplicate_detection
from money_saver.services.duplicate_detection import (
    batch_check_duplicates,
    check_against_list,
    check_duplicate,
    get_duplicate_stats,
    normalize_date,
)


def txn(amount, merchant="Corner Market", description="weekly shop", transaction_date=date(2024, 3, 5)):
    return SimpleNamespace(
        transaction_date=transaction_date,
        amount=Decimal(str(amount)),
        merchant=merchant,
        description=description,
    )


EXISTING = txn("42.10")


@pytest.mark.parametrize("candidate, expected_confidence", [
    (txn("42.10"), 1.0),
    (txn("42.10", merchant="  CORNER market "), 1.0),
    (txn("42.10", description="something else"), 0.9),
    (txn("42.10", merchant="Other Store"), 0.8),
])
def test_match_confidence(candidate, expected_confidence):
    result = check_against_list(candidate, [EXISTING])

    assert result.is_duplicate
    assert result.confidence == expected_confidence
    assert result.matched_transaction is EXISTING


def test_amount_within_one_cent_matches():
    assert check_against_list(txn("42.11"), [EXISTING]).is_duplicate


def test_amount_two_cents_apart_is_new():
    result = check_against_list(txn("42.12"), [EXISTING])

    assert not result.is_duplicate
    assert result.confidence == 0
    assert result.matched_transaction is None


def test_different_date_is_new():
    assert not check_against_list(txn("42.10", transaction_date=date(2024, 3, 6)), [EXISTING]).is_duplicate


def test_nothing_in_common_but_date_and_amount_is_new():
    candidate = txn("42.10", merchant="Other Store", description="other")
    assert not check_against_list(candidate, [EXISTING]).is_duplicate


def test_description_only_match_needs_merchants_on_both_sides():
    existing = txn("10.00", merchant=None, description="coffee")
    candidate = txn("10.00", merchant="Cafe", description="coffee")

    assert not check_against_list(candidate, [existing]).is_duplicate


def test_missing_merchants_compare_equal():
    existing = txn("10.00", merchant=None, description="coffee")
    candidate = txn("10.00", merchant="", description="tea")

    result = check_against_list(candidate, [existing])
    assert result.is_duplicate
    assert result.confidence == 0.9


def test_first_match_in_pool_wins():
    first = txn("42.10", description="something else")
    second = txn("42.10")

    result = check_against_list(txn("42.10"), [first, second])
    assert result.matched_transaction is first
    assert result.confidence == 0.9


def test_empty_pool():
    assert check_against_list(txn("1.00"), []) == DuplicateCheckResult(is_duplicate=False, confidence=0)


@pytest.mark.parametrize("value", [
    date(2024, 3, 5),
    datetime(2024, 3, 5, 18, 30),
    "2024-03-05",
    "2024-03-05T18:30:00Z",
    "2024-03-05 18:30:00",
])
def test_normalize_date(value):
    assert normalize_date(value) == "2024-03-05"


def test_duplicate_stats():
    results = [
        DuplicateCheckResult(is_duplicate=True, confidence=1.0),
        DuplicateCheckResult(is_duplicate=False, confidence=0),
        DuplicateCheckResult(is_duplicate=False, confidence=0),
        DuplicateCheckResult(is_duplicate=True, confidence=0.8),
    ]

    stats = get_duplicate_stats(results)
    assert stats.total == 4
    assert stats.duplicates == 2
    assert stats.new == 2
    assert stats.duplicate_percentage == 50.0


def test_duplicate_stats_empty():
    stats = get_duplicate_stats([])
    assert stats.total == 0
    assert stats.duplicate_percentage == 0.0


def test_check_duplicate_queries_the_store(db, user, make_transaction):
    stored = make_transaction("42.10", date(2024, 3, 5), "Corner Market", description="weekly shop")

    result = check_duplicate(db, user.db_id, txn("42.10"))
    assert result.is_duplicate
    assert result.matched_transaction.id == stored.id


def test_check_duplicate_ignores_other_users(db, user, other_user, make_transaction):
    make_transaction("42.10", date(2024, 3, 5), "Corner Market", description="weekly shop",
                     user_id=other_user.db_id)

    assert not check_duplicate(db, user.db_id, txn("42.10")).is_duplicate


def test_batch_check_keeps_input_order(db, user, make_transaction):
    make_transaction("42.10", date(2024, 3, 5), "Corner Market", description="weekly shop")
    make_transaction("8.00", date(2024, 3, 9), "Bakery", description="bread")

    candidates = [
        txn("99.00", transaction_date=date(2024, 3, 7)),
        txn("8.00", merchant="Bakery", description="bread", transaction_date=date(2024, 3, 9)),
        txn("42.10"),
    ]
    results = batch_check_duplicates(db, user.db_id, candidates)

    assert [r.is_duplicate for r in results] == [False, True, True]


def test_batch_check_empty(db, user):
    assert batch_check_duplicates(db, user.db_id, []) == []


def test_batch_check_store_failure_treats_everything_as_new(db, user, monkeypatch):
    def broken_query(*args, **kwargs):
        raise OperationalError("SELECT", {}, Exception("database is locked"))

    monkeypatch.setattr(db, "query", broken_query)

    results = batch_check_duplicates(db, user.db_id, [txn("1.00"), txn("2.00")])
    assert results == [duplicate_detection.NOT_A_DUPLICATE] * 2
