"""
Scoring of parent charges against groups of unlinked line items.

Each (parent, group) pair scores up to 100 points:

    date proximity   0-40  linear decay across the date window
    amount match     0-50  linear decay across the dollar tolerance
    order grouping   0-10  every line item carries the same order number

A pair whose earliest line item falls outside the date window is unmatched
regardless of amount. This module only computes scores; it never touches
the database.
"""
from datetime import date, datetime
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Dict, List, Sequence

from money_saver.models.transaction_link import (
    ConfidenceLevel,
    MatchCandidate,
    MatchingConfig,
    TransactionGroup,
    DEFAULT_MATCHING_CONFIG,
    get_confidence_level,
)
from money_saver.logging_config import get_logger

logger = get_logger(__name__)

MAX_DATE_SCORE = 40
MAX_AMOUNT_SCORE = 50
ORDER_GROUP_SCORE = 10


def _as_date(value) -> date:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    return date.fromisoformat(str(value).split("T")[0])


def _round_half_up(value: Decimal) -> int:
    return int(value.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def _days_apart(first, second) -> int:
    return abs((_as_date(first) - _as_date(second)).days)


def is_within_date_window(parent_date, child_date, window_days: int) -> bool:
    return _days_apart(parent_date, child_date) <= window_days


def validate_amount_match(parent_amount, children_total, tolerance) -> bool:
    """True when the line items add up to the charge within the dollar tolerance."""
    parent_amount = Decimal(str(parent_amount))
    children_total = Decimal(str(children_total))

    if parent_amount == 0 and children_total == 0:
        return True
    if parent_amount == 0 or children_total == 0:
        return False

    return abs(parent_amount - children_total) <= Decimal(str(tolerance))


def group_transactions_by_order(transactions: Sequence[Any]) -> List[TransactionGroup]:
    """
    Group line items by order number, falling back to the transaction date.

    Items from one order can ship on different days, so the order number takes
    precedence. Groups come back sorted by the date of their first item.
    """
    groups: Dict[str, TransactionGroup] = {}

    for transaction in transactions:
        key = transaction.order_id or _as_date(transaction.transaction_date).isoformat()

        if key not in groups:
            groups[key] = TransactionGroup(transaction_date=_as_date(transaction.transaction_date))

        group = groups[key]
        group.transactions.append(transaction)
        group.total_amount += Decimal(str(transaction.amount))

    return sorted(groups.values(), key=lambda g: g.transaction_date)


def calculate_date_score(parent_date, child_date, window_days: int) -> int:
    if not is_within_date_window(parent_date, child_date, window_days):
        return 0

    decay_rate = Decimal(MAX_DATE_SCORE) / Decimal(window_days)
    score = max(Decimal(0), MAX_DATE_SCORE - _days_apart(parent_date, child_date) * decay_rate)
    return _round_half_up(score)


def calculate_amount_score(parent_amount, children_total, tolerance) -> int:
    parent_amount = Decimal(str(parent_amount))
    tolerance = Decimal(str(tolerance))

    if parent_amount == 0:
        return 0

    difference = abs(parent_amount - Decimal(str(children_total)))
    if difference > tolerance:
        return 0

    return _round_half_up(MAX_AMOUNT_SCORE * (1 - difference / tolerance))


def calculate_order_group_score(transactions: Sequence[Any]) -> int:
    order_ids = {t.order_id for t in transactions}
    if len(order_ids) == 1 and None not in order_ids and "" not in order_ids:
        return ORDER_GROUP_SCORE
    return 0


def calculate_match_confidence(parent: Any, children: Sequence[Any],
                               config: MatchingConfig = DEFAULT_MATCHING_CONFIG) -> MatchCandidate:
    children = list(children)
    children_total = sum((Decimal(str(c.amount)) for c in children), Decimal("0"))
    earliest_child = min(children, key=lambda c: _as_date(c.transaction_date))

    date_score = calculate_date_score(parent.transaction_date, earliest_child.transaction_date, config.date_window)

    if date_score == 0:
        return MatchCandidate(
            parent_transaction=parent,
            child_transactions=children,
            date_score=0,
            amount_score=0,
            order_group_score=0,
            total_score=0,
            confidence_level=ConfidenceLevel.UNMATCHED,
        )

    amount_score = calculate_amount_score(parent.amount, children_total, config.amount_tolerance)
    order_group_score = calculate_order_group_score(children)
    total_score = date_score + amount_score + order_group_score

    return MatchCandidate(
        parent_transaction=parent,
        child_transactions=children,
        date_score=date_score,
        amount_score=amount_score,
        order_group_score=order_group_score,
        total_score=total_score,
        confidence_level=get_confidence_level(total_score),
    )


def matches_merchant(transaction: Any, keywords: Sequence[str]) -> bool:
    merchant = (transaction.merchant or "").lower()
    return any(keyword.lower() in merchant for keyword in keywords)


def find_matching_transactions(parents: Sequence[Any], children: Sequence[Any],
                               config: MatchingConfig = DEFAULT_MATCHING_CONFIG) -> List[MatchCandidate]:
    """
    Score every parent against every line item group inside its date window.

    Returns the pairs at or above ``config.suggest_threshold``, highest first.
    A parent may appear in several pairs; picking between them is left to the
    caller.
    """
    unlinked_children = [c for c in children if c.parent_transaction_id is None]

    if config.enable_merchant_matching:
        parents = [p for p in parents if matches_merchant(p, config.merchant_keywords)]

    logger.debug(f"Matching {len(parents)} parents against {len(unlinked_children)} unlinked children")

    matches: List[MatchCandidate] = []

    for parent in parents:
        if parent.parent_transaction_id is not None:
            logger.debug(f"Skipping parent {parent.id}: already linked as a child")
            continue

        candidates = [
            c for c in unlinked_children
            if is_within_date_window(parent.transaction_date, c.transaction_date, config.date_window)
        ]
        if not candidates:
            logger.debug(f"No candidates within {config.date_window} days of parent {parent.id}")
            continue

        for group in group_transactions_by_order(candidates):
            candidate = calculate_match_confidence(parent, group.transactions, config)

            if candidate.total_score >= config.suggest_threshold:
                matches.append(candidate)
            else:
                logger.debug(
                    f"Rejected group of {len(group.transactions)} for parent {parent.id}: "
                    f"score {candidate.total_score} < {config.suggest_threshold}"
                )

    matches.sort(key=lambda m: m.total_score, reverse=True)
    logger.debug(f"Found {len(matches)} matches")
    return matches
