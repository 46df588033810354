"""
Alert detection run after a transaction is created.

Each check reads the user's setting for its alert type and does nothing when
the setting is missing or disabled. Checks return a ``ServiceResponse``: the
created event (or ``None`` when nothing fired) and an error message when the
store failed.
"""
import statistics
from datetime import date, timedelta
from decimal import Decimal, ROUND_HALF_UP
from typing import List, Optional

from sqlalchemy import or_
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from money_saver.db.core import AlertEventDB, AlertSeverity, AlertType, BudgetDB, TransactionDB
from money_saver.models.alert import AlertEventCreate
from money_saver.models.budget import BudgetSpend
from money_saver.models.response import ServiceResponse
from money_saver.crud import crud_alert
from money_saver.logging_config import get_logger

logger = get_logger(__name__)

DEFAULT_LARGE_PURCHASE_THRESHOLD = Decimal("100")
DEFAULT_BUDGET_WARNING_THRESHOLD = Decimal("80")
HIGH_SEVERITY_MULTIPLIER = 2

ANOMALY_LOOKBACK_DAYS = 90
ANOMALY_MIN_SAMPLES = 10
ANOMALY_Z_SCORE = 3


def _enabled_setting(db: Session, user_id: int, alert_type: AlertType):
    setting = crud_alert.read_alert_setting_by_type(db, user_id, alert_type)
    if setting and setting.is_enabled:
        return setting
    return None


def _at_merchant(transaction: TransactionDB) -> str:
    return f" at {transaction.merchant}" if transaction.merchant else ""


def check_large_purchase_alert(db: Session, transaction: TransactionDB) -> ServiceResponse[AlertEventDB]:
    if transaction.is_income:
        return ServiceResponse()

    try:
        setting = _enabled_setting(db, transaction.user_id, AlertType.LARGE_PURCHASE)
        if not setting:
            return ServiceResponse()

        threshold = setting.threshold or DEFAULT_LARGE_PURCHASE_THRESHOLD
        if transaction.amount < threshold:
            return ServiceResponse()

        severity = AlertSeverity.HIGH if transaction.amount >= threshold * HIGH_SEVERITY_MULTIPLIER else AlertSeverity.MEDIUM

        event = crud_alert.create_alert_event(db, transaction.user_id, AlertEventCreate(
            alert_id=setting.id,
            transaction_id=transaction.id,
            type=AlertType.LARGE_PURCHASE,
            message=f"Large purchase detected: ${transaction.amount:.2f}{_at_merchant(transaction)}",
            severity=severity,
            metadata={
                "amount": float(transaction.amount),
                "threshold": float(threshold),
                "merchant": transaction.merchant,
            },
        ))
    except (SQLAlchemyError, ValueError) as e:
        return ServiceResponse(error=str(e))

    return ServiceResponse(data=event)


def calculate_budget_status(db: Session, budget_id: int) -> ServiceResponse[BudgetSpend]:
    """
    Expense total for the budget's category from its start date to its end
    date, or to today for open-ended budgets. A missing budget yields no data
    and no error.
    """
    try:
        budget = db.query(BudgetDB).filter(BudgetDB.id == budget_id).first()
        if not budget:
            return ServiceResponse()

        end_date = budget.end_date or date.today()

        rows = db.query(TransactionDB.amount).filter(
            TransactionDB.user_id == budget.user_id,
            TransactionDB.category_id == budget.category_id,
            TransactionDB.is_income.is_(False),
            TransactionDB.transaction_date >= budget.start_date,
            TransactionDB.transaction_date <= end_date
        ).all()
    except SQLAlchemyError as e:
        return ServiceResponse(error=str(e))

    spent = sum((row.amount for row in rows), Decimal("0"))
    limit = Decimal(str(budget.amount))
    percentage = 0
    if limit > 0:
        percentage = int((spent / limit * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))

    return ServiceResponse(data=BudgetSpend(spent=spent, limit=limit, percentage=percentage))


def check_budget_warning_alert(db: Session, budget_id: int) -> ServiceResponse[AlertEventDB]:
    try:
        budget = db.query(BudgetDB).filter(BudgetDB.id == budget_id).first()
        if not budget:
            return ServiceResponse()

        setting = _enabled_setting(db, budget.user_id, AlertType.BUDGET_WARNING)
        if not setting:
            return ServiceResponse()
    except SQLAlchemyError as e:
        return ServiceResponse(error=str(e))

    threshold = setting.threshold or DEFAULT_BUDGET_WARNING_THRESHOLD

    status = calculate_budget_status(db, budget_id)
    if status.error or not status.data:
        return ServiceResponse(error=status.error)

    spend = status.data
    if spend.percentage < threshold:
        return ServiceResponse()

    exceeded = spend.percentage >= 100
    prefix = "Budget exceeded" if exceeded else "Budget warning"

    try:
        event = crud_alert.create_alert_event(db, budget.user_id, AlertEventCreate(
            alert_id=setting.id,
            budget_id=budget_id,
            type=AlertType.BUDGET_WARNING,
            message=f"{prefix}: {spend.percentage}% spent (${spend.spent:.2f} of ${spend.limit:.2f})",
            severity=AlertSeverity.HIGH if exceeded else AlertSeverity.MEDIUM,
            metadata={
                "budget_id": budget_id,
                "spent": float(spend.spent),
                "limit": float(spend.limit),
                "percentage": spend.percentage,
            },
        ))
    except ValueError as e:
        return ServiceResponse(error=str(e))

    return ServiceResponse(data=event)


def detect_anomalies(db: Session, transaction: TransactionDB) -> ServiceResponse[bool]:
    """
    Flag a transaction 3 or more standard deviations from the category mean.

    The baseline is the user's other expenses in the same category over the
    last 90 days. With fewer than 10 of them there is no verdict and the
    result is False.
    """
    if transaction.is_income or transaction.category_id is None:
        return ServiceResponse(data=False)

    query = db.query(TransactionDB.amount).filter(
        TransactionDB.user_id == transaction.user_id,
        TransactionDB.category_id == transaction.category_id,
        TransactionDB.is_income.is_(False),
        TransactionDB.transaction_date >= date.today() - timedelta(days=ANOMALY_LOOKBACK_DAYS)
    )
    if transaction.id is not None:
        query = query.filter(TransactionDB.id != transaction.id)

    try:
        history = query.all()
    except SQLAlchemyError as e:
        return ServiceResponse(data=False, error=str(e))

    if len(history) < ANOMALY_MIN_SAMPLES:
        return ServiceResponse(data=False)

    amounts = [float(row.amount) for row in history]
    mean = statistics.fmean(amounts)
    std_dev = statistics.pstdev(amounts, mu=mean)
    amount = float(transaction.amount)

    if std_dev == 0:
        # Every sample is identical; any different amount is an outlier
        return ServiceResponse(data=amount != mean)

    z_score = abs(amount - mean) / std_dev
    logger.debug(f"Transaction {transaction.id}: z-score {z_score:.2f} over {len(amounts)} samples")
    return ServiceResponse(data=z_score >= ANOMALY_Z_SCORE)


def check_anomaly_alert(db: Session, transaction: TransactionDB) -> ServiceResponse[AlertEventDB]:
    try:
        setting = _enabled_setting(db, transaction.user_id, AlertType.ANOMALY)
    except SQLAlchemyError as e:
        return ServiceResponse(error=str(e))
    if not setting:
        return ServiceResponse()

    detection = detect_anomalies(db, transaction)
    if detection.error or not detection.data:
        return ServiceResponse(error=detection.error)

    try:
        event = crud_alert.create_alert_event(db, transaction.user_id, AlertEventCreate(
            alert_id=setting.id,
            transaction_id=transaction.id,
            type=AlertType.ANOMALY,
            message=f"Unusual spending detected: ${transaction.amount:.2f}{_at_merchant(transaction)}",
            severity=AlertSeverity.MEDIUM,
            metadata={
                "amount": float(transaction.amount),
                "merchant": transaction.merchant,
            },
        ))
    except ValueError as e:
        return ServiceResponse(error=str(e))

    return ServiceResponse(data=event)


def _budgets_covering(db: Session, transaction: TransactionDB) -> List[BudgetDB]:
    if transaction.category_id is None:
        return []

    return db.query(BudgetDB).filter(
        BudgetDB.user_id == transaction.user_id,
        BudgetDB.category_id == transaction.category_id,
        BudgetDB.start_date <= transaction.transaction_date,
        or_(BudgetDB.end_date.is_(None), BudgetDB.end_date >= transaction.transaction_date)
    ).all()


def run_transaction_alerts(db: Session, transaction: TransactionDB) -> List[AlertEventDB]:
    """
    Run every alert check for a new transaction and return the events created.

    Failures are logged and never raised; one failing check does not stop the
    others.
    """
    checks = [
        ("large purchase", lambda: check_large_purchase_alert(db, transaction)),
        ("anomaly", lambda: check_anomaly_alert(db, transaction)),
    ]

    try:
        budgets = _budgets_covering(db, transaction)
    except SQLAlchemyError:
        logger.exception(f"Could not load budgets for transaction {transaction.id}")
        budgets = []

    for budget in budgets:
        checks.append((f"budget {budget.id}", lambda budget_id=budget.id: check_budget_warning_alert(db, budget_id)))

    events: List[AlertEventDB] = []
    for name, check in checks:
        try:
            result: Optional[ServiceResponse] = check()
        except Exception:
            logger.exception(f"{name} alert check failed for transaction {transaction.id}")
            continue

        if result.error:
            logger.error(f"{name} alert check failed for transaction {transaction.id}: {result.error}")
        elif result.data is not None:
            logger.info(f"{name} alert fired for transaction {transaction.id}")
            events.append(result.data)

    return events
