import os
from typing import Optional, Dict, Any
from sqlalchemy import create_engine, ForeignKey, Index, UniqueConstraint, Boolean, Integer, String, Text, JSON, DECIMAL, DateTime, Date
from sqlalchemy.types import Enum
from sqlalchemy.orm import sessionmaker, DeclarativeBase, Mapped, relationship, mapped_column
from datetime import datetime, date
from uuid import UUID
from decimal import Decimal
import enum
from dotenv import load_dotenv

load_dotenv()

DATABASE_URL = os.environ.get("DATABASE_URL", "sqlite:///money_saver.db")


class NotFoundError(Exception):
    pass


class Base(DeclarativeBase):
    pass


class AccountType(str, enum.Enum):
    CHECKING = "checking"
    SAVINGS = "savings"
    CREDIT_CARD = "credit_card"
    INVESTMENT = "investment"
    OTHER = "other"


class BudgetPeriod(str, enum.Enum):
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    QUARTERLY = "quarterly"
    YEARLY = "yearly"


class LinkType(str, enum.Enum):
    AUTO = "auto"
    MANUAL = "manual"


class AlertType(str, enum.Enum):
    LARGE_PURCHASE = "large_purchase"
    ANOMALY = "anomaly"
    BUDGET_WARNING = "budget_warning"


class AlertSeverity(str, enum.Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class UserDB(Base):
    __tablename__ = "users"

    __table_args__ = (
        UniqueConstraint("email", name="uq_user_email"),
        UniqueConstraint("username", name="uq_user_username"),
        Index("idx_users_email", "email"),
    )

    # Core User Identification
    db_id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    id: Mapped[UUID] = mapped_column(unique=True, nullable=False)

    email: Mapped[str] = mapped_column(String(255), nullable=False)
    username: Mapped[str] = mapped_column(String(100), nullable=False)

    # Audit Trail
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    accounts = relationship("AccountDB", back_populates="user")
    transactions = relationship("TransactionDB", back_populates="user")
    categories = relationship("CategoryDB", back_populates="user")
    budgets = relationship("BudgetDB", back_populates="user")
    alert_settings = relationship("AlertSettingDB", back_populates="user")
    alert_events = relationship("AlertEventDB", back_populates="user")


class CategoryDB(Base):
    __tablename__ = "categories"

    __table_args__ = (
        UniqueConstraint("user_id", "name", name="uq_user_category_name"),
        Index("idx_categories_user", "user_id"),
    )

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    # NULL owner marks a system category shared by every user
    user_id: Mapped[Optional[int]] = mapped_column(ForeignKey("users.db_id"))
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    color: Mapped[Optional[str]] = mapped_column(String(7))  # Hex color code
    icon: Mapped[Optional[str]] = mapped_column(String(50))

    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    user = relationship("UserDB", back_populates="categories")
    transactions = relationship("TransactionDB", back_populates="category")
    budgets = relationship("BudgetDB", back_populates="category")

    @property
    def is_system(self) -> bool:
        return self.user_id is None


class AccountDB(Base):
    __tablename__ = "accounts"

    __table_args__ = (
        Index("idx_accounts_user", "user_id"),
    )

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.db_id"))

    name: Mapped[str] = mapped_column(String(255), nullable=False)  # "Chase Checking", "Amex Gold Card"
    account_type: Mapped[AccountType] = mapped_column(Enum(AccountType))
    balance: Mapped[Optional[Decimal]] = mapped_column(DECIMAL(15, 2))
    last_synced: Mapped[Optional[datetime]] = mapped_column(DateTime)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    user = relationship("UserDB", back_populates="accounts")
    transactions = relationship("TransactionDB", back_populates="account")


class TransactionDB(Base):
    __tablename__ = "transactions"

    __table_args__ = (
        # Performance indexes for common queries
        Index("idx_transactions_user_date", "user_id", "transaction_date"),
        Index("idx_transactions_category", "category_id"),
        Index("idx_transactions_parent", "parent_transaction_id"),
    )

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.db_id"))
    account_id: Mapped[Optional[int]] = mapped_column(ForeignKey("accounts.id", ondelete="SET NULL"))
    category_id: Mapped[Optional[int]] = mapped_column(ForeignKey("categories.id", ondelete="SET NULL"))

    # Basic Transaction Data
    transaction_date: Mapped[date] = mapped_column(Date, nullable=False)
    amount: Mapped[Decimal] = mapped_column(DECIMAL(15, 2), nullable=False)
    merchant: Mapped[Optional[str]] = mapped_column(String(255))
    description: Mapped[str] = mapped_column(String(500), nullable=False, default="")
    receipt_url: Mapped[Optional[str]] = mapped_column(Text)
    is_income: Mapped[bool] = mapped_column(Boolean, default=False)
    order_id: Mapped[Optional[str]] = mapped_column(String(100))  # Retailer order number for line items

    # Linking
    parent_transaction_id: Mapped[Optional[int]] = mapped_column(ForeignKey("transactions.id", ondelete="SET NULL"))
    link_type: Mapped[Optional[LinkType]] = mapped_column(Enum(LinkType))
    link_confidence: Mapped[Optional[int]] = mapped_column(Integer)  # 0-100
    link_metadata: Mapped[Dict[str, Any]] = mapped_column(JSON, default=dict)

    # Audit Trail
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    user = relationship("UserDB", back_populates="transactions")
    account = relationship("AccountDB", back_populates="transactions")
    category = relationship("CategoryDB", back_populates="transactions")
    parent = relationship("TransactionDB", remote_side=[id], back_populates="children")
    children = relationship("TransactionDB", back_populates="parent")


class BudgetDB(Base):
    __tablename__ = "budgets"

    __table_args__ = (
        UniqueConstraint("user_id", "category_id", "period", "start_date", name="uq_user_budget_period"),
        Index("idx_budgets_category", "category_id"),
    )

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.db_id"))
    category_id: Mapped[int] = mapped_column(ForeignKey("categories.id", ondelete="CASCADE"))

    amount: Mapped[Decimal] = mapped_column(DECIMAL(15, 2), nullable=False)
    period: Mapped[BudgetPeriod] = mapped_column(Enum(BudgetPeriod))
    start_date: Mapped[date] = mapped_column(Date, nullable=False)
    end_date: Mapped[Optional[date]] = mapped_column(Date)  # Open-ended when NULL

    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    user = relationship("UserDB", back_populates="budgets")
    category = relationship("CategoryDB", back_populates="budgets")


class AlertSettingDB(Base):
    __tablename__ = "alerts"

    __table_args__ = (
        # One setting per alert type per user
        UniqueConstraint("user_id", "type", name="uq_user_alert_type"),
    )

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.db_id"))

    type: Mapped[AlertType] = mapped_column(Enum(AlertType))
    threshold: Mapped[Optional[Decimal]] = mapped_column(DECIMAL(15, 2))
    is_enabled: Mapped[bool] = mapped_column(Boolean, default=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    user = relationship("UserDB", back_populates="alert_settings")


class AlertEventDB(Base):
    __tablename__ = "alert_events"

    __table_args__ = (
        Index("idx_alert_events_user_read", "user_id", "is_read"),
        Index("idx_alert_events_created_at", "created_at"),
    )

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.db_id"))
    alert_id: Mapped[Optional[int]] = mapped_column(ForeignKey("alerts.id", ondelete="SET NULL"))
    transaction_id: Mapped[Optional[int]] = mapped_column(ForeignKey("transactions.id", ondelete="CASCADE"))
    budget_id: Mapped[Optional[int]] = mapped_column(ForeignKey("budgets.id", ondelete="CASCADE"))

    type: Mapped[AlertType] = mapped_column(Enum(AlertType))
    message: Mapped[str] = mapped_column(Text, nullable=False)
    severity: Mapped[AlertSeverity] = mapped_column(Enum(AlertSeverity))
    is_read: Mapped[bool] = mapped_column(Boolean, default=False)
    event_metadata: Mapped[Optional[Dict[str, Any]]] = mapped_column("metadata", JSON)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)

    user = relationship("UserDB", back_populates="alert_events")


engine = create_engine(DATABASE_URL, echo=os.getenv("SQL_ECHO", "false").lower() == "true")
session_local = sessionmaker(autocommit=False, autoflush=False, bind=engine)


# Dependency to get the database session
def get_db():
    database = session_local()
    try:
        yield database
    finally:
        database.close()
