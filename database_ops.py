"""
Database operations module for the expense tracker record store.

This module defines the persisted records (expenses, spending limits and
notifications) using SQLAlchemy ORM, and the per-collection stores that
expose the append / scan-by-user / update-by-id / delete-by-id contract.
Supports SQLite by default with easy migration to other databases.
"""

import enum
import logging
import uuid
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional, Type

from sqlalchemy import (
    Boolean,
    Column,
    Date,
    DateTime,
    Enum,
    Index,
    String,
    TypeDecorator,
    create_engine,
)
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, declarative_base, sessionmaker

from exceptions import DatabaseError, ValidationError
from utils import ensure_utc, to_decimal, utc_now

# Configure logging
logger = logging.getLogger(__name__)


def new_record_id() -> str:
    """Generate a globally unique record identifier."""
    return str(uuid.uuid4())


class _LabeledEnum(enum.Enum):
    """Enum whose members can be parsed from their value or member name."""

    @classmethod
    def parse(cls, value: Any) -> "_LabeledEnum":
        """
        Resolve a member from a member, its value, or its name (case-insensitive).

        Raises:
            ValidationError: If no member matches
        """
        if isinstance(value, cls):
            return value
        text = str(value or "").strip()
        lowered = text.lower()
        for member in cls:
            if lowered in (member.value.lower(), member.name.lower()):
                return member
        raise ValidationError(
            f"Unknown {cls.__name__}: {text!r}",
            details={"allowed": ", ".join(m.value for m in cls)}
        )

    def __str__(self) -> str:
        return self.value


class ExpenseCategory(_LabeledEnum):
    """The fixed set of expense classification tags."""
    FOOD_DINING = "Food & Dining"
    TRANSPORTATION = "Transportation"
    SHOPPING = "Shopping"
    ENTERTAINMENT = "Entertainment"
    BILLS_UTILITIES = "Bills & Utilities"
    HEALTHCARE = "Healthcare"
    TRAVEL = "Travel"
    EDUCATION = "Education"
    PERSONAL_CARE = "Personal Care"
    OTHER = "Other"


class LimitPeriod(_LabeledEnum):
    """Declared recurrence of a spending limit."""
    WEEKLY = "weekly"
    MONTHLY = "monthly"


class NotificationType(_LabeledEnum):
    """Severity of a notification."""
    WARNING = "warning"
    INFO = "info"
    SUCCESS = "success"
    ERROR = "error"


class Money(TypeDecorator):
    """
    Exact decimal amount stored as TEXT.

    SQLite has no native decimal type; storing the string form keeps cents
    exact. Amounts are never compared in SQL.
    """

    impl = String(32)
    cache_ok = True

    @property
    def python_type(self) -> Type[Any]:  # type: ignore[override]
        return Decimal

    def process_bind_param(self, value: Any, dialect) -> Any:  # type: ignore[override]
        if value is None:
            return None
        return str(to_decimal(value))

    def process_result_value(self, value: Any, dialect) -> Any:  # type: ignore[override]
        if value is None:
            return None
        return Decimal(value)


class UTCDateTime(TypeDecorator):
    """Timezone-aware UTC timestamp, including on SQLite where tzinfo is dropped."""

    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value: Any, dialect) -> Any:  # type: ignore[override]
        if value is None:
            return None
        return ensure_utc(value)

    def process_result_value(self, value: Any, dialect) -> Any:  # type: ignore[override]
        if value is None:
            return None
        return ensure_utc(value)


# Base class for declarative models
Base = declarative_base()


class Expense(Base):
    """
    SQLAlchemy model representing a single expense.

    Attributes:
        id: Caller-supplied unique identifier
        user_id: Owning user
        amount: Non-negative decimal amount
        category: Expense category
        description: Free-text description
        date: Calendar date the expense occurred
        created_at: When the record was created (UTC)
        receipt_url: Optional link to a receipt image
    """

    __tablename__ = "expenses"

    id = Column(String(64), primary_key=True, default=new_record_id)
    user_id = Column(String(64), nullable=False, index=True)
    amount = Column(Money(), nullable=False)
    category = Column(Enum(ExpenseCategory), nullable=False)
    description = Column(String(500), nullable=False)
    date = Column(Date, nullable=False, index=True)
    created_at = Column(UTCDateTime(), default=utc_now, nullable=False)
    receipt_url = Column(String(1000), nullable=True)

    def __repr__(self) -> str:
        """String representation of the expense."""
        return (
            f"<Expense(id={self.id}, date={self.date}, category={self.category}, "
            f"amount={self.amount})>"
        )

    def to_dict(self) -> Dict[str, Any]:
        """Serialize using the field names of the JSON export."""
        return {
            "id": self.id,
            "userId": self.user_id,
            "amount": float(self.amount),
            "category": str(self.category),
            "description": self.description,
            "date": self.date.isoformat(),
            "createdAt": self.created_at.isoformat() if self.created_at else None,
            "receiptUrl": self.receipt_url,
        }


class SpendingLimit(Base):
    """
    SQLAlchemy model representing a category spending limit.

    Attributes:
        id: Unique identifier
        user_id: Owning user
        category: Category the limit applies to
        amount: Positive limit amount
        period: Declared recurrence (weekly or monthly)
        created_at: When the limit was created (UTC)
    """

    __tablename__ = "spending_limits"

    id = Column(String(64), primary_key=True, default=new_record_id)
    user_id = Column(String(64), nullable=False, index=True)
    category = Column(Enum(ExpenseCategory), nullable=False)
    amount = Column(Money(), nullable=False)
    period = Column(Enum(LimitPeriod), nullable=False, default=LimitPeriod.MONTHLY)
    created_at = Column(UTCDateTime(), default=utc_now, nullable=False)

    __table_args__ = (
        Index('idx_limit_user_category_period', 'user_id', 'category', 'period'),
    )

    def __repr__(self) -> str:
        """String representation of the spending limit."""
        return (
            f"<SpendingLimit(id={self.id}, category={self.category}, "
            f"amount={self.amount}, period={self.period})>"
        )


class Notification(Base):
    """
    SQLAlchemy model representing a user notification.

    Attributes:
        id: Unique identifier
        user_id: Owning user
        message: Display text
        type: Severity (warning, info, success, error)
        read: Whether the user has seen it
        created_at: When it was created (UTC)
        category: Category of a budget alert, if any
        alert_kind: "over_budget" or "approaching" for budget alerts
    """

    __tablename__ = "notifications"

    id = Column(String(64), primary_key=True, default=new_record_id)
    user_id = Column(String(64), nullable=False, index=True)
    message = Column(String(1000), nullable=False)
    type = Column(Enum(NotificationType), nullable=False)
    read = Column(Boolean, default=False, nullable=False)
    created_at = Column(UTCDateTime(), default=utc_now, nullable=False, index=True)
    category = Column(String(100), nullable=True)
    alert_kind = Column(String(32), nullable=True)

    def __repr__(self) -> str:
        """String representation of the notification."""
        return (
            f"<Notification(id={self.id}, type={self.type}, read={self.read}, "
            f"message='{self.message[:30]}...')>"
        )


class DatabaseManager:
    """
    Manages database connections and sessions.

    This class handles database initialization and session management.
    The collection stores below share one manager.
    """

    def __init__(self, connection_string: str):
        """
        Initialize the database manager.

        Args:
            connection_string: SQLAlchemy connection string (e.g., 'sqlite:///data/expenses.db')

        Raises:
            DatabaseError: If database connection fails
        """
        try:
            self.engine = create_engine(connection_string, echo=False)
            self.SessionLocal = sessionmaker(bind=self.engine, expire_on_commit=False)
            logger.info(f"Database manager initialized with connection: {connection_string}")
        except SQLAlchemyError as e:
            logger.error(f"Failed to initialize database: {e}")
            raise DatabaseError(
                "Failed to initialize database",
                details={"connection_string": connection_string},
                original_error=e
            ) from e

    def create_tables(self) -> None:
        """
        Create all database tables if they don't exist.

        Raises:
            DatabaseError: If table creation fails
        """
        try:
            Base.metadata.create_all(self.engine)
            logger.info("Database tables created/verified successfully")
        except SQLAlchemyError as e:
            logger.error(f"Failed to create database tables: {e}")
            raise DatabaseError("Failed to create database tables", original_error=e) from e

    def get_session(self) -> Session:
        """
        Get a new database session.

        Returns:
            SQLAlchemy session object

        Note:
            Caller is responsible for closing the session.
        """
        return self.SessionLocal()

    def close(self) -> None:
        """Dispose of the engine and its connection pool."""
        self.engine.dispose()
        logger.info("Database connections closed")


class RecordStore:
    """
    One named collection of user-owned records.

    Records returned by ``get_all`` are detached from their session, so
    callers can read them freely after the store call returns.
    """

    model: Type[Any] = None  # type: ignore[assignment]
    collection_name = "records"

    def __init__(self, db_manager: DatabaseManager):
        self.db_manager = db_manager
        self._columns = {column.name for column in self.model.__table__.columns}

    def _order_by(self):
        return self.model.created_at.asc()

    def get_all(self, user_id: str) -> List[Any]:
        """
        Return every record owned by ``user_id``.

        Raises:
            DatabaseError: If the query fails
        """
        session = self.db_manager.get_session()
        try:
            records = (
                session.query(self.model)
                .filter(self.model.user_id == user_id)
                .order_by(self._order_by())
                .all()
            )
            for record in records:
                session.expunge(record)
            return records
        except SQLAlchemyError as e:
            logger.error(f"Failed to load {self.collection_name}: {e}")
            raise DatabaseError(
                f"Failed to load {self.collection_name}",
                details={"user_id": user_id},
                original_error=e
            ) from e
        finally:
            session.close()

    def get(self, record_id: str) -> Optional[Any]:
        """Return a single record by id, or None when absent."""
        session = self.db_manager.get_session()
        try:
            record = session.get(self.model, record_id)
            if record is not None:
                session.expunge(record)
            return record
        except SQLAlchemyError as e:
            logger.error(f"Failed to get {self.collection_name} record {record_id}: {e}")
            raise DatabaseError(
                f"Failed to get {self.collection_name} record",
                details={"id": record_id},
                original_error=e
            ) from e
        finally:
            session.close()

    def get_owned(self, user_id: str, record_id: str) -> Optional[Any]:
        """Return a record only when ``user_id`` owns it; other users' records read as absent."""
        record = self.get(record_id)
        if record is None or record.user_id != user_id:
            return None
        return record

    def add(self, record: Any) -> None:
        """
        Append a record to the collection.

        Raises:
            DatabaseError: If the insert fails (e.g. a duplicate id)
        """
        session = self.db_manager.get_session()
        try:
            if record.id is None:
                record.id = new_record_id()
            if record.created_at is None:
                record.created_at = utc_now()
            session.add(record)
            session.commit()
            session.expunge(record)
            logger.debug(f"Added {self.collection_name} record {record.id}")
        except SQLAlchemyError as e:
            session.rollback()
            logger.error(f"Failed to add {self.collection_name} record: {e}")
            raise DatabaseError(
                f"Failed to add {self.collection_name} record",
                details={"id": record.id},
                original_error=e
            ) from e
        finally:
            session.close()

    def update(self, record_id: str, fields: Dict[str, Any]) -> None:
        """
        Replace the given fields of one record. Unknown ids are a no-op.

        Raises:
            ValidationError: If ``fields`` names a column that does not exist
            DatabaseError: If the update fails
        """
        unknown = sorted(set(fields) - (self._columns - {"id"}))
        if unknown:
            raise ValidationError(
                f"Cannot update unknown {self.collection_name} fields",
                details={"fields": ", ".join(unknown)}
            )

        session = self.db_manager.get_session()
        try:
            record = session.get(self.model, record_id)
            if record is None:
                logger.debug(f"No {self.collection_name} record {record_id}; update skipped")
                return
            for name, value in fields.items():
                setattr(record, name, value)
            session.commit()
            logger.debug(f"Updated {self.collection_name} record {record_id}: {sorted(fields)}")
        except SQLAlchemyError as e:
            session.rollback()
            logger.error(f"Failed to update {self.collection_name} record {record_id}: {e}")
            raise DatabaseError(
                f"Failed to update {self.collection_name} record",
                details={"id": record_id},
                original_error=e
            ) from e
        finally:
            session.close()

    def delete(self, record_id: str) -> None:
        """Remove one record. Unknown ids are a no-op."""
        session = self.db_manager.get_session()
        try:
            record = session.get(self.model, record_id)
            if record is None:
                logger.debug(f"No {self.collection_name} record {record_id}; delete skipped")
                return
            session.delete(record)
            session.commit()
            logger.debug(f"Deleted {self.collection_name} record {record_id}")
        except SQLAlchemyError as e:
            session.rollback()
            logger.error(f"Failed to delete {self.collection_name} record {record_id}: {e}")
            raise DatabaseError(
                f"Failed to delete {self.collection_name} record",
                details={"id": record_id},
                original_error=e
            ) from e
        finally:
            session.close()


class ExpenseStore(RecordStore):
    """Expense collection."""

    model = Expense
    collection_name = "expenses"


class LimitStore(RecordStore):
    """Spending limit collection."""

    model = SpendingLimit
    collection_name = "spending limits"


class NotificationStore(RecordStore):
    """Notification collection, listed newest first."""

    model = Notification
    collection_name = "notifications"

    def _order_by(self):
        return self.model.created_at.desc()

    def mark_as_read(self, notification_id: str) -> None:
        """Mark one notification read. Unknown ids are a no-op."""
        self.update(notification_id, {"read": True})

    def mark_all_as_read(self, user_id: str) -> int:
        """
        Mark every unread notification owned by ``user_id`` read.

        Returns:
            Number of notifications changed
        """
        session = self.db_manager.get_session()
        try:
            changed = (
                session.query(Notification)
                .filter(Notification.user_id == user_id, Notification.read.is_(False))
                .update({Notification.read: True}, synchronize_session=False)
            )
            session.commit()
            logger.debug(f"Marked {changed} notifications read for user {user_id}")
            return changed
        except SQLAlchemyError as e:
            session.rollback()
            logger.error(f"Failed to mark notifications read: {e}")
            raise DatabaseError(
                "Failed to mark notifications read",
                details={"user_id": user_id},
                original_error=e
            ) from e
        finally:
            session.close()


class RecordStores:
    """The three collections sharing one database manager."""

    def __init__(self, db_manager: DatabaseManager):
        self.db_manager = db_manager
        self.expenses = ExpenseStore(db_manager)
        self.limits = LimitStore(db_manager)
        self.notifications = NotificationStore(db_manager)

    @classmethod
    def from_connection_string(cls, connection_string: str) -> "RecordStores":
        """Open a database, create its tables and wrap it in stores."""
        db_manager = DatabaseManager(connection_string)
        db_manager.create_tables()
        return cls(db_manager)
