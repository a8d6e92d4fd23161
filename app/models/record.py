"""Read model of the financial records attachments hang off.

Expenses and incomes are owned by the ledger side of the application; this
subsystem only looks them up to validate a target record and denormalize
its owner, date, amount and category onto new attachments.
"""
import enum
from datetime import datetime
from datetime import date as date_type
from decimal import Decimal
from typing import Optional
from sqlalchemy import Numeric, String, Text
from sqlalchemy.orm import Mapped, mapped_column
from app.database import Base, utcnow


class RecordType(str, enum.Enum):
    expense = "expense"
    income = "income"


class Expense(Base):
    __tablename__ = "expenses"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    user_id: Mapped[str] = mapped_column(String(64), index=True)
    date: Mapped[date_type]
    amount: Mapped[Decimal] = mapped_column(Numeric(14, 2))
    category_id: Mapped[Optional[str]] = mapped_column(String(36))
    description: Mapped[Optional[str]] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(default=utcnow)


class Income(Base):
    __tablename__ = "incomes"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    user_id: Mapped[str] = mapped_column(String(64), index=True)
    date: Mapped[date_type]
    amount: Mapped[Decimal] = mapped_column(Numeric(14, 2))
    category_id: Mapped[Optional[str]] = mapped_column(String(36))
    description: Mapped[Optional[str]] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(default=utcnow)


RECORD_MODELS = {
    RecordType.expense: Expense,
    RecordType.income: Income,
}
