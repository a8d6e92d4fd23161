"""Lookups against the expense/income ledger."""
from dataclasses import dataclass
from datetime import date
from decimal import Decimal, ROUND_HALF_UP
from typing import List, Optional

from sqlalchemy.orm import Session

from app.errors import InvalidInput
from app.models.record import RECORD_MODELS, RecordType


@dataclass
class FinancialRecord:
    id: str
    record_type: RecordType
    user_id: str
    date: Optional[date]
    amount: Optional[Decimal]
    category_id: Optional[str] = None
    description: Optional[str] = None

    @property
    def amount_minor_units(self) -> Optional[int]:
        """Amount in cents, rounded half-up."""
        if self.amount is None:
            return None
        cents = (Decimal(str(self.amount)) * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP)
        return int(cents)


def parse_record_type(value) -> RecordType:
    try:
        return RecordType(value)
    except ValueError:
        raise InvalidInput(f"Invalid record type '{value}'; expected 'expense' or 'income'")


def _to_record(row, record_type: RecordType) -> FinancialRecord:
    return FinancialRecord(
        id=row.id,
        record_type=record_type,
        user_id=row.user_id,
        date=row.date,
        amount=row.amount,
        category_id=row.category_id,
        description=row.description,
    )


def get_financial_record(db: Session, record_type, record_id: str) -> Optional[FinancialRecord]:
    rtype = parse_record_type(record_type)
    model = RECORD_MODELS[rtype]
    row = db.get(model, record_id)
    return _to_record(row, rtype) if row else None


def list_user_records(db: Session, user_id: str, record_type) -> List[FinancialRecord]:
    rtype = parse_record_type(record_type)
    model = RECORD_MODELS[rtype]
    rows = (
        db.query(model)
        .filter(model.user_id == user_id)
        .order_by(model.date.desc())
        .all()
    )
    return [_to_record(r, rtype) for r in rows]
