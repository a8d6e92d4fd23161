"""Filename heuristics suggesting which record a bulk-imported file belongs to.

A file named ``2024-03-15_grocery_42.50.pdf`` carries a date, an amount and
a keyword; each one that matches a record adds to that record's confidence:

    date     0.5
    amount   0.3
    keyword  0.2  (any description word longer than 3 chars in the filename)
"""
import re
from dataclasses import dataclass, field
from datetime import date
from typing import Iterable, List

from app.services.record_service import FinancialRecord

DATE_WEIGHT = 0.5
AMOUNT_WEIGHT = 0.3
KEYWORD_WEIGHT = 0.2

_ISO_DATE = re.compile(r"(\d{4})[-/](\d{2})[-/](\d{2})")
_COMPACT_DATE = re.compile(r"(\d{4})(\d{2})(\d{2})")
_US_DATE = re.compile(r"(\d{2})[-/](\d{2})[-/](\d{4})")
_DECIMAL_AMOUNT = re.compile(r"[$€£]?(\d+)[.,](\d{2})")
_WHOLE_AMOUNT = re.compile(r"\b(\d{2,})\b")


@dataclass
class MappingCandidate:
    record_id: str
    record_type: str
    confidence: float
    matched_on: List[str] = field(default_factory=list)


def _safe_date(year: str, month: str, day: str):
    try:
        return date(int(year), int(month), int(day))
    except ValueError:
        return None


def extract_dates(filename: str) -> List[date]:
    found = []
    m = _ISO_DATE.search(filename)
    if m:
        found.append(_safe_date(m.group(1), m.group(2), m.group(3)))
    m = _COMPACT_DATE.search(filename)
    if m:
        found.append(_safe_date(m.group(1), m.group(2), m.group(3)))
    m = _US_DATE.search(filename)
    if m:
        found.append(_safe_date(m.group(3), m.group(1), m.group(2)))
    return [d for d in found if d is not None]


def extract_amounts(filename: str) -> List[float]:
    amounts = [float(f"{m.group(1)}.{m.group(2)}") for m in _DECIMAL_AMOUNT.finditer(filename)]
    # Bare integers may be amounts without decimals.
    amounts.extend(float(m.group(1)) for m in _WHOLE_AMOUNT.finditer(filename) if int(m.group(1)) > 0)
    return amounts


def _contains_keyword(filename: str, description: str) -> bool:
    lowered = filename.lower()
    return any(len(word) > 3 and word in lowered for word in description.lower().split())


def suggest_mapping(
    filename: str,
    records: Iterable[FinancialRecord],
    record_type: str,
) -> List[MappingCandidate]:
    """Score *records* against *filename*; highest confidence first, non-matches dropped."""
    dates = extract_dates(filename)
    amounts = extract_amounts(filename)
    rtype = getattr(record_type, "value", record_type)

    candidates = []
    for record in records:
        matched_on = []
        confidence = 0.0
        if record.date is not None and record.date in dates:
            matched_on.append("date")
            confidence += DATE_WEIGHT
        if record.amount is not None and any(abs(a - float(record.amount)) < 0.01 for a in amounts):
            matched_on.append("amount")
            confidence += AMOUNT_WEIGHT
        if record.description and _contains_keyword(filename, record.description):
            matched_on.append("filename")
            confidence += KEYWORD_WEIGHT
        if matched_on:
            candidates.append(
                MappingCandidate(
                    record_id=record.id,
                    record_type=rtype,
                    confidence=round(confidence, 2),
                    matched_on=matched_on,
                )
            )

    candidates.sort(key=lambda c: c.confidence, reverse=True)
    return candidates
