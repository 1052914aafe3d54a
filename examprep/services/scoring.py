from decimal import Decimal, ROUND_HALF_UP
from typing import Optional
from sqlalchemy import select, func
from sqlalchemy.orm import Session
from examprep.models.orm import ExamAnswer

_CENTS = Decimal("0.01")


def _percent(part: int, whole: int) -> float:
    """part / whole * 100, rounded half-up to two places."""
    return float((Decimal(part * 100) / Decimal(whole)).quantize(_CENTS, rounding=ROUND_HALF_UP))


def score_percent(correct: int, total: int) -> Optional[float]:
    if total <= 0: return None
    return _percent(correct, total)


def accuracy(correct: int, attempted: int) -> float:
    if not attempted: return 0.0
    return _percent(correct or 0, attempted)


def count_correct(db: Session, submission_id: str) -> int:
    """Counts stored answers flagged correct. The stored flag is never re-evaluated against the bank."""
    return db.scalar(
        select(func.count(ExamAnswer.id)).where(ExamAnswer.submission_id == submission_id, ExamAnswer.is_correct == True)  # noqa: E712
    ) or 0
