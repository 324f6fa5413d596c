"""Affiliate commission balances."""

import math
from dataclasses import asdict, dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Iterable, Mapping, Optional

from catalog.config import COMMISSION_MATURITY_DAYS, DEFAULT_COMMISSION_PERCENTAGE

__all__ = ["CommissionSummary", "parse_timestamp", "is_withdrawable", "summarize_commissions"]

# Epoch values above this are milliseconds
_EPOCH_MILLIS_THRESHOLD = 1e11


@dataclass
class CommissionSummary:
    total_earned: float = 0.0
    withdrawable: float = 0.0
    pending: float = 0.0
    count: int = 0
    commission_percentage: float = DEFAULT_COMMISSION_PERCENTAGE

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def _aware(value: datetime) -> datetime:
    return value if value.tzinfo else value.replace(tzinfo=timezone.utc)


def parse_timestamp(value: Any) -> Optional[datetime]:
    """Parse a transaction date.

    Accepts datetimes, ISO strings, epoch seconds or milliseconds and
    ``{"seconds": ...}`` timestamp dicts. Naive values are taken as UTC.
    Returns None for anything else.
    """
    if isinstance(value, datetime):
        return _aware(value)
    if isinstance(value, Mapping):
        seconds = value.get("seconds", value.get("_seconds"))
        return parse_timestamp(seconds) if seconds is not None else None
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        if not math.isfinite(value):
            return None
        if abs(value) > _EPOCH_MILLIS_THRESHOLD:
            value = value / 1000
        try:
            return datetime.fromtimestamp(value, tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            return None
    if isinstance(value, str) and value.strip():
        text = value.strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            return _aware(datetime.fromisoformat(text))
        except ValueError:
            return None
    return None


def _commission(transaction: Mapping[str, Any]) -> float:
    value = transaction.get("commission")
    if isinstance(value, bool):
        return 0.0
    try:
        amount = float(value)
    except (TypeError, ValueError):
        return 0.0
    return amount if math.isfinite(amount) else 0.0


def is_withdrawable(
    transaction: Mapping[str, Any],
    now: Optional[datetime] = None,
    maturity_days: int = COMMISSION_MATURITY_DAYS,
) -> bool:
    """A commission matures once it is strictly older than the maturity window."""
    created = parse_timestamp(transaction.get("createdAt"))
    if created is None:
        return False
    now = _aware(now) if now else datetime.now(timezone.utc)
    return created < now - timedelta(days=maturity_days)


def summarize_commissions(
    transactions: Iterable[Mapping[str, Any]],
    now: Optional[datetime] = None,
    maturity_days: int = COMMISSION_MATURITY_DAYS,
    commission_percentage: Optional[float] = DEFAULT_COMMISSION_PERCENTAGE,
) -> CommissionSummary:
    """Split an affiliate's commissions into withdrawable and pending.

    Transactions with missing or unparseable dates stay pending.
    """
    now = _aware(now) if now else datetime.now(timezone.utc)
    summary = CommissionSummary(
        commission_percentage=commission_percentage or DEFAULT_COMMISSION_PERCENTAGE,
    )
    for tx in transactions:
        amount = _commission(tx)
        summary.count += 1
        summary.total_earned += amount
        if is_withdrawable(tx, now, maturity_days):
            summary.withdrawable += amount
        else:
            summary.pending += amount
    return summary
