"""
Period analysis - buy/sell rollups over stored transactions.

Usage:
    result = aggregate(transactions, target_user_id)
    result.net_profit        # total_sell - total_buy, rounded to cents
    result.by_item['iron']   # trading records, bucketed by item
    result.by_type['wage']   # everything else, bucketed by type

    period = await analyze_period(db, '2024-01-01', '2024-01-31', target_user_id)
"""

from collections import defaultdict
from dataclasses import asdict, dataclass, field
from datetime import date
from typing import Any, Iterable, Union

from warera.database import Database
from warera.errors import ValidationError
from warera.utils.numbers import round2, to_number

UNKNOWN_ITEM = "Unknown"
TRADING_TYPE = "trading"


@dataclass
class Bucket:
    name: str
    count: int = 0
    buy_qty: float = 0
    buy_total: float = 0
    sell_qty: float = 0
    sell_total: float = 0


@dataclass
class AnalysisResult:
    by_item: dict[str, Bucket] = field(default_factory=dict)
    by_type: dict[str, Bucket] = field(default_factory=dict)
    total_buy: float = 0
    total_sell: float = 0
    net_profit: float = 0
    count: int = 0

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class PeriodAnalysis:
    start: str
    end: str
    summary: AnalysisResult
    daily: dict[str, AnalysisResult]

    def to_dict(self) -> dict:
        return {
            "start": self.start,
            "end": self.end,
            "summary": self.summary.to_dict(),
            "daily": {day: result.to_dict() for day, result in self.daily.items()},
        }


def _identity(value: Any) -> str:
    return "" if value is None else str(value)


def aggregate(transactions: Iterable[dict], target: Any) -> AnalysisResult:
    """
    Roll up transactions from the point of view of one user.

    The target counts as buyer when ``buyerId`` matches and as seller when
    ``sellerId`` matches (both for a self-trade, neither for a third-party
    record, which still counts towards its bucket). Trading records are
    bucketed by item code, all others by transaction type.

    Args:
        transactions: Normalized transaction records
        target: User id the rollup is computed for

    Returns:
        AnalysisResult; only net_profit is rounded

    Raises:
        ValidationError: If target is empty
    """
    target_id = _identity(target)
    if not target_id:
        raise ValidationError("Target user id is required")

    result = AnalysisResult()
    for tx in transactions:
        result.count += 1
        tx_type = tx.get("transactionType")
        if tx_type == TRADING_TYPE:
            key = tx.get("itemCode") or UNKNOWN_ITEM
            buckets = result.by_item
        else:
            key = _identity(tx_type)
            buckets = result.by_type

        bucket = buckets.get(key)
        if bucket is None:
            bucket = buckets[key] = Bucket(name=key)
        bucket.count += 1

        money = to_number(tx.get("money"))
        quantity = to_number(tx.get("quantity"))
        if _identity(tx.get("buyerId")) == target_id:
            bucket.buy_qty += quantity
            bucket.buy_total += money
            result.total_buy += money
        if _identity(tx.get("sellerId")) == target_id:
            bucket.sell_qty += quantity
            bucket.sell_total += money
            result.total_sell += money

    result.net_profit = round2(result.total_sell - result.total_buy)
    return result


def group_by_day(transactions: Iterable[dict]) -> dict[str, list[dict]]:
    """Group records by the UTC day (YYYY-MM-DD) of their createdAt, in day order."""
    days: dict[str, list[dict]] = defaultdict(list)
    for tx in transactions:
        days[str(tx.get("createdAt", ""))[:10]].append(tx)
    return dict(sorted(days.items()))


async def analyze_period(
    db: Database,
    start: Union[str, date],
    end: Union[str, date],
    target: Any,
) -> PeriodAnalysis:
    """Aggregate a date range as a whole and day by day."""
    if not _identity(target):
        raise ValidationError("Target user id is required")
    transactions = await db.get_transactions_for_period(start, end)
    return PeriodAnalysis(
        start=str(start),
        end=str(end),
        summary=aggregate(transactions, target),
        daily={day: aggregate(records, target) for day, records in group_by_day(transactions).items()},
    )
