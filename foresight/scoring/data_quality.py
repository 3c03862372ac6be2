"""
Quality assessment of the historical data supporting a prediction.

The score is the mean of four sub-scores: completeness, consistency,
recency and volume.
"""

from datetime import datetime
from typing import Any, List, Optional, Sequence

from foresight.prediction.similarity import is_number

EMPTY_DATA_QUALITY = 0.3
RECENCY_HORIZON_SECONDS = 30 * 24 * 60 * 60
VOLUME_TARGET = 1000


def assess_data_quality(records: Sequence[Any], now: Optional[datetime] = None) -> float:
    """
    Score how much the supporting records can be trusted.

    Args:
        records: Historical records (dicts or primitive values)
        now: Reference time for recency (defaults to the current time)

    Returns:
        Quality in [0, 1]; 0.3 when there are no records
    """
    if not records:
        return EMPTY_DATA_QUALITY

    now = now or datetime.now()
    scores = (
        completeness(records),
        consistency(records),
        recency(records, now),
        min(len(records) / VOLUME_TARGET, 1.0),
    )
    return sum(scores) / len(scores)


def completeness(records: Sequence[Any]) -> float:
    """Ratio of non-null, non-empty fields across dict records."""
    total = 0
    complete = 0
    for record in records:
        if isinstance(record, dict):
            for value in record.values():
                total += 1
                if value is not None and value != "":
                    complete += 1
    return complete / total if total else 1.0


def consistency(records: Sequence[Any]) -> float:
    """Mean of type consistency and outlier-based range consistency."""
    if len(records) < 2:
        return 1.0
    return (type_consistency(records) + range_consistency(records)) / 2


def type_consistency(records: Sequence[Any]) -> float:
    first = records[0]
    if not isinstance(first, dict):
        same = sum(1 for r in records if type(r) is type(first))
        return same / len(records)

    field_types = {key: type(value) for key, value in first.items()}
    checks = 0
    consistent = 0
    for record in records:
        if not isinstance(record, dict):
            continue
        for name, expected in field_types.items():
            checks += 1
            if name in record and type(record[name]) is expected:
                consistent += 1
    return consistent / checks if checks else 1.0


def range_consistency(records: Sequence[Any]) -> float:
    """1 - fraction of numeric values outside the 1.5 x IQR fences."""
    values: List[float] = []
    for record in records:
        if is_number(record):
            values.append(record)
        elif isinstance(record, dict):
            values.extend(v for v in record.values() if is_number(v))

    if not values:
        return 1.0

    ordered = sorted(values)
    q1 = ordered[int(len(ordered) * 0.25)]
    q3 = ordered[int(len(ordered) * 0.75)]
    iqr = q3 - q1
    lower = q1 - 1.5 * iqr
    upper = q3 + 1.5 * iqr
    outliers = sum(1 for v in values if v < lower or v > upper)
    return 1.0 - outliers / len(values)


def recency(records: Sequence[Any], now: datetime) -> float:
    """
    Linear decay of mean record age against a 30-day horizon.

    Records without a ``timestamp`` or ``date`` field count as fresh; ones
    whose timestamp cannot be parsed are ignored.
    """
    now_ts = now.timestamp()
    ages: List[float] = []
    for record in records:
        raw = None
        if isinstance(record, dict):
            raw = record.get("timestamp") or record.get("date")
        if raw is None:
            ages.append(0.0)
            continue
        parsed = _to_epoch(raw)
        if parsed is not None:
            ages.append(now_ts - parsed)

    if not ages:
        return 0.5

    mean_age = sum(ages) / len(ages)
    return max(0.0, min(1.0, 1.0 - mean_age / RECENCY_HORIZON_SECONDS))


def _to_epoch(raw: Any) -> Optional[float]:
    if isinstance(raw, datetime):
        return raw.timestamp()
    if is_number(raw):
        return float(raw)
    if isinstance(raw, str):
        try:
            return datetime.fromisoformat(raw).timestamp()
        except ValueError:
            return None
    return None
