"""Stateless statistics over lists of row dictionaries.

Used both by the ``analyze_data`` agent tool and by the ``data_analysis``
workflow step.
"""

from __future__ import annotations

import logging
import math
from collections import Counter
from datetime import date, datetime, timedelta, timezone
from typing import Any, Callable, Dict, List, Optional, Sequence

from .exceptions import UnsupportedOperationError

logger = logging.getLogger(__name__)

Row = Dict[str, Any]

TIME_PERIODS = ("daily", "weekly", "monthly", "quarterly", "yearly")
DEFAULT_TIME_PERIOD = "monthly"
ANOMALY_THRESHOLD = 3
ANOMALY_MIN_VALUES = 5
FORECAST_WINDOW = 3
FORECAST_HORIZON = 3


def is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def parse_date(value: Any) -> Optional[datetime]:
    """Coerce ``value`` to a naive UTC datetime, or ``None`` if it is not date-like."""
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, date):
        parsed = datetime(value.year, value.month, value.day)
    elif isinstance(value, str) and value:
        text = value.strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError:
            return None
    else:
        return None
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed


def period_key(moment: datetime, time_period: Optional[str]) -> str:
    """Bucket label for ``moment``; weeks start on Sunday."""
    if time_period == "daily":
        return moment.strftime("%Y-%m-%d")
    if time_period == "weekly":
        # isoweekday: Monday=1 .. Sunday=7
        start = moment - timedelta(days=moment.isoweekday() % 7)
        return start.strftime("%Y-%m-%d")
    if time_period == "quarterly":
        return f"{moment.year}-Q{(moment.month - 1) // 3 + 1}"
    if time_period == "yearly":
        return str(moment.year)
    return f"{moment.year}-{moment.month:02d}"


def _present(rows: Sequence[Row], field: str) -> List[Any]:
    return [row.get(field) for row in rows if row.get(field) is not None]


def _date_fields(rows: Sequence[Row]) -> List[str]:
    first = rows[0]
    return [
        field
        for field, value in first.items()
        if not is_number(value) and parse_date(value) is not None
    ]


def _numeric_fields(rows: Sequence[Row]) -> List[str]:
    return [field for field, value in rows[0].items() if is_number(value)]


def _group_by_period(
    rows: Sequence[Row], date_field: str, time_period: Optional[str]
) -> Dict[str, List[Row]]:
    grouped: Dict[str, List[Row]] = {}
    for row in rows:
        moment = parse_date(row.get(date_field))
        if moment is None:
            continue
        grouped.setdefault(period_key(moment, time_period), []).append(row)
    return grouped


def summary(rows: Sequence[Row]) -> Dict[str, Any]:
    """Per-field type inference with type-appropriate statistics."""
    result: Dict[str, Any] = {"count": len(rows), "fields": {}}
    if not rows:
        return result

    for field in rows[0].keys():
        values = _present(rows, field)
        if not values:
            result["fields"][field] = {"type": "unknown"}
            continue

        first = values[0]
        if isinstance(first, bool):
            true_count = sum(1 for v in values if v is True)
            false_count = sum(1 for v in values if v is False)
            result["fields"][field] = {
                "type": "boolean",
                "count": len(values),
                "true_count": true_count,
                "false_count": false_count,
                "true_percentage": true_count / len(values) * 100,
            }
        elif is_number(first):
            numbers = sorted(v for v in values if is_number(v))
            total = sum(numbers)
            result["fields"][field] = {
                "type": "numeric",
                "count": len(numbers),
                "min": numbers[0],
                "max": numbers[-1],
                "mean": total / len(numbers),
                "median": numbers[len(numbers) // 2],
                "sum": total,
            }
        elif isinstance(first, (datetime, date)) or (
            isinstance(first, str) and parse_date(first) is not None
        ):
            dates = sorted(d for d in (parse_date(v) for v in values) if d is not None)
            result["fields"][field] = {
                "type": "date",
                "count": len(values),
                "min": dates[0].isoformat(),
                "max": dates[-1].isoformat(),
                "range_days": (dates[-1] - dates[0]).days,
            }
        elif isinstance(first, str):
            counts = Counter(str(v) for v in values)
            most_common, most_common_count = counts.most_common(1)[0]
            result["fields"][field] = {
                "type": "string",
                "count": len(values),
                "unique_count": len(counts),
                "most_common": most_common,
                "most_common_count": most_common_count,
            }
        elif isinstance(first, (list, tuple)):
            result["fields"][field] = {"type": "array", "count": len(values)}
        else:
            result["fields"][field] = {"type": "object", "count": len(values)}

    return result


def trends(rows: Sequence[Row], time_period: Optional[str] = None) -> Dict[str, Any]:
    """Bucket rows by period and compare the first and last bucket means."""
    if not rows:
        return {"error": "No data available for trend analysis"}

    date_fields = _date_fields(rows)
    if not date_fields:
        return {"error": "No date fields found for trend analysis"}
    date_field = date_fields[0]

    numeric_fields = _numeric_fields(rows)
    if not numeric_fields:
        return {"error": "No numeric fields found for trend analysis"}

    grouped = _group_by_period(rows, date_field, time_period)
    field_trends: Dict[str, Any] = {}

    for field in numeric_fields:
        by_period: Dict[str, Dict[str, Any]] = {}
        overall: Dict[str, Any] = {"min": None, "max": None, "total": 0, "count": 0}

        for period, items in grouped.items():
            values = [v for v in _present(items, field) if is_number(v)]
            if not values:
                continue
            total = sum(values)
            by_period[period] = {
                "count": len(values),
                "sum": total,
                "mean": total / len(values),
                "min": min(values),
                "max": max(values),
            }
            overall["min"] = min(values) if overall["min"] is None else min(overall["min"], min(values))
            overall["max"] = max(values) if overall["max"] is None else max(overall["max"], max(values))
            overall["total"] += total
            overall["count"] += len(values)

        if overall["count"]:
            overall["mean"] = overall["total"] / overall["count"]

        entry: Dict[str, Any] = {"by_period": by_period, "overall": overall}
        periods = sorted(by_period)
        if len(periods) >= 2:
            first_value = by_period[periods[0]]["mean"]
            last_value = by_period[periods[-1]]["mean"]
            change = last_value - first_value
            entry["trend"] = {
                "direction": "increasing" if change > 0 else "decreasing" if change < 0 else "stable",
                "change": change,
                "percent_change": change / first_value * 100 if first_value else None,
                "periods_analyzed": len(periods),
            }
        field_trends[field] = entry

    return {
        "time_period": time_period or DEFAULT_TIME_PERIOD,
        "date_field": date_field,
        "periods_count": len(grouped),
        "trends": field_trends,
    }


def anomalies(rows: Sequence[Row]) -> Dict[str, Any]:
    """Flag rows whose value lies more than three standard deviations from the mean."""
    if not rows:
        return {"error": "No data available for anomaly detection"}

    numeric_fields = _numeric_fields(rows)
    if not numeric_fields:
        return {"error": "No numeric fields found for anomaly detection"}

    flagged: Dict[str, List[Dict[str, Any]]] = {}
    for field in numeric_fields:
        values = [v for v in _present(rows, field) if is_number(v)]
        if len(values) < ANOMALY_MIN_VALUES:
            logger.debug(f"Skipping anomaly detection for {field}: {len(values)} values")
            continue

        mean = sum(values) / len(values)
        std_dev = math.sqrt(sum((v - mean) ** 2 for v in values) / len(values))
        flagged[field] = []
        if std_dev == 0:
            continue

        for index, row in enumerate(rows):
            value = row.get(field)
            if not is_number(value):
                continue
            z_score = (value - mean) / std_dev
            if abs(z_score) > ANOMALY_THRESHOLD:
                flagged[field].append(
                    {
                        "index": index,
                        "value": value,
                        "z_score": z_score,
                        "direction": "high" if z_score > 0 else "low",
                        "item": row,
                    }
                )

    return {
        "method": "z-score",
        "threshold": ANOMALY_THRESHOLD,
        "fields_analyzed": len(numeric_fields),
        "anomalies": flagged,
    }


def forecast(rows: Sequence[Row], time_period: Optional[str] = None) -> Dict[str, Any]:
    """Project three future periods from a moving average plus mean delta."""
    if not rows:
        return {"error": "No data available for forecasting"}

    date_fields = _date_fields(rows)
    if not date_fields:
        return {"error": "No date fields found for forecasting"}
    date_field = date_fields[0]

    numeric_fields = _numeric_fields(rows)
    if not numeric_fields:
        return {"error": "No numeric fields found for forecasting"}

    grouped = _group_by_period(rows, date_field, time_period)
    series_by_period: Dict[str, Dict[str, float]] = {}
    for period, items in grouped.items():
        series_by_period[period] = {}
        for field in numeric_fields:
            values = [v for v in _present(items, field) if is_number(v)]
            if values:
                series_by_period[period][field] = sum(values) / len(values)

    periods = sorted(series_by_period)
    window_size = min(FORECAST_WINDOW, len(periods))
    forecasts: Dict[str, Any] = {}

    for field in numeric_fields:
        series = [series_by_period[p][field] for p in periods if field in series_by_period[p]]
        if not series or len(series) < window_size:
            continue

        changes = [current - previous for previous, current in zip(series, series[1:])]
        avg_change = sum(changes) / len(changes) if changes else 0.0
        last_value = series[-1]

        projected = [last_value + avg_change]
        for _ in range(FORECAST_HORIZON - 1):
            projected.append(projected[-1] + avg_change)

        forecasts[field] = {
            "method": "moving_average_with_trend",
            "window_size": window_size,
            "moving_average": sum(series[-window_size:]) / window_size,
            "last_value": last_value,
            "avg_change": avg_change,
            "forecast": projected,
        }

    return {
        "time_period": time_period or DEFAULT_TIME_PERIOD,
        "date_field": date_field,
        "periods_analyzed": len(periods),
        "forecasts": forecasts,
    }


ANALYSES: Dict[str, Callable[..., Dict[str, Any]]] = {
    "summary": lambda rows, time_period=None: summary(rows),
    "trends": trends,
    "anomalies": lambda rows, time_period=None: anomalies(rows),
    "forecast": forecast,
}


def analyze(
    rows: Sequence[Row], analysis_type: str, time_period: Optional[str] = None
) -> Dict[str, Any]:
    """Dispatch to one of the analysis functions by name."""
    analysis = ANALYSES.get(analysis_type)
    if analysis is None:
        raise UnsupportedOperationError(f"Unsupported analysis type: {analysis_type}")
    return analysis(list(rows), time_period=time_period)
