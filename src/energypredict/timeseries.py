import logging
import os
import re
from decimal import ROUND_HALF_UP, Decimal
from typing import Iterable, Sequence

import attrs
import pandas as pd

from energypredict.errors import InvalidTimestampFormat

_LOGGER = logging.getLogger(__name__)

# Column order and labels are consumed by downstream spreadsheets; do not change.
EXPORT_HEADERS = ('DateTime', 'Energy (kWh)')
DEFAULT_EXPORT_FILENAME = 'energy_prediction.csv'

_CENT = Decimal('0.01')

_TIMESTAMP_RE = re.compile(r'^(\d{4}-\d{2}-\d{2})(?: \d{2}:\d{2}(?::\d{2})?)?$')


@attrs.frozen
class TimeSeriesPoint:
    """One hourly value from the prediction service."""
    timestamp: str  # "YYYY-MM-DD HH:MM[:SS]"
    value: float = attrs.field(converter=float)

    @classmethod
    def from_record(cls, record: dict) -> 'TimeSeriesPoint':
        """Build from the service's wire form {'date': ..., 'yhat': ...}."""
        return cls(timestamp=record['date'], value=record['yhat'])

    def to_record(self) -> dict:
        return {'date': self.timestamp, 'yhat': self.value}


@attrs.frozen
class DailyTotal:
    date: str  # "YYYY-MM-DD"
    total: float


def points_from_records(records: Iterable[dict] | None) -> list[TimeSeriesPoint]:
    if not records:
        return []
    return [TimeSeriesPoint.from_record(r) for r in records]


def round2(x: float) -> float:
    """
    Round to 2 decimal places, half away from zero.

    Rounds the exact value of the float, so 3.005 (stored as 3.00499999...)
    gives 3.0 while 0.125 (exact) gives 0.13. Python's round() would use
    banker's rounding on ties instead.
    """
    return float(Decimal(x).quantize(_CENT, rounding=ROUND_HALF_UP))


def date_prefix(timestamp: str) -> str:
    match = _TIMESTAMP_RE.match(timestamp) if isinstance(timestamp, str) else None
    if match is None:
        raise InvalidTimestampFormat(timestamp)
    return match.group(1)


def aggregate_daily(points: Sequence[TimeSeriesPoint]) -> list[DailyTotal]:
    """
    Collapse an hourly series into one total per calendar date.

    Points are expected in ascending time order. No sorting is done: a date
    that reappears after a different date starts a new run and shows up twice
    in the output.

    Args:
        points: TimeSeriesPoints ordered by timestamp

    Returns:
        DailyTotals in the order their dates first appear, totals rounded with round2
    """
    if len(points) == 0:
        return []

    daily_totals = []
    current_date = date_prefix(points[0].timestamp)
    running_sum = points[0].value

    for point in points[1:]:
        row_date = date_prefix(point.timestamp)
        if row_date == current_date:
            running_sum += point.value
        else:
            daily_totals.append(DailyTotal(date=current_date, total=round2(running_sum)))
            current_date = row_date
            running_sum = point.value

    daily_totals.append(DailyTotal(date=current_date, total=round2(running_sum)))
    return daily_totals


def grand_total(daily_totals: Iterable[DailyTotal]) -> float:
    # Sum of already-rounded daily values; may differ from round2(sum of all points)
    return sum(d.total for d in daily_totals)


def to_export_frame(rows: Sequence[TimeSeriesPoint | DailyTotal]) -> pd.DataFrame:
    """Tabulate points or daily totals under the fixed export headers."""
    data = []
    for row in rows:
        if isinstance(row, TimeSeriesPoint):
            data.append((row.timestamp, row.value))
        elif isinstance(row, DailyTotal):
            data.append((row.date, row.total))
        else:
            raise TypeError(f"Cannot export row of type {type(row).__name__}")
    return pd.DataFrame(data, columns=list(EXPORT_HEADERS))


def to_export_csv(rows: Sequence[TimeSeriesPoint | DailyTotal]) -> str:
    return to_export_frame(rows).to_csv(index=False)


def write_export_csv(rows: Sequence[TimeSeriesPoint | DailyTotal], path: os.PathLike | str = DEFAULT_EXPORT_FILENAME) -> str:
    export_df = to_export_frame(rows)
    export_df.to_csv(path, index=False)
    _LOGGER.info("Wrote %d rows to %s", len(export_df), path)
    return str(path)


def daily_summary_frame(daily_totals: Sequence[DailyTotal]) -> pd.DataFrame:
    """Daily table with a trailing Total row, values formatted to 2 decimals for display."""
    rows = [{'Date': d.date, 'Energy (kWh)': f"{d.total:.2f}"} for d in daily_totals]
    rows.append({'Date': 'Total', 'Energy (kWh)': f"{grand_total(daily_totals):.2f}"})
    return pd.DataFrame(rows)
