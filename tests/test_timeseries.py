import itertools as it

import pandas as pd
import pytest

from energypredict.errors import InvalidTimestampFormat
from energypredict.timeseries import (EXPORT_HEADERS, DailyTotal, TimeSeriesPoint, aggregate_daily,
                                      daily_summary_frame, date_prefix, grand_total, points_from_records,
                                      round2, to_export_csv, to_export_frame, write_export_csv)
from tests.test_utils import sample_points


def pt(timestamp, value):
    return TimeSeriesPoint(timestamp=timestamp, value=value)


class TestRound2:

    @pytest.mark.parametrize("value, expected", [
        (0.125, 0.13),      # exact half rounds away from zero
        (-0.125, -0.13),
        (2.5, 2.5),
        (3.005, 3.0),       # 3.005 is stored just below the half
        (0.375, 0.38),
        (1.23456, 1.23),
        (-1.23456, -1.23),
        (0.0, 0.0),
    ])
    def test_round2(self, value, expected):
        assert round2(value) == expected

    def test_not_bankers_rounding(self):
        assert round(0.125, 2) == 0.12
        assert round2(0.125) == 0.13


class TestAggregateDaily:

    def test_empty(self):
        assert aggregate_daily([]) == []

    def test_single_point(self):
        assert aggregate_daily([pt('2024-01-01 05:00', 1.23456)]) == [DailyTotal('2024-01-01', 1.23)]

    def test_reference_example(self):
        points = [pt('2024-01-01 00:00', 1.005), pt('2024-01-01 01:00', 2.0), pt('2024-01-02 00:00', 5.0)]
        assert aggregate_daily(points) == [DailyTotal('2024-01-01', 3.0), DailyTotal('2024-01-02', 5.0)]

    def test_rounding_applies_to_daily_sum(self):
        # Per-element rounding would give 0.0 + 0.0 + 0.0; the sum 0.012 rounds to 0.01
        points = [pt('2024-03-01 00:00', 0.004)] * 3
        assert aggregate_daily(points) == [DailyTotal('2024-03-01', 0.01)]

    def test_full_days(self):
        points = sample_points('2024-01-01', days=3, value=0.5)
        result = aggregate_daily(points)
        assert [d.date for d in result] == ['2024-01-01', '2024-01-02', '2024-01-03']
        assert all(d.total == 12.0 for d in result)

    def test_contiguous_runs(self):
        runs = [('2024-05-01', [0.1, 0.2, 0.3]), ('2024-05-02', [1.111]), ('2024-05-03', [2.0, 2.345])]
        points = [pt(f"{day} {h:02d}:00", v) for day, values in runs for h, v in enumerate(values)]
        result = aggregate_daily(points)
        assert len(result) == len(runs)
        for (day, values), total in zip(runs, result):
            assert total.date == day
            assert total.total == round2(sum(values))

    def test_unsorted_input_repeats_dates(self):
        points = [pt('2024-01-01 00:00', 1.0), pt('2024-01-02 00:00', 2.0), pt('2024-01-01 01:00', 3.0)]
        assert [d.date for d in aggregate_daily(points)] == ['2024-01-01', '2024-01-02', '2024-01-01']

    def test_seconds_in_timestamp(self):
        points = [pt('2024-01-01 00:00:00', 1.0), pt('2024-01-01 01:00:30', 1.0)]
        assert aggregate_daily(points) == [DailyTotal('2024-01-01', 2.0)]

    @pytest.mark.parametrize("bad", ['', '2024/01/01 00:00', '01-01-2024 00:00', 'tomorrow', '2024-01-01T00:00'])
    def test_invalid_timestamp(self, bad):
        with pytest.raises(InvalidTimestampFormat):
            aggregate_daily([pt('2024-01-01 00:00', 1.0), pt(bad, 1.0)])

    def test_invalid_first_timestamp(self):
        with pytest.raises(InvalidTimestampFormat):
            aggregate_daily([pt('garbage', 1.0)])

    def test_grand_total_close_to_overall_sum(self):
        values = [0.333, 1.777, 2.005, 0.001]
        days = ['2024-02-01', '2024-02-02']
        points = [pt(f"{d} {h:02d}:00", v) for d, (h, v) in it.product(days, enumerate(values))]
        daily = aggregate_daily(points)
        # Per-day rounding can drift by at most half a cent per day
        assert abs(grand_total(daily) - round2(sum(p.value for p in points))) <= 0.005 * len(daily) + 1e-9


def test_date_prefix():
    assert date_prefix('2024-12-31 23:00') == '2024-12-31'
    assert date_prefix('2024-12-31') == '2024-12-31'
    with pytest.raises(InvalidTimestampFormat):
        date_prefix(None)


def test_points_from_records():
    records = [{'date': '2024-01-01 00:00', 'yhat': '1.5'}, {'date': '2024-01-01 01:00', 'yhat': 2}]
    points = points_from_records(records)
    assert points == [pt('2024-01-01 00:00', 1.5), pt('2024-01-01 01:00', 2.0)]
    assert points[0].to_record() == {'date': '2024-01-01 00:00', 'yhat': 1.5}
    assert points_from_records(None) == []


class TestExport:

    def test_headers_exact(self):
        df = to_export_frame([pt('2024-01-01 00:00', 1.0)])
        assert list(df.columns) == ['DateTime', 'Energy (kWh)']
        assert tuple(df.columns) == EXPORT_HEADERS

    def test_hourly_and_daily_rows(self):
        points = [pt('2024-01-01 00:00', 1.5), pt('2024-01-01 01:00', 2.5)]
        hourly = to_export_frame(points)
        assert hourly['DateTime'].tolist() == ['2024-01-01 00:00', '2024-01-01 01:00']
        daily = to_export_frame(aggregate_daily(points))
        assert daily.values.tolist() == [['2024-01-01', 4.0]]

    def test_csv_text(self):
        csv_text = to_export_csv([DailyTotal('2024-01-01', 4.25)])
        assert csv_text.splitlines() == ['DateTime,Energy (kWh)', '2024-01-01,4.25']

    def test_empty_export_keeps_headers(self):
        assert to_export_csv([]).splitlines() == ['DateTime,Energy (kWh)']

    def test_rejects_unknown_rows(self):
        with pytest.raises(TypeError):
            to_export_frame([('2024-01-01', 1.0)])

    def test_write_csv(self, tmp_path):
        path = tmp_path / 'energy_prediction.csv'
        write_export_csv([pt('2024-01-01 00:00', 1.0), pt('2024-01-01 01:00', 2.0)], path)
        df = pd.read_csv(path)
        assert list(df.columns) == list(EXPORT_HEADERS)
        assert df['Energy (kWh)'].sum() == 3.0


def test_daily_summary_frame():
    df = daily_summary_frame([DailyTotal('2024-01-01', 3.0), DailyTotal('2024-01-02', 5.25)])
    assert df['Date'].tolist() == ['2024-01-01', '2024-01-02', 'Total']
    assert df['Energy (kWh)'].iloc[0] == '3.00'
    assert df['Energy (kWh)'].iloc[-1] == '8.25'
