"""
Test cases for temporal.py module
"""

import pytest
import numpy as np
import pandas as pd
import tempfile
import shutil
from unittest.mock import patch

import sys
from pathlib import Path
sys.path.insert(0, str(Path(__file__).parent.parent))

from topictrends.temporal import (
    aggregate_by_year, topic_year_matrix, to_time_series, rolling_mean,
    topic_trend_slopes, write_gamma_csv, read_gamma_csv
)


@pytest.fixture
def temp_dir():
    temp_dir = tempfile.mkdtemp()
    yield Path(temp_dir)
    shutil.rmtree(temp_dir)


@pytest.fixture
def joined_gamma():
    """Documents A and B from 1990, C from 1992; two topics"""
    return pd.DataFrame({
        'document': ['A', 'A', 'B', 'B', 'C', 'C'],
        'topic': [1, 2, 1, 2, 1, 2],
        'gamma': [0.8, 0.2, 0.4, 0.6, 0.1, 0.9],
        'year': [1990, 1990, 1990, 1990, 1992, 1992],
    })


class TestAggregation:

    def test_aggregate_by_year(self, joined_gamma):
        aggregate = aggregate_by_year(joined_gamma)
        assert list(aggregate.columns) == ['year', 'topic', 'mean_gamma']
        assert aggregate[['year', 'topic']].values.tolist() == [[1990, 1], [1990, 2], [1992, 1], [1992, 2]]
        np.testing.assert_allclose(aggregate['mean_gamma'], [0.6, 0.4, 0.1, 0.9])

    def test_aggregate_requires_year(self, joined_gamma):
        with pytest.raises(ValueError, match="missing columns"):
            aggregate_by_year(joined_gamma.drop(columns='year'))

    def test_topic_year_matrix(self, joined_gamma):
        wide = topic_year_matrix(aggregate_by_year(joined_gamma))
        assert wide.index.tolist() == [1990, 1992]
        assert wide.columns.tolist() == [1, 2]
        assert wide.loc[1992, 2] == pytest.approx(0.9)


class TestTimeSeries:

    def test_range_from_data_with_interpolation(self, joined_gamma):
        aggregate = aggregate_by_year(joined_gamma)
        with patch('topictrends.temporal.log_print') as mock_log:
            series = to_time_series(aggregate, topic=1)
        assert series.index.tolist() == [1990, 1991, 1992]
        np.testing.assert_allclose(series.values, [0.6, 0.35, 0.1])
        assert mock_log.call_args.kwargs['level'] == 'warning'
        assert '1991' in mock_log.call_args.args[0]

    def test_explicit_range_leaves_unobserved_ends_missing(self, joined_gamma):
        with patch('topictrends.temporal.log_print') as mock_log:
            series = to_time_series(aggregate_by_year(joined_gamma), topic=2, start_year=1989, end_year=1993)
        assert series.index.tolist() == [1989, 1990, 1991, 1992, 1993]
        assert np.isnan(series.loc[1989])
        assert np.isnan(series.loc[1993])
        np.testing.assert_allclose(series.loc[1990:1992].values, [0.4, 0.65, 0.9])
        messages = [c.args[0] for c in mock_log.call_args_list]
        assert any('interpolating' in m and '1991' in m for m in messages)
        assert any('outside the observed years' in m and '1989' in m and '1993' in m for m in messages)

    def test_frequency_averages_every_year_in_window(self):
        aggregate = pd.DataFrame({
            'year': [1990, 1991, 1992, 1993],
            'topic': [1, 1, 1, 1],
            'mean_gamma': [0.1, 0.9, 0.1, 0.9],
        })
        series = to_time_series(aggregate, topic=1, frequency=2)
        assert series.index.tolist() == [1990, 1992]
        np.testing.assert_allclose(series.values, [0.5, 0.5])

    def test_frequency_window_with_partial_data(self, joined_gamma):
        series = to_time_series(aggregate_by_year(joined_gamma), topic=2, frequency=2)
        assert series.index.tolist() == [1990, 1992]
        np.testing.assert_allclose(series.values, [0.4, 0.9])

    def test_frequency_interpolates_empty_window(self):
        aggregate = pd.DataFrame({
            'year': [2000, 2001, 2006],
            'topic': [1, 1, 1],
            'mean_gamma': [0.2, 0.4, 0.9],
        })
        with patch('topictrends.temporal.log_print'):
            series = to_time_series(aggregate, topic=1, frequency=3)
        assert series.index.tolist() == [2000, 2003, 2006]
        np.testing.assert_allclose(series.values, [0.3, 0.6, 0.9])

    def test_invalid_frequency(self, joined_gamma):
        with pytest.raises(ValueError, match="frequency"):
            to_time_series(aggregate_by_year(joined_gamma), topic=1, frequency=0)

    def test_unknown_topic(self, joined_gamma):
        with pytest.raises(ValueError, match="not found"):
            to_time_series(aggregate_by_year(joined_gamma), topic=7)

    def test_reversed_range(self, joined_gamma):
        with pytest.raises(ValueError):
            to_time_series(aggregate_by_year(joined_gamma), topic=1, start_year=2000, end_year=1990)

    def test_rolling_mean(self):
        series = pd.Series([1.0, 2.0, 3.0, 4.0], index=[2000, 2001, 2002, 2003])
        np.testing.assert_allclose(rolling_mean(series, window=3).values, [1.5, 2.0, 3.0, 3.5])


class TestTrendSlopes:

    def test_rising_and_falling_topics(self):
        years = list(range(2000, 2006))
        aggregate = pd.DataFrame({
            'year': years * 2,
            'topic': [1] * 6 + [2] * 6,
            'mean_gamma': [0.1 + 0.05 * i for i in range(6)] + [0.9 - 0.05 * i for i in range(6)],
        })
        slopes = topic_trend_slopes(aggregate)
        assert list(slopes.columns) == ['topic', 'slope', 'p_value', 'r2', 'n_years']
        assert slopes['topic'].tolist() == [1, 2]
        assert slopes['slope'].iloc[0] == pytest.approx(0.05)
        assert slopes['slope'].iloc[1] == pytest.approx(-0.05)
        assert slopes['n_years'].tolist() == [6, 6]

    def test_short_series_gets_nan(self, joined_gamma):
        slopes = topic_trend_slopes(aggregate_by_year(joined_gamma))
        assert slopes['slope'].isna().all()


class TestGammaPersistence:
    """Test the gamma CSV round trip and schema validation"""

    def test_round_trip(self, temp_dir, joined_gamma):
        joined_gamma = joined_gamma.copy()
        joined_gamma['gamma'] = [1 / 3, 2 / 3, 0.123456789012345, 0.876543210987655, 1e-9, 1 - 1e-9]
        path = write_gamma_csv(joined_gamma, temp_dir / "out" / "gamma.csv")
        restored = read_gamma_csv(path)
        pd.testing.assert_frame_equal(restored, joined_gamma.reset_index(drop=True), check_exact=True)

    def test_numeric_looking_document_ids_stay_strings(self, temp_dir):
        df = pd.DataFrame({'document': ['007', '10'], 'topic': [1, 1], 'gamma': [1.0, 1.0], 'year': [2000, 2001]})
        restored = read_gamma_csv(write_gamma_csv(df, temp_dir / "gamma.csv"))
        assert restored['document'].tolist() == ['007', '10']

    def test_write_requires_schema_columns(self, temp_dir, joined_gamma):
        with pytest.raises(ValueError, match="missing columns"):
            write_gamma_csv(joined_gamma.drop(columns='year'), temp_dir / "gamma.csv")

    def test_read_rejects_wrong_header(self, temp_dir):
        path = temp_dir / "gamma.csv"
        path.write_text("doc,topic,gamma,year\nA,1,0.5,1990\n", encoding="utf-8")
        with pytest.raises(ValueError, match="expected"):
            read_gamma_csv(path)

    def test_read_rejects_wrong_types(self, temp_dir):
        path = temp_dir / "gamma.csv"
        path.write_text("document,topic,gamma,year\nA,1,0.5,nineteen\n", encoding="utf-8")
        with pytest.raises(ValueError, match="declared column types"):
            read_gamma_csv(path)

    def test_read_missing_file(self, temp_dir):
        with pytest.raises(FileNotFoundError):
            read_gamma_csv(temp_dir / "missing.csv")
