"""
Temporal aggregation of document-topic probabilities for topictrends.

The year-annotated gamma table is reduced to the mean gamma of each topic
over the documents published in each year. A year's means need not sum to 1
across topics once documents are averaged. This module also persists the
gamma table, which is the only state written between runs.
"""

import numpy as np
import pandas as pd
import statsmodels.api as sm
from pathlib import Path
from typing import Optional, Union

from .dataframe_schema import AggregateSchema, GammaSchema
from ._file_driver import log_print


# ============================================================================
# Aggregation
# ============================================================================

def aggregate_by_year(joined: pd.DataFrame) -> pd.DataFrame:
    """
    Mean gamma per (year, topic) over the documents of that year.

    Args:
        joined: gamma table with a year column (see metadata.attach_years)

    Returns:
        DataFrame with AggregateSchema columns, sorted by year then topic
    """
    year, topic, gamma = GammaSchema.YEAR.colname, GammaSchema.TOPIC.colname, GammaSchema.GAMMA.colname
    missing = [c for c in (year, topic, gamma) if c not in joined.columns]
    if missing:
        raise ValueError(f"Cannot aggregate: missing columns {missing}")
    if joined[year].isna().any():
        raise ValueError("Cannot aggregate: some rows have no year")

    aggregate = (
        joined.groupby([year, topic], sort=True)[gamma]
        .mean()
        .reset_index()
        .rename(columns={gamma: AggregateSchema.MEAN_GAMMA.colname})
    )
    return aggregate[AggregateSchema.all_colnames()]


def topic_year_matrix(aggregate: pd.DataFrame) -> pd.DataFrame:
    """Wide table of mean gamma: one row per year, one column per topic"""
    return aggregate.pivot(
        index=AggregateSchema.YEAR.colname,
        columns=AggregateSchema.TOPIC.colname,
        values=AggregateSchema.MEAN_GAMMA.colname,
    ).sort_index()


def to_time_series(aggregate: pd.DataFrame, topic: int, start_year: Optional[int] = None,
                   end_year: Optional[int] = None, frequency: int = 1) -> pd.Series:
    """
    Mean gamma of one topic as a regular series over years.

    start_year and end_year default to the first and last year in the
    aggregate. With frequency > 1 the years are grouped into windows of that
    many years starting at start_year; each window holds the mean of its
    observed years and is indexed by its first year.

    Periods between observed periods that have no documents are filled by
    linear interpolation, and a warning names them. Periods before the first
    or after the last observation are left as NaN, with a separate warning.

    Args:
        aggregate: output of aggregate_by_year
        topic: topic number (1-based)
        frequency: width of each period in years
    """
    if frequency < 1:
        raise ValueError(f"frequency must be at least 1, got {frequency}")
    year_col = AggregateSchema.YEAR.colname
    rows = aggregate[aggregate[AggregateSchema.TOPIC.colname] == topic]
    if rows.empty:
        raise ValueError(f"Topic {topic} not found in aggregate")

    series = rows.set_index(year_col)[AggregateSchema.MEAN_GAMMA.colname].sort_index()
    start_year = int(series.index.min()) if start_year is None else int(start_year)
    end_year = int(series.index.max()) if end_year is None else int(end_year)
    if end_year < start_year:
        raise ValueError(f"end_year {end_year} is before start_year {start_year}")

    years = pd.Index(range(start_year, end_year + 1), name=year_col)
    series = series.reindex(years)
    if frequency > 1:
        window_start = start_year + ((years - start_year) // frequency) * frequency
        # mean() skips NaN, so a window averages the years it observed
        series = series.groupby(window_start).mean()
        series.index.name = year_col

    observed = series.index[series.notna()]
    if observed.empty:
        raise ValueError(f"Topic {topic} has no observations between {start_year} and {end_year}")
    inside = (series.index > observed.min()) & (series.index < observed.max())
    gaps = series.index[series.isna() & inside].tolist()
    outside = series.index[series.isna() & ~inside].tolist()

    if gaps:
        log_print(f"Topic {topic}: interpolating mean gamma for periods with no documents {gaps}",
                  level="warning")
        series = series.interpolate(method="linear", limit_area="inside")
    if outside:
        log_print(f"Topic {topic}: periods {outside} lie outside the observed years; left as NaN",
                  level="warning")
    series.name = f"topic_{topic}"
    return series


def rolling_mean(series: pd.Series, window: int = 3) -> pd.Series:
    """Centered moving average; the ends use the years available"""
    return series.rolling(window=window, center=True, min_periods=1).mean()


def topic_trend_slopes(aggregate: pd.DataFrame) -> pd.DataFrame:
    """
    Least-squares slope of mean gamma against year for every topic.

    Positive slopes are rising ("hot") topics, negative ones falling ("cold").
    Topics with fewer than 3 years get NaN.

    Returns:
        DataFrame with columns topic, slope, p_value, r2, n_years, sorted by slope descending
    """
    wide = topic_year_matrix(aggregate)
    years = wide.index.to_numpy(dtype=np.float64)

    rows = []
    for topic in wide.columns:
        y = wide[topic].to_numpy(dtype=np.float64)
        mask = ~np.isnan(y)
        x, y = years[mask], y[mask]

        if len(x) < 3:
            rows.append({'topic': topic, 'slope': np.nan, 'p_value': np.nan,
                         'r2': np.nan, 'n_years': len(x)})
            continue

        fit = sm.OLS(y, sm.add_constant(x)).fit()
        rows.append({
            'topic': topic,
            'slope': fit.params[1],
            'p_value': fit.pvalues[1],
            'r2': fit.rsquared,
            'n_years': int(fit.nobs),
        })

    slopes = pd.DataFrame(rows, columns=['topic', 'slope', 'p_value', 'r2', 'n_years'])
    return slopes.sort_values('slope', ascending=False, na_position='last').reset_index(drop=True)


# ============================================================================
# Gamma Persistence
# ============================================================================

_GAMMA_DTYPES = {
    GammaSchema.DOCUMENT.colname: str,
    GammaSchema.TOPIC.colname: "int64",
    GammaSchema.GAMMA.colname: "float64",
    GammaSchema.YEAR.colname: "int64",
}


def write_gamma_csv(df: pd.DataFrame, path: Union[str, Path]) -> Path:
    """Write the year-annotated gamma table with columns document, topic, gamma, year"""
    columns = GammaSchema.all_colnames()
    missing = [c for c in columns if c not in df.columns]
    if missing:
        raise ValueError(f"Gamma table is missing columns {missing}")

    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    # repr-precision floats so a read returns the same values
    df[columns].to_csv(path, index=False, float_format="%.17g")
    log_print(f"Wrote {len(df)} gamma rows to {path}", level="info")
    return path


def read_gamma_csv(path: Union[str, Path]) -> pd.DataFrame:
    """
    Read a gamma table written by write_gamma_csv.

    Raises:
        FileNotFoundError: path does not exist
        ValueError: the header is not document, topic, gamma, year or a
            column does not hold values of its declared type
    """
    path = Path(path)
    if not path.is_file():
        raise FileNotFoundError(f"Gamma file '{path}' not found.")

    df = pd.read_csv(path, dtype={GammaSchema.DOCUMENT.colname: str}, keep_default_na=False)
    expected = GammaSchema.all_colnames()
    if list(df.columns) != expected:
        raise ValueError(f"Gamma file '{path}' has columns {list(df.columns)}, expected {expected}")

    try:
        df = df.astype(_GAMMA_DTYPES)
    except (TypeError, ValueError) as e:
        raise ValueError(f"Gamma file '{path}' does not match the declared column types: {e}") from e
    return df
