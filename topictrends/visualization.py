"""
Plots for topictrends.

Every plotting function returns its matplotlib Figure, saves it when given a
save_path, and only calls plt.show() when show=True.
"""

import math
import numpy as np
import pandas as pd
import matplotlib.pyplot as plt
import seaborn as sns
import pyLDAvis
from pathlib import Path
from pandas.plotting import lag_plot
from statsmodels.graphics.tsaplots import plot_acf
from statsmodels.tsa.seasonal import seasonal_decompose
from typing import Optional, Union

from .dataframe_schema import AggregateSchema, BetaSchema
from ._file_driver import log_print
from ._topic_model_driver import top_terms
from .model_evaluation import normalize_metrics
from .temporal import topic_year_matrix


STREAM_BASELINES = ('zero', 'wiggle')


def _finish(fig, save_path: Optional[Union[str, Path]], show: bool, description: str):
    fig.tight_layout()
    if save_path:
        save_path = Path(save_path)
        save_path.parent.mkdir(parents=True, exist_ok=True)
        fig.savefig(save_path, dpi=300, bbox_inches='tight')
        log_print(f"Saved {description} to {save_path}", level="info")
    if show:
        plt.show()
    return fig


# ============================================================================
# Topic Content
# ============================================================================

def plot_top_terms(beta_df: pd.DataFrame, n: int = 10, ncols: int = 4,
                   save_path=None, show: bool = False):
    """
    Horizontal bar chart of the n highest-beta terms, one panel per topic.
    """
    ranked = top_terms(beta_df, n)
    topic_col, term_col, beta_col = BetaSchema.TOPIC.colname, BetaSchema.TERM.colname, BetaSchema.BETA.colname
    topics = sorted(ranked[topic_col].unique())
    ncols = max(1, min(ncols, len(topics)))
    nrows = math.ceil(len(topics) / ncols)
    palette = sns.color_palette("tab20", n_colors=max(len(topics), 1))

    fig, axes = plt.subplots(nrows, ncols, figsize=(3.2 * ncols, 0.3 * n * nrows + 1.5), squeeze=False)
    for i, topic in enumerate(topics):
        ax = axes[i // ncols][i % ncols]
        sub = ranked[ranked[topic_col] == topic]
        sns.barplot(data=sub, x=beta_col, y=term_col, color=palette[i], ax=ax)
        ax.set_title(f"Topic {topic}")
        ax.set_xlabel("beta")
        ax.set_ylabel("")

    for j in range(len(topics), nrows * ncols):
        axes[j // ncols][j % ncols].set_visible(False)

    return _finish(fig, save_path, show, "top terms plot")


def plot_topic_stream(aggregate: pd.DataFrame, baseline: str = 'wiggle',
                      save_path=None, show: bool = False):
    """
    Mean gamma of every topic over the years as a stacked area chart
    (baseline='zero') or a stream graph (baseline='wiggle').
    """
    if baseline not in STREAM_BASELINES:
        raise ValueError(f"baseline must be one of {STREAM_BASELINES}, got '{baseline}'")
    wide = topic_year_matrix(aggregate).fillna(0.0)
    years = wide.index.to_numpy()
    colors = sns.color_palette("tab20", n_colors=wide.shape[1])

    fig, ax = plt.subplots(figsize=(12, 6))
    ax.stackplot(years, wide.T.to_numpy(), labels=[f"Topic {t}" for t in wide.columns],
                 colors=colors, baseline=baseline, alpha=0.85, linewidth=0.3, edgecolor='white')
    ax.set_xlabel(AggregateSchema.YEAR.colname.capitalize())
    ax.set_ylabel("Mean topic proportion")
    ax.set_title("Topic prevalence by year")
    ax.spines['top'].set_visible(False)
    ax.spines['right'].set_visible(False)
    ax.legend(loc='upper left', bbox_to_anchor=(1.01, 1), frameon=False)

    return _finish(fig, save_path, show, "topic stream plot")


# ============================================================================
# Topic-Count Selection
# ============================================================================

def plot_topic_count_metrics(results: pd.DataFrame, save_path=None, show: bool = False):
    """
    Normalized metric curves from find_topics_number, with metrics to
    minimize and metrics to maximize in separate panels.
    """
    long_df = normalize_metrics(results)
    fig, axes = plt.subplots(2, 1, figsize=(9, 7), sharex=True)

    for ax, direction in zip(axes, ('minimize', 'maximize')):
        sub = long_df[long_df['direction'] == direction]
        if not sub.empty:
            sns.lineplot(data=sub, x='topics', y='value', hue='metric', style='metric',
                         markers=True, dashes=False, ax=ax)
        ax.set_ylabel("Normalized score")
        ax.set_title(direction.capitalize())
        ax.grid(True, alpha=0.3)

    axes[-1].set_xlabel("Number of topics")
    axes[-1].set_xticks(results['topics'].tolist())
    return _finish(fig, save_path, show, "topic count metrics plot")


# ============================================================================
# Time-Series Diagnostics
# ============================================================================

def plot_autocorrelation(series: pd.Series, lags: int = 10, save_path=None, show: bool = False):
    """Autocorrelation function of a yearly topic series"""
    if len(series) < 3:
        raise ValueError(f"Autocorrelation needs at least 3 observations, got {len(series)}")
    lags = min(lags, len(series) - 1)
    fig, ax = plt.subplots(figsize=(9, 4))
    plot_acf(series.to_numpy(dtype=np.float64), lags=lags, ax=ax,
             title=f"Autocorrelation: {series.name}")
    ax.set_xlabel("Lag (years)")
    return _finish(fig, save_path, show, "autocorrelation plot")


def plot_lag(series: pd.Series, lag: int = 1, save_path=None, show: bool = False):
    """Scatter of each year's value against the value lag years earlier"""
    if lag < 1 or lag >= len(series):
        raise ValueError(f"lag must be between 1 and {len(series) - 1}, got {lag}")
    fig, ax = plt.subplots(figsize=(5, 5))
    lag_plot(series, lag=lag, ax=ax)
    ax.set_title(f"Lag {lag}: {series.name}")
    return _finish(fig, save_path, show, "lag plot")


def plot_trend_decomposition(series: pd.Series, period: int = 5, model: str = 'additive',
                             save_path=None, show: bool = False):
    """
    Split a yearly topic series into trend, periodic and residual components.

    Raises:
        ValueError: the series covers fewer than two full periods
    """
    if period < 2:
        raise ValueError(f"period must be at least 2, got {period}")
    if len(series) < 2 * period:
        raise ValueError(
            f"Trend decomposition needs at least two full periods ({2 * period} years), got {len(series)}"
        )
    result = seasonal_decompose(series.to_numpy(dtype=np.float64), model=model, period=period)

    components = [
        ("Observed", result.observed),
        ("Trend", result.trend),
        ("Periodic", result.seasonal),
        ("Residual", result.resid),
    ]
    fig, axes = plt.subplots(len(components), 1, figsize=(10, 8), sharex=True)
    years = series.index.to_numpy()
    for ax, (label, values) in zip(axes, components):
        if label == "Residual":
            ax.scatter(years, values, s=12)
            ax.axhline(0 if model == 'additive' else 1, color='black', linewidth=0.8)
        else:
            ax.plot(years, values, marker='o', linewidth=1)
        ax.set_ylabel(label)
    axes[0].set_title(f"Trend decomposition ({model}, period {period}): {series.name}")
    axes[-1].set_xlabel("Year")
    return _finish(fig, save_path, show, "trend decomposition plot")


# ============================================================================
# Interactive Topic Browser
# ============================================================================

def export_ldavis(model, dtm, path: Union[str, Path]):
    """
    Write a pyLDAvis HTML page for a fitted model.

    Args:
        model: fitted UnitTopicModel
        dtm: the DocumentTermMatrix the model was fitted on
        path: output .html path

    Returns:
        The pyLDAvis PreparedData
    """
    vis = pyLDAvis.prepare(
        topic_term_dists=model.get_topic_word_distributions(),
        doc_topic_dists=model.get_document_topic_distributions(),
        doc_lengths=dtm.doc_lengths(),
        vocab=list(dtm.vocabulary),
        term_frequency=dtm.term_frequencies(),
        sort_topics=False,
        n_jobs=1,
    )
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    pyLDAvis.save_html(vis, str(path))
    log_print(f"Saved pyLDAvis page to {path}", level="info")
    return vis
