"""
model_evaluation.py

Implements the topic-count selection metrics of Griffiths and Steyvers (2004), Cao Juan et al. (2009),
Arun et al. (2010) and Deveaud et al. (2014), and a sweep that scores one collapsed-Gibbs LDA model per
candidate number of topics.

The sweep never picks a number of topics. It returns one row per candidate with one column per metric, and the
operator reads the curves: griffiths2004 and deveaud2014 should be maximized, caojuan2009 and arun2010 minimized.
Because the four metrics live on different scales, normalize_metrics() min-max scales each of them so the curves
can share one plot.

Diagnostics kept alongside the metrics (mean_entropy, topic_diversity) summarize how peaked the fitted document-topic
distributions are and how much the top terms of different topics overlap.
"""
# ==============================================================================
# Imports
# ==============================================================================
import numpy as np
import pandas as pd
from multiprocessing import Pool
from scipy.special import logsumexp
from tqdm import tqdm

from ._file_driver import log_print
from ._math_driver import pairwise_cosine_similarities, symmetric_kl_divergence, mean_entropy
from .topic_models import GibbsLDATopicModel, validate_document_term_matrix


# ==============================================================================
# Topic-Count Metrics
# ==============================================================================
def griffiths2004(model, dtm=None):
    """Harmonic mean estimate of log p(w | K) from the sampler's log-likelihood trace.

    Computed around the median of the trace for numerical stability:
        median - log(mean(exp(-(ll - median))))

    :param model: fitted GibbsLDATopicModel
    :return: float, higher is better
    """
    log_likelihoods = np.asarray(model.get_log_likelihoods(), dtype=np.float64)
    if log_likelihoods.size == 0:
        raise ValueError("Model recorded no log-likelihoods")
    ll_median = np.median(log_likelihoods)
    log_mean = logsumexp(-(log_likelihoods - ll_median)) - np.log(log_likelihoods.size)
    return float(ll_median - log_mean)


def caojuan2009(model, dtm=None):
    """Mean cosine similarity over all pairs of topic-word distributions. Lower is better."""
    phi = model.get_topic_word_distributions()
    if phi.shape[0] < 2:
        raise ValueError("caojuan2009 needs at least 2 topics")
    return float(np.mean(pairwise_cosine_similarities(phi)))


def arun2010(model, dtm):
    """Symmetric KL divergence between the singular values of phi and the topic mass of the corpus.

    The topic mass is the document-length-weighted sum of the document-topic distributions, scaled by the longest
    document length. Lower is better.

    :param model: fitted topic model
    :param dtm: the DocumentTermMatrix the model was fitted on
    """
    phi = model.get_topic_word_distributions()
    theta = model.get_document_topic_distributions()
    n_topics = phi.shape[0]
    if phi.shape[1] < n_topics:
        raise ValueError(
            f"arun2010 needs at least as many terms ({phi.shape[1]}) as topics ({n_topics})"
        )

    cm1 = np.linalg.svd(phi, compute_uv=False)
    doc_lengths = dtm.doc_lengths().astype(np.float64)
    cm2 = (doc_lengths @ theta) / doc_lengths.max()
    return float(np.sum(cm1 * np.log(cm1 / cm2)) + np.sum(cm2 * np.log(cm2 / cm1)))


def deveaud2014(model, dtm=None):
    """Symmetric KL divergence summed over unordered pairs of topic-word distributions, divided by K(K - 1). Higher is better."""
    phi = np.array(model.get_topic_word_distributions(), dtype=np.float64)
    n_topics = phi.shape[0]
    if n_topics < 2:
        raise ValueError("deveaud2014 needs at least 2 topics")
    if np.any(phi == 0):
        phi = phi + np.finfo(np.float64).tiny

    total = 0.0
    for i in range(n_topics - 1):
        for j in range(i + 1, n_topics):
            total += symmetric_kl_divergence(phi[i], phi[j])
    return total / (n_topics * (n_topics - 1))


METRICS = {
    'griffiths2004': griffiths2004,
    'caojuan2009': caojuan2009,
    'arun2010': arun2010,
    'deveaud2014': deveaud2014,
}

METRIC_DIRECTIONS = {
    'griffiths2004': 'maximize',
    'caojuan2009': 'minimize',
    'arun2010': 'minimize',
    'deveaud2014': 'maximize',
}


# ==============================================================================
# Topic-Count Sweep
# ==============================================================================
def _fit_and_score(n_topics, dtm, metrics, model_params, random_state):
    """Fit one model and evaluate every requested metric on it"""
    model = GibbsLDATopicModel(n_topics=n_topics, random_state=random_state, **model_params)
    model.fit(dtm)
    row = {'topics': n_topics}
    for name in metrics:
        row[name] = METRICS[name](model, dtm)
    return row


def _validate_candidates(candidate_topics):
    candidates = list(candidate_topics)
    if not candidates:
        raise ValueError("candidate_topics is empty")
    for k in candidates:
        if isinstance(k, bool) or not isinstance(k, (int, np.integer)):
            raise ValueError(f"Candidate topic counts must be integers, got {k!r}")
        if k < 2:
            raise ValueError(f"Candidate topic counts must be at least 2, got {k}")
    if len(set(candidates)) != len(candidates):
        raise ValueError(f"Candidate topic counts must be unique, got {candidates}")
    return [int(k) for k in candidates]


def find_topics_number(dtm, candidate_topics, metrics=None, num_workers=1, model_params=None,
                       random_state=1234, show_progress=True):
    """Score one Gibbs LDA model per candidate number of topics.

    Each candidate is fitted independently on its own copy of dtm, in a process pool of num_workers processes
    (in this process when num_workers is 1). A failing fit fails the whole sweep.

    :param dtm: reduced DocumentTermMatrix with no empty documents
    :param candidate_topics: unique integers >= 2
    :param metrics: metric names from METRICS, all four if None
    :param num_workers: size of the process pool
    :param model_params: extra GibbsLDATopicModel arguments (alpha, eta, iterations, burn_in, keep)
    :param random_state: seed shared by every candidate fit
    :return: DataFrame with a 'topics' column and one column per metric, sorted by topics
    """
    candidates = _validate_candidates(candidate_topics)
    metrics = list(metrics) if metrics is not None else list(METRICS)
    unknown = [m for m in metrics if m not in METRICS]
    if unknown:
        raise ValueError(f"Unknown metrics {unknown}. Available: {list(METRICS)}")
    if num_workers < 1:
        raise ValueError(f"num_workers must be at least 1, got {num_workers}")
    validate_document_term_matrix(dtm)
    model_params = dict(model_params or {})

    log_print(
        f"Scoring {len(candidates)} topic counts {candidates} with {metrics} using {num_workers} worker(s)",
        level="info"
    )
    args = [(k, dtm, metrics, model_params, random_state) for k in candidates]
    if num_workers == 1:
        rows = [_fit_and_score(*a) for a in tqdm(args, desc="Topic counts", disable=not show_progress)]
    else:
        with Pool(processes=num_workers) as pool:
            rows = pool.starmap(_fit_and_score, args)

    results = pd.DataFrame(rows, columns=['topics'] + metrics)
    return results.sort_values('topics').reset_index(drop=True)


def normalize_metrics(results):
    """Min-max scale each metric column to [0, 1] and reshape to long format.

    A metric whose values are all equal maps to 0.5.

    :param results: output of find_topics_number
    :return: DataFrame with columns topics, metric, value, direction
    """
    metric_cols = [c for c in results.columns if c != 'topics']
    frames = []
    for name in metric_cols:
        values = results[name].astype(np.float64)
        span = values.max() - values.min()
        scaled = (values - values.min()) / span if span > 0 else pd.Series(0.5, index=values.index)
        frames.append(pd.DataFrame({
            'topics': results['topics'].to_numpy(),
            'metric': name,
            'value': scaled.to_numpy(),
            'direction': METRIC_DIRECTIONS.get(name, 'unknown'),
        }))
    if not frames:
        return pd.DataFrame(columns=['topics', 'metric', 'value', 'direction'])
    return pd.concat(frames, ignore_index=True)


# ==============================================================================
# Diagnostics
# ==============================================================================
def document_topic_entropy(model):
    """Mean entropy of the fitted document-topic distributions"""
    return mean_entropy(model.get_document_topic_distributions())


def topic_diversity(topic_words_list, topk=10):
    """
    Calculate topic diversity - the percentage of unique words in top-k words of all topics.

    Args:
        topic_words_list: List of lists, each containing top words for a topic
        topk: Number of top words to consider per topic

    Returns:
        Topic diversity score (0-1)
    """
    if not topic_words_list:
        return 0.0

    all_topk_words = set()
    total_topk_words = 0

    for topic_words in topic_words_list:
        topk_words = topic_words[:topk]
        all_topk_words.update(topk_words)
        total_topk_words += len(topk_words)

    if total_topk_words == 0:
        return 0.0

    return len(all_topk_words) / total_topk_words
