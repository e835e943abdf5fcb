"""
Collapsed Gibbs sampling for Latent Dirichlet Allocation.

Each sweep resamples the topic assignment of every token from its full
conditional given all other assignments,

    p(z_i = k | z_-i, w) ~ (n_dk + alpha) * (n_kw + eta) / (n_k + V * eta),

where the counts exclude token i. The sweeps run in the compiled sampler of
the `lda` package. Point estimates of phi (topic-word) and theta
(document-topic) are read off the final state. The log-likelihood trace
feeds the Griffiths2004 topic-count metric.
"""

import numpy as np
import lda
from collections import namedtuple

from ._file_driver import log_print


GibbsState = namedtuple(
    "GibbsState",
    ["phi", "theta", "topic_assignments", "doc_topic_counts", "topic_word_counts", "log_likelihoods"]
)


def trace_schedule(iterations, burn_in=0, keep=0):
    """
    Refresh interval to hand to lda.LDA and the number of sweeps completed
    before each entry of its loglikelihoods_ list.

    lda records the log-likelihood before sweeps 0, refresh, 2 * refresh, ...
    Entries taken during burn-in (and the random initial state) are dropped
    by kept_trace().
    """
    total_sweeps = burn_in + iterations
    refresh = keep if keep else total_sweeps
    recorded_at = np.arange(0, total_sweeps, refresh)
    return refresh, recorded_at


def kept_trace(log_likelihoods, recorded_at, burn_in, final_log_likelihood):
    """Log-likelihoods past burn-in followed by that of the final state"""
    log_likelihoods = np.asarray(log_likelihoods, dtype=np.float64)
    kept = log_likelihoods[recorded_at[:len(log_likelihoods)] > burn_in]
    return np.append(kept, final_log_likelihood)


def run_gibbs_sampler(matrix, n_topics, alpha, eta, iterations,
                      burn_in=0, keep=0, random_state=None):
    """
    Fit LDA to a document-term count matrix.

    Args:
        matrix: scipy sparse (n_docs, n_terms) integer counts, no all-zero rows
        n_topics: Number of topics K
        alpha: Symmetric document-topic Dirichlet prior
        eta: Symmetric topic-word Dirichlet prior
        iterations: Sweeps after burn-in
        burn_in: Sweeps discarded before the log-likelihood trace starts
        keep: Record the log-likelihood every `keep` sweeps (0: final state only)
        random_state: Seed; the same seed reproduces the same state

    Returns:
        GibbsState
    """
    refresh, recorded_at = trace_schedule(iterations, burn_in, keep)
    sampler = lda.LDA(
        n_topics=n_topics,
        n_iter=burn_in + iterations,
        alpha=alpha,
        eta=eta,
        random_state=random_state,
        refresh=refresh,
    )
    sampler.fit(matrix.astype(np.int64))

    log_likelihoods = kept_trace(sampler.loglikelihoods_, recorded_at, burn_in, sampler.loglikelihood())
    log_print(
        f"Gibbs sampling finished: K={n_topics}, {burn_in + iterations} sweeps, "
        f"final log-likelihood {log_likelihoods[-1]:.2f}",
        level="debug"
    )

    return GibbsState(
        phi=np.asarray(sampler.topic_word_, dtype=np.float64),
        theta=np.asarray(sampler.doc_topic_, dtype=np.float64),
        topic_assignments=np.asarray(sampler.ZS),
        doc_topic_counts=np.asarray(sampler.ndz_),
        topic_word_counts=np.asarray(sampler.nzw_),
        log_likelihoods=log_likelihoods,
    )
