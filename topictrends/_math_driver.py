"""
Mathematical functions and utilities for topictrends.

This module contains the divergences and similarities used to score topic
models, together with simplex checks for fitted distributions.
"""

import numpy as np
from scipy.special import rel_entr
from sklearn.metrics.pairwise import cosine_similarity


EPSILON = 1e-10


# ============================================================================
# Distance Metrics and Similarity Functions
# ============================================================================

def kl_divergence(p, q):
    """Function to calculate the Kullback-Leibler Divergence between two distributions."""
    p = np.asarray(p, dtype=np.float64)
    q = np.asarray(q, dtype=np.float64)
    return float(np.sum(rel_entr(p, q)))


def symmetric_kl_divergence(p, q):
    """Half the sum of KL(p||q) and KL(q||p)"""
    return 0.5 * kl_divergence(p, q) + 0.5 * kl_divergence(q, p)


def jensen_shannon_divergence(p, q):
    """
    Compute the Jensen-Shannon divergence between two probability distributions using rel_entr.

    Args:
        p, q (array-like): Probability distributions

    Returns:
        float: Jensen-Shannon divergence
    """
    p = np.asarray(p, dtype=np.float64)
    q = np.asarray(q, dtype=np.float64)

    if not np.any(p):
        raise ValueError("Input p must have nonzero sum.")
    if not np.any(q):
        raise ValueError("Input q must have nonzero sum.")

    p = p / np.sum(p)
    q = q / np.sum(q)

    m = 0.5 * (p + q)
    return 0.5 * np.sum(rel_entr(p, m)) + 0.5 * np.sum(rel_entr(q, m))


def pairwise_cosine_similarities(vecs):
    """Cosine similarities of every unordered pair of rows (upper triangle)"""
    sims = cosine_similarity(np.asarray(vecs, dtype=np.float64))
    rows, cols = np.triu_indices(sims.shape[0], k=1)
    return sims[rows, cols]


def single_vec_entropy(p):
    """Calculate entropy of a single probability vector."""
    p_safe = np.maximum(p, EPSILON)
    return -np.dot(p_safe, np.log(p_safe))


def mean_entropy(vecs):
    """Calculate mean entropy across multiple probability vectors."""
    entropies = np.apply_along_axis(single_vec_entropy, axis=1, arr=np.asarray(vecs, dtype=np.float64))
    return float(np.mean(entropies))


# ============================================================================
# Simplex Checks
# ============================================================================

def check_simplex(matrix, axis=1, tol=1e-6):
    """
    Raise ValueError unless every slice along `axis` is a probability vector
    (non-negative entries summing to 1 within tol).
    """
    matrix = np.asarray(matrix, dtype=np.float64)
    if matrix.size and matrix.min() < 0:
        raise ValueError("Distribution contains negative probabilities")
    sums = matrix.sum(axis=axis)
    bad = np.flatnonzero(np.abs(sums - 1.0) > tol)
    if bad.size:
        raise ValueError(
            f"{bad.size} distributions do not sum to 1 within {tol} "
            f"(first offending index {bad[0]}, sum {sums[bad[0]]:.8f})"
        )
    return True
