"""
Topic model output functions for topictrends.

This module turns fitted phi/theta matrices into tidy per-topic term (beta)
and per-document topic (gamma) tables, and ranks terms within topics.
Topics are numbered from 1 in every table.
"""

import numpy as np
import pandas as pd
from typing import Sequence

from .dataframe_schema import BetaSchema, GammaSchema
from ._math_driver import check_simplex


# ============================================================================
# Tidy Distribution Tables
# ============================================================================

def tidy_beta(model, vocabulary: Sequence[str] = None) -> pd.DataFrame:
    """
    One row per (topic, term) with the term's probability under the topic.

    Args:
        model: Fitted UnitTopicModel
        vocabulary: Column labels of phi; defaults to model.vocabulary
    """
    phi = np.asarray(model.get_topic_word_distributions())
    vocabulary = list(vocabulary if vocabulary is not None else model.vocabulary)
    n_topics, n_terms = phi.shape
    if len(vocabulary) != n_terms:
        raise ValueError(f"Vocabulary has {len(vocabulary)} terms but the model has {n_terms}")
    check_simplex(phi, axis=1)

    return pd.DataFrame({
        BetaSchema.TOPIC.colname: np.repeat(np.arange(1, n_topics + 1), n_terms),
        BetaSchema.TERM.colname: np.tile(np.asarray(vocabulary, dtype=object), n_topics),
        BetaSchema.BETA.colname: phi.ravel(),
    })


def tidy_gamma(model, doc_ids: Sequence[str] = None) -> pd.DataFrame:
    """
    One row per (document, topic) with the topic's share of the document.

    Args:
        model: Fitted UnitTopicModel
        doc_ids: Row labels of theta; defaults to model.doc_ids
    """
    theta = np.asarray(model.get_document_topic_distributions())
    doc_ids = list(doc_ids if doc_ids is not None else model.doc_ids)
    n_docs, n_topics = theta.shape
    if len(doc_ids) != n_docs:
        raise ValueError(f"Got {len(doc_ids)} document ids but the model has {n_docs} documents")
    check_simplex(theta, axis=1)

    return pd.DataFrame({
        GammaSchema.DOCUMENT.colname: np.repeat(np.asarray(doc_ids, dtype=object), n_topics),
        GammaSchema.TOPIC.colname: np.tile(np.arange(1, n_topics + 1), n_docs),
        GammaSchema.GAMMA.colname: theta.ravel(),
    })


# ============================================================================
# Term Ranking
# ============================================================================

def top_terms(beta_df: pd.DataFrame, n: int = 10) -> pd.DataFrame:
    """
    The n most probable terms of each topic, ordered by topic then by
    descending beta. Equal betas are broken alphabetically by term.
    """
    if n < 1:
        raise ValueError(f"n must be at least 1, got {n}")
    topic, term, beta = BetaSchema.TOPIC.colname, BetaSchema.TERM.colname, BetaSchema.BETA.colname
    ranked = beta_df.sort_values([topic, beta, term], ascending=[True, False, True], kind='mergesort')
    return ranked.groupby(topic, sort=True).head(n).reset_index(drop=True)


def term_relevance(beta_df: pd.DataFrame, term_frequencies, vocabulary: Sequence[str],
                   lambda_param: float = 0.6) -> pd.DataFrame:
    """
    LDAvis relevance of each term to each topic,

        lambda * log(beta) + (1 - lambda) * log(beta / p(term)),

    where p(term) is the corpus-wide term probability. Adds a 'relevance'
    column to a copy of beta_df.
    """
    if not 0 <= lambda_param <= 1:
        raise ValueError(f"lambda_param must be in [0, 1], got {lambda_param}")
    counts = np.asarray(term_frequencies, dtype=np.float64)
    p_w = pd.Series(counts / counts.sum(), index=list(vocabulary))

    df = beta_df.copy()
    beta = df[BetaSchema.BETA.colname].to_numpy() + 1e-12
    marginal = df[BetaSchema.TERM.colname].map(p_w).to_numpy()
    df['relevance'] = lambda_param * np.log(beta) + (1 - lambda_param) * np.log(beta / marginal)
    return df


def dominant_topics(gamma_df: pd.DataFrame) -> pd.DataFrame:
    """Highest-gamma topic of each document (lowest topic number on ties)"""
    doc, topic, gamma = GammaSchema.DOCUMENT.colname, GammaSchema.TOPIC.colname, GammaSchema.GAMMA.colname
    ranked = gamma_df.sort_values([doc, gamma, topic], ascending=[True, False, True], kind='mergesort')
    return ranked.groupby(doc, sort=True).head(1)[[doc, topic, gamma]].reset_index(drop=True)
