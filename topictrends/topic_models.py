"""
Topic model implementations for topictrends.

All models share the UnitTopicModel interface and are fitted on a reduced
DocumentTermMatrix. GibbsLDATopicModel (collapsed Gibbs sampling with a
fixed seed) is the default; LDATopicModel wraps gensim's variational LdaModel
as an alternative.
"""

import numpy as np
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional, Tuple, Union
from gensim.models import LdaModel, CoherenceModel

from ._gibbs_driver import run_gibbs_sampler
from .text_preprocessing import DocumentTermMatrix


class EmptyDocumentError(ValueError):
    """Raised when a document with no terms reaches a topic model"""


def validate_document_term_matrix(dtm: DocumentTermMatrix) -> None:
    """Reject input a topic model cannot be fitted on"""
    if dtm.n_docs == 0:
        raise ValueError("Document-term matrix has no documents")
    if dtm.n_terms == 0:
        raise ValueError("Document-term matrix has an empty vocabulary")
    lengths = dtm.doc_lengths()
    if np.any(lengths == 0):
        empty = [dtm.doc_ids[i] for i in np.flatnonzero(lengths == 0)]
        raise EmptyDocumentError(
            f"{len(empty)} documents have no terms and must be dropped before fitting: {empty}"
        )


"""============================================================================
Abstract Base Class
============================================================================"""
class UnitTopicModel(ABC):
    """
    Abstract base class for topic models.

    Subclasses set self.vocabulary and self.doc_ids in fit() so that the
    distribution extractors can label rows and columns.
    """
    vocabulary: Optional[List[str]] = None
    doc_ids: Optional[List[str]] = None

    @abstractmethod
    def fit(self, dtm: DocumentTermMatrix) -> 'UnitTopicModel':
        """
        Fit the topic model to a document-term matrix.

        Returns:
            Self for method chaining
        """
        pass

    @abstractmethod
    def get_topic_word_distributions(self) -> np.ndarray:
        """
        Get topic-word distributions (phi matrix).

        Returns:
            Array of shape (n_topics, n_words) with topic-word probabilities
        """
        pass

    @abstractmethod
    def get_document_topic_distributions(self) -> np.ndarray:
        """
        Get document-topic distributions (theta matrix).

        Returns:
            Array of shape (n_documents, n_topics) with document-topic probabilities
        """
        pass

    @abstractmethod
    def get_num_topics(self) -> int:
        pass

    @abstractmethod
    def get_model_params(self) -> Dict[str, Any]:
        """Model-specific parameters for serialization/logging"""
        pass

    def is_fitted(self) -> bool:
        return self.vocabulary is not None

    def _check_fitted(self):
        if not self.is_fitted():
            raise ValueError("Model not fitted. Call fit() first.")

    def get_topic_terms(self, topic_id: int, topn: int = 10) -> List[Tuple[str, float]]:
        """
        Top terms for a topic.

        Args:
            topic_id: Topic index (0-based)
            topn: Number of top terms to return

        Returns:
            List of (term, probability) tuples, most probable first
        """
        self._check_fitted()
        phi = self.get_topic_word_distributions()
        order = np.argsort(-phi[topic_id], kind='stable')[:topn]
        return [(self.vocabulary[i], float(phi[topic_id, i])) for i in order]


"""============================================================================
Concrete Implementations
============================================================================"""
class GibbsLDATopicModel(UnitTopicModel):
    """
    LDA fitted by collapsed Gibbs sampling.

    alpha defaults to 50 / n_topics and eta to 0.1. The same random_state on
    the same matrix reproduces identical distributions.
    """

    def __init__(self, n_topics: int = 10, alpha: Optional[float] = None, eta: float = 0.1,
                 iterations: int = 2000, burn_in: int = 0, keep: int = 50,
                 random_state: Optional[int] = 1234):
        if n_topics < 1:
            raise ValueError(f"n_topics must be at least 1, got {n_topics}")
        if iterations < 1:
            raise ValueError(f"iterations must be at least 1, got {iterations}")
        self.n_topics = n_topics
        self.alpha = alpha if alpha is not None else 50.0 / n_topics
        self.eta = eta
        self.iterations = iterations
        self.burn_in = burn_in
        self.keep = keep
        self.random_state = random_state

        self.vocabulary = None
        self.doc_ids = None
        self._phi = None
        self._theta = None
        self._log_likelihoods = None

    def fit(self, dtm: DocumentTermMatrix) -> 'GibbsLDATopicModel':
        validate_document_term_matrix(dtm)
        state = run_gibbs_sampler(
            dtm.matrix,
            n_topics=self.n_topics,
            alpha=self.alpha,
            eta=self.eta,
            iterations=self.iterations,
            burn_in=self.burn_in,
            keep=self.keep,
            random_state=self.random_state,
        )
        self._phi = state.phi
        self._theta = state.theta
        self._log_likelihoods = state.log_likelihoods
        self.doc_ids = list(dtm.doc_ids)
        self.vocabulary = list(dtm.vocabulary)
        return self

    def get_topic_word_distributions(self) -> np.ndarray:
        self._check_fitted()
        return self._phi

    def get_document_topic_distributions(self) -> np.ndarray:
        self._check_fitted()
        return self._theta

    def get_log_likelihoods(self) -> np.ndarray:
        """Joint log-likelihood trace recorded during sampling, past burn-in"""
        self._check_fitted()
        return self._log_likelihoods

    def get_num_topics(self) -> int:
        return self.n_topics

    def get_model_params(self) -> Dict[str, Any]:
        return {
            'model_type': 'LDA_Gibbs',
            'n_topics': self.n_topics,
            'alpha': self.alpha,
            'eta': self.eta,
            'iterations': self.iterations,
            'burn_in': self.burn_in,
            'keep': self.keep,
            'random_state': self.random_state,
        }


class LDATopicModel(UnitTopicModel):
    """
    LDA topic model implementation using Gensim's variational LdaModel.
    """

    def __init__(self, n_topics: int = 10, alpha: Union[str, float] = 'symmetric',
                 eta: Union[str, float] = None, random_state: int = 1234,
                 npasses: int = 5, ngibbs: int = 50, **kwargs):
        if n_topics < 1:
            raise ValueError(f"n_topics must be at least 1, got {n_topics}")
        self.n_topics = n_topics
        self.alpha = alpha  # Document-topic density (higher = more topics per doc)
        self.eta = eta      # Topic-word density (higher = more words per topic)
        self.random_state = random_state
        self.npasses = npasses  # Number of passes through corpus during training
        self.ngibbs = ngibbs  # Number of iterations per pass
        self.model = None
        self.dictionary = None
        self.corpus = None
        self.vocabulary = None
        self.doc_ids = None
        self.kwargs = kwargs

    def fit(self, dtm: DocumentTermMatrix) -> 'LDATopicModel':
        validate_document_term_matrix(dtm)
        self.dictionary = dtm.to_dictionary()
        self.corpus = dtm.to_bow_corpus()

        self.model = LdaModel(
            corpus=self.corpus,
            id2word=self.dictionary,
            num_topics=self.n_topics,
            alpha=self.alpha,
            eta=self.eta,
            random_state=self.random_state,
            passes=self.npasses,
            iterations=self.ngibbs,
            **self.kwargs
        )
        self.doc_ids = list(dtm.doc_ids)
        self.vocabulary = list(dtm.vocabulary)
        return self

    def get_topic_word_distributions(self) -> np.ndarray:
        self._check_fitted()
        # gensim stores float32; renormalize in float64
        topic_word_matrix = self.model.get_topics().astype(np.float64)
        return topic_word_matrix / topic_word_matrix.sum(axis=1, keepdims=True)

    def get_document_topic_distributions(self) -> np.ndarray:
        self._check_fitted()
        doc_topic_matrix = np.zeros((len(self.corpus), self.n_topics))

        for doc_id, doc_bow in enumerate(self.corpus):
            doc_topics = self.model.get_document_topics(doc_bow, minimum_probability=0.0)
            for topic_id, prob in doc_topics:
                doc_topic_matrix[doc_id, topic_id] = prob

        return doc_topic_matrix / doc_topic_matrix.sum(axis=1, keepdims=True)

    def get_num_topics(self) -> int:
        return self.n_topics

    def get_model_params(self) -> Dict[str, Any]:
        return {
            'model_type': 'LDA_Gensim',
            'n_topics': self.n_topics,
            'alpha': self.alpha,
            'eta': self.eta,
            'random_state': self.random_state,
            'npasses': self.npasses,
            'ngibbs': self.ngibbs,
            **self.kwargs
        }

    def get_coherence_score(self, coherence_measure: str = 'u_mass') -> float:
        """
        Calculate topic coherence score (Gensim-specific feature).

        Args:
            coherence_measure: Coherence measure ('u_mass', 'c_v', 'c_npmi', 'c_uci')
        """
        self._check_fitted()

        # Recreate tokenized documents for the sliding-window measures
        tokenized_docs = [[self.dictionary[word_id] for word_id, _ in doc]
                          for doc in self.corpus]

        coherence_model = CoherenceModel(
            model=self.model,
            texts=tokenized_docs,
            corpus=self.corpus,
            dictionary=self.dictionary,
            coherence=coherence_measure
        )
        return coherence_model.get_coherence()


_MODEL_TYPES = {
    'gibbs_lda': GibbsLDATopicModel,
    'lda': LDATopicModel,
}


def create_topic_model(model_type: str = 'gibbs_lda', **kwargs) -> UnitTopicModel:
    """
    Factory function to create topic models.

    Args:
        model_type: 'gibbs_lda' (collapsed Gibbs sampling) or 'lda' (gensim variational)
        **kwargs: Model-specific parameters
    """
    model_class = _MODEL_TYPES.get(model_type.lower())
    if model_class is None:
        raise ValueError(f"Unknown topic model type: {model_type}. Available: {sorted(_MODEL_TYPES)}")
    return model_class(**kwargs)
