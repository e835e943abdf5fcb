"""
Test cases for topic_models.py module
"""

import pytest
import numpy as np
from unittest.mock import patch

import sys
from pathlib import Path
sys.path.insert(0, str(Path(__file__).parent.parent))

from topictrends.topic_models import (
    UnitTopicModel, GibbsLDATopicModel, LDATopicModel, EmptyDocumentError,
    create_topic_model, validate_document_term_matrix
)
from topictrends.text_preprocessing import DocumentTermMatrix


@pytest.fixture
def two_theme_dtm():
    """Ten documents drawn from two disjoint vocabularies"""
    texts = (
        ['river flood water bank river flood levee'] * 5 +
        ['court judge law trial court judge verdict'] * 5
    )
    return DocumentTermMatrix.from_texts([f'd{i}' for i in range(10)], texts)


class TestAbstractBaseClass:
    """Test abstract base classes"""

    def test_unit_topic_model_is_abstract(self):
        with pytest.raises(TypeError):
            UnitTopicModel()


class TestValidateDocumentTermMatrix:

    def test_empty_document_raises(self):
        dtm = DocumentTermMatrix(np.array([[1, 0], [0, 0]]), ['d1', 'd2'], ['a', 'b'])
        with pytest.raises(EmptyDocumentError, match="d2"):
            validate_document_term_matrix(dtm)

    def test_empty_document_error_is_value_error(self):
        assert issubclass(EmptyDocumentError, ValueError)

    def test_no_documents(self):
        dtm = DocumentTermMatrix(np.zeros((0, 2)), [], ['a', 'b'])
        with pytest.raises(ValueError, match="no documents"):
            validate_document_term_matrix(dtm)

    def test_no_terms(self):
        dtm = DocumentTermMatrix(np.zeros((2, 0)), ['d1', 'd2'], [])
        with pytest.raises(ValueError, match="empty vocabulary"):
            validate_document_term_matrix(dtm)


class TestGibbsLDATopicModel:
    """Test cases for the collapsed Gibbs sampler model"""

    def test_initialization(self):
        model = GibbsLDATopicModel(n_topics=4)
        assert model.n_topics == 4
        assert model.alpha == pytest.approx(12.5)
        assert model.eta == 0.1
        assert model.iterations == 2000
        assert not model.is_fitted()

    def test_explicit_alpha(self):
        assert GibbsLDATopicModel(n_topics=4, alpha=0.3).alpha == 0.3

    @pytest.mark.parametrize("n_topics", [0, -2])
    def test_invalid_topic_count(self, n_topics):
        with pytest.raises(ValueError, match="n_topics"):
            GibbsLDATopicModel(n_topics=n_topics)

    def test_accessors_before_fit(self):
        model = GibbsLDATopicModel(n_topics=2)
        with pytest.raises(ValueError, match="Model not fitted"):
            model.get_topic_word_distributions()
        with pytest.raises(ValueError, match="Model not fitted"):
            model.get_document_topic_distributions()
        with pytest.raises(ValueError, match="Model not fitted"):
            model.get_log_likelihoods()

    def test_fit_distributions_are_simplices(self, two_theme_dtm):
        model = GibbsLDATopicModel(n_topics=2, iterations=30, random_state=7).fit(two_theme_dtm)
        phi = model.get_topic_word_distributions()
        theta = model.get_document_topic_distributions()

        assert phi.shape == (2, two_theme_dtm.n_terms)
        assert theta.shape == (two_theme_dtm.n_docs, 2)
        np.testing.assert_allclose(phi.sum(axis=1), 1.0, atol=1e-6)
        np.testing.assert_allclose(theta.sum(axis=1), 1.0, atol=1e-6)
        assert np.all(phi > 0)
        assert np.all(theta > 0)

    def test_fixed_seed_reproducible(self, two_theme_dtm):
        first = GibbsLDATopicModel(n_topics=3, iterations=20, random_state=1234).fit(two_theme_dtm)
        second = GibbsLDATopicModel(n_topics=3, iterations=20, random_state=1234).fit(two_theme_dtm)
        np.testing.assert_array_equal(first.get_topic_word_distributions(),
                                      second.get_topic_word_distributions())
        np.testing.assert_array_equal(first.get_document_topic_distributions(),
                                      second.get_document_topic_distributions())
        np.testing.assert_array_equal(first.get_log_likelihoods(), second.get_log_likelihoods())

    def test_empty_document_rejected_before_sampling(self):
        dtm = DocumentTermMatrix(np.array([[2, 1], [0, 0], [1, 1]]), ['d1', 'd2', 'd3'], ['a', 'b'])
        model = GibbsLDATopicModel(n_topics=2, iterations=5)
        with patch('topictrends.topic_models.run_gibbs_sampler') as mock_run:
            with pytest.raises(EmptyDocumentError):
                model.fit(dtm)
        mock_run.assert_not_called()
        assert not model.is_fitted()

    def test_log_likelihood_trace(self, two_theme_dtm):
        model = GibbsLDATopicModel(n_topics=2, iterations=30, burn_in=10, keep=10, random_state=1)
        lls = model.fit(two_theme_dtm).get_log_likelihoods()
        assert len(lls) == 3
        assert np.all(np.isfinite(lls))
        assert np.all(lls < 0)

    def test_log_likelihood_without_keep(self, two_theme_dtm):
        model = GibbsLDATopicModel(n_topics=2, iterations=5, keep=0, random_state=1)
        assert len(model.fit(two_theme_dtm).get_log_likelihoods()) == 1

    def test_labels_recorded(self, two_theme_dtm):
        model = GibbsLDATopicModel(n_topics=2, iterations=5).fit(two_theme_dtm)
        assert model.doc_ids == two_theme_dtm.doc_ids
        assert model.vocabulary == two_theme_dtm.vocabulary

    def test_get_topic_terms(self, two_theme_dtm):
        model = GibbsLDATopicModel(n_topics=2, iterations=20, random_state=3).fit(two_theme_dtm)
        terms = model.get_topic_terms(0, topn=4)
        assert len(terms) == 4
        probs = [p for _, p in terms]
        assert probs == sorted(probs, reverse=True)
        assert all(term in two_theme_dtm.vocabulary for term, _ in terms)

    def test_get_model_params(self):
        params = GibbsLDATopicModel(n_topics=5, iterations=100, random_state=9).get_model_params()
        assert params['model_type'] == 'LDA_Gibbs'
        assert params['n_topics'] == 5
        assert params['alpha'] == pytest.approx(10.0)
        assert params['random_state'] == 9
        assert GibbsLDATopicModel(n_topics=5).get_num_topics() == 5


class TestLDATopicModel:
    """Test cases for the gensim LdaModel wrapper"""

    def test_initialization(self):
        model = LDATopicModel(n_topics=3, alpha='auto', random_state=1)
        assert model.n_topics == 3
        assert model.alpha == 'auto'
        assert model.model is None

    def test_accessors_before_fit(self):
        with pytest.raises(ValueError, match="Model not fitted"):
            LDATopicModel(n_topics=2).get_topic_word_distributions()

    def test_fit(self, two_theme_dtm):
        model = LDATopicModel(n_topics=2, npasses=2, ngibbs=20, random_state=42).fit(two_theme_dtm)
        phi = model.get_topic_word_distributions()
        theta = model.get_document_topic_distributions()
        assert phi.shape == (2, two_theme_dtm.n_terms)
        assert theta.shape == (two_theme_dtm.n_docs, 2)
        np.testing.assert_allclose(phi.sum(axis=1), 1.0, atol=1e-6)
        np.testing.assert_allclose(theta.sum(axis=1), 1.0, atol=1e-6)

    def test_fit_rejects_empty_documents(self):
        dtm = DocumentTermMatrix(np.array([[1, 1], [0, 0]]), ['d1', 'd2'], ['a', 'b'])
        with pytest.raises(EmptyDocumentError):
            LDATopicModel(n_topics=2).fit(dtm)

    def test_coherence_score(self, two_theme_dtm):
        model = LDATopicModel(n_topics=2, npasses=2, random_state=42).fit(two_theme_dtm)
        score = model.get_coherence_score('u_mass')
        assert np.isfinite(score)


class TestCreateTopicModel:

    def test_default_is_gibbs(self):
        assert isinstance(create_topic_model(n_topics=3), GibbsLDATopicModel)

    def test_lda(self):
        model = create_topic_model('LDA', n_topics=3)
        assert isinstance(model, LDATopicModel)

    def test_unknown_type(self):
        with pytest.raises(ValueError, match="Unknown topic model type"):
            create_topic_model('bertopic', n_topics=3)
