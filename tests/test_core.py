"""
Test cases for core.py module
"""

import matplotlib
matplotlib.use("Agg")

import pytest
import json
import tempfile
import shutil
import yaml
import numpy as np
import pandas as pd

import sys
from pathlib import Path
sys.path.insert(0, str(Path(__file__).parent.parent))

from topictrends.core import TopicTrendsOrchestrator, merge_config, load_config
from topictrends.metadata import MetadataNotFoundError
from topictrends.topic_models import GibbsLDATopicModel


THEMES = {
    'water': "river flood water bank levee rain",
    'law': "court judge law trial verdict jury",
    'market': "market stock price trade profit shares",
}

FAST_CONFIG = {
    'text_processing': {'stopword_source': 'gensim'},
    'topic_count_selection': {'num_workers': 1, 'iterations': 15},
    'topic_model': {'params': {'gibbs_lda': {'iterations': 30, 'keep': 10}}},
    'visualization': {'save_format': 'png', 'top_n_terms': 4},
}


@pytest.fixture
def temp_dir():
    temp_dir = tempfile.mkdtemp()
    yield Path(temp_dir)
    shutil.rmtree(temp_dir)


@pytest.fixture
def corpus(temp_dir):
    """Twelve documents, one per year from 1990 to 2001, with XML metadata"""
    text_dir = temp_dir / "text"
    meta_dir = temp_dir / "meta"
    text_dir.mkdir()
    meta_dir.mkdir()

    names = list(THEMES)
    for i, year in enumerate(range(1990, 2002)):
        doc_id = f"doc_{i:02d}"
        first, second = THEMES[names[i % 3]], THEMES[names[(i + 1) % 3]]
        text = f"The {first} and {first}. Also {second} in {year}!"
        (text_dir / f"{doc_id}.txt").write_text(text, encoding="utf-8")
        (meta_dir / f"{doc_id}.xml").write_text(
            f"<article><front><pub-date><year>{year}</year></pub-date></front></article>",
            encoding="utf-8"
        )
    return text_dir, meta_dir


@pytest.fixture
def orchestrator(temp_dir):
    return TopicTrendsOrchestrator("test_corpus", experiment_directory=temp_dir / "exp", config=FAST_CONFIG)


class TestConfiguration:
    """Test configuration loading and merging"""

    def test_merge_config_nested(self):
        base = {'a': {'b': 1, 'c': 2}, 'd': [1, 2]}
        merged = merge_config(base, {'a': {'c': 5}, 'd': [3]})
        assert merged == {'a': {'b': 1, 'c': 5}, 'd': [3]}
        # base is not modified
        assert base['a']['c'] == 2

    def test_merge_config_none(self):
        assert merge_config({'a': 1}, None) == {'a': 1}

    def test_default_config(self):
        config = load_config()
        assert config['text_processing']['sparsity_threshold'] == 0.95
        assert config['topic_model']['type'] == 'gibbs_lda'
        assert config['topic_model']['num_topics'] is None

    def test_user_config_overlay(self, temp_dir):
        path = temp_dir / "user.yaml"
        path.write_text(yaml.safe_dump({'topic_model': {'num_topics': 8}}), encoding="utf-8")
        config = load_config(path)
        assert config['topic_model']['num_topics'] == 8
        assert config['topic_model']['random_state'] == 1234

    def test_missing_user_config(self, temp_dir):
        with pytest.raises(FileNotFoundError):
            load_config(temp_dir / "missing.yaml")

    def test_orchestrator_merges_overrides(self, orchestrator):
        assert orchestrator.config['text_processing']['stopword_source'] == 'gensim'
        assert orchestrator.config['text_processing']['sparsity_threshold'] == 0.95


class TestOrchestratorInitialization:

    def test_invalid_corpus_name(self, temp_dir):
        with pytest.raises(ValueError):
            TopicTrendsOrchestrator("Bad-Name", experiment_directory=temp_dir)

    def test_experiment_directory_created(self, temp_dir):
        exp_dir = temp_dir / "nested" / "exp"
        orchestrator = TopicTrendsOrchestrator("corpus", experiment_directory=exp_dir)
        assert exp_dir.is_dir()
        assert orchestrator.experiment_directory == str(exp_dir)

    def test_injected_components(self, orchestrator, corpus):
        from topictrends.data_loaders import TextDirectoryDataLoader
        from topictrends.text_preprocessing import TextPreprocessor

        text_dir, _ = corpus
        loader = TextDirectoryDataLoader(text_dir, "test_corpus")
        preprocessor = TextPreprocessor(custom_stopwords=['river'], stopword_source='gensim')
        orchestrator.set_data_loader(loader).set_text_preprocessor(preprocessor)
        assert orchestrator.get_data_loader() is loader
        assert orchestrator.get_text_preprocessor() is preprocessor

        orchestrator.load_data().preprocess_text()
        assert 'river' not in orchestrator.dtm.vocabulary

    def test_initial_status(self, orchestrator):
        status = orchestrator.get_status()
        assert not status['data_loaded']
        assert not status['model_fitted']
        assert status['num_documents'] == 0
        assert status['num_topics'] == 0


class TestStagePrerequisites:
    """Each stage refuses to run before the stage it depends on"""

    def test_load_data_needs_input(self, orchestrator):
        with pytest.raises(ValueError, match="No input"):
            orchestrator.load_data()

    def test_preprocess_needs_documents(self, orchestrator):
        with pytest.raises(ValueError, match="load_data"):
            orchestrator.preprocess_text()

    def test_selection_needs_dtm(self, orchestrator):
        with pytest.raises(ValueError, match="preprocess_text"):
            orchestrator.select_topic_count()

    def test_fit_needs_dtm(self, orchestrator):
        with pytest.raises(ValueError, match="preprocess_text"):
            orchestrator.fit_topic_model(num_topics=2)

    def test_extract_needs_model(self, orchestrator):
        with pytest.raises(ValueError, match="fit_topic_model"):
            orchestrator.extract_distributions()

    def test_attach_needs_gamma(self, orchestrator):
        with pytest.raises(ValueError, match="extract_distributions"):
            orchestrator.attach_metadata("somewhere")

    def test_aggregate_needs_years(self, orchestrator):
        with pytest.raises(ValueError, match="attach_metadata"):
            orchestrator.aggregate_by_year()

    def test_nothing_to_plot(self, orchestrator):
        with pytest.raises(ValueError, match="Nothing to plot"):
            orchestrator.create_visualizations()

    def test_fit_requires_topic_count(self, orchestrator, corpus):
        text_dir, _ = corpus
        orchestrator.load_data(text_dir).preprocess_text()
        with pytest.raises(ValueError, match="Number of topics not chosen"):
            orchestrator.fit_topic_model()

    def test_attach_requires_metadata_dir(self, orchestrator, corpus):
        text_dir, _ = corpus
        orchestrator.load_data(text_dir).preprocess_text()
        orchestrator.fit_topic_model(num_topics=2).extract_distributions()
        with pytest.raises(ValueError, match="No metadata directory"):
            orchestrator.attach_metadata()


class TestEndToEnd:
    """Run the whole pipeline over a small corpus"""

    def test_full_pipeline(self, orchestrator, corpus, temp_dir):
        text_dir, meta_dir = corpus

        orchestrator.load_data(text_dir, metadata_dir=meta_dir)
        assert len(orchestrator.get_df()) == 12

        orchestrator.preprocess_text()
        dtm = orchestrator.dtm
        assert dtm.n_docs == 12
        assert not dtm.has_empty_documents()
        # stopwords and digits are gone
        assert 'the' not in dtm.vocabulary
        assert not any(term.isdigit() for term in dtm.vocabulary)

        orchestrator.select_topic_count(candidate_topics=[2, 3])
        results = orchestrator.topic_count_results
        assert results['topics'].tolist() == [2, 3]
        assert not results.isna().any().any()

        orchestrator.fit_topic_model(num_topics=3)
        assert isinstance(orchestrator.topic_model, GibbsLDATopicModel)
        assert orchestrator.topic_model.get_num_topics() == 3

        orchestrator.extract_distributions()
        beta, gamma = orchestrator.beta_df, orchestrator.gamma_df
        assert len(beta) == 3 * dtm.n_terms
        assert len(gamma) == 3 * 12
        np.testing.assert_allclose(beta.groupby('topic')['beta'].sum(), 1.0, atol=1e-6)
        np.testing.assert_allclose(gamma.groupby('document')['gamma'].sum(), 1.0, atol=1e-6)
        assert orchestrator.top_terms_df.groupby('topic').size().tolist() == [4, 4, 4]

        orchestrator.attach_metadata()
        assert orchestrator.gamma_df.loc[orchestrator.gamma_df['document'] == 'doc_05', 'year'].unique().tolist() == [1995]

        orchestrator.aggregate_by_year()
        aggregate = orchestrator.aggregate_df
        assert sorted(aggregate['year'].unique()) == list(range(1990, 2002))
        assert len(aggregate) == 12 * 3
        assert set(orchestrator.trend_slopes_df['topic']) == {1, 2, 3}

        gamma_path = orchestrator.export_gamma()
        assert Path(gamma_path).exists()

        orchestrator.create_visualizations(topics=[1])
        names = {Path(p).name for p in orchestrator.figure_paths}
        assert {'topic_count_metrics.png', 'top_terms.png', 'topic_stream.png',
                'topic_1_autocorrelation.png', 'topic_1_lag.png',
                'topic_1_decomposition.png', 'ldavis.html'} <= names
        assert all(Path(p).exists() for p in orchestrator.figure_paths)

        status = orchestrator.get_status()
        assert status['metadata_attached']
        assert status['aggregated']
        assert status['num_topics'] == 3

        exp_dir = Path(orchestrator.experiment_directory)
        for artifact in ('vocabulary.pkl', 'topic_model.pkl', 'topic_count_metrics.csv',
                         'topic_term_beta.csv', 'topic_year_means.csv'):
            assert (exp_dir / artifact).exists()

        with open(exp_dir / 'experiment_params.json') as f:
            params = json.load(f)
        assert params['corpus_name'] == 'test_corpus'
        assert {'data_loading', 'text_preprocessing', 'topic_count_selection', 'topic_model',
                'metadata_join', 'temporal_aggregation', 'gamma_export', 'visualization'} <= set(params['steps'])
        assert params['steps']['topic_model']['parameters']['num_topics'] == 3
        assert 'stats' in params['steps']['text_preprocessing']

    def test_missing_metadata_fails_join(self, orchestrator, corpus):
        text_dir, meta_dir = corpus
        (meta_dir / "doc_03.xml").unlink()
        orchestrator.load_data(text_dir, metadata_dir=meta_dir).preprocess_text()
        orchestrator.fit_topic_model(num_topics=2).extract_distributions()
        with pytest.raises(MetadataNotFoundError):
            orchestrator.attach_metadata()

    def test_reload_gamma_without_refitting(self, orchestrator, corpus, temp_dir):
        text_dir, meta_dir = corpus
        orchestrator.load_data(text_dir, metadata_dir=meta_dir).preprocess_text()
        orchestrator.fit_topic_model(num_topics=2).extract_distributions().attach_metadata()
        path = orchestrator.export_gamma(temp_dir / "gamma.csv")
        exported = orchestrator.gamma_df.reset_index(drop=True)

        fresh = TopicTrendsOrchestrator("test_corpus", experiment_directory=temp_dir / "exp2",
                                        config=FAST_CONFIG)
        fresh.load_gamma(path).aggregate_by_year()
        pd.testing.assert_frame_equal(fresh.gamma_df, exported, check_exact=True, check_dtype=False)
        fresh.create_visualizations(topics=[1, 2], include_ldavis=False)
        assert any(p.endswith('topic_stream.png') for p in fresh.figure_paths)

    def test_plot_range_wider_than_data(self, orchestrator, corpus, temp_dir):
        text_dir, meta_dir = corpus
        orchestrator.load_data(text_dir, metadata_dir=meta_dir).preprocess_text()
        orchestrator.fit_topic_model(num_topics=2).extract_distributions().attach_metadata()
        orchestrator.aggregate_by_year()
        orchestrator.create_visualizations(topics=[1], start_year=1980, end_year=2010, include_ldavis=False)
        names = {Path(p).name for p in orchestrator.figure_paths}
        assert {'topic_1_autocorrelation.png', 'topic_1_lag.png'} <= names

    def test_lda_model_type(self, orchestrator, corpus):
        text_dir, _ = corpus
        orchestrator.load_data(text_dir).preprocess_text()
        orchestrator.fit_topic_model(num_topics=2, model_type='lda', npasses=1, ngibbs=10)
        orchestrator.extract_distributions()
        assert orchestrator.topic_model.get_model_params()['model_type'] == 'LDA_Gensim'

    def test_orchestrator_state_round_trip(self, orchestrator, corpus):
        text_dir, _ = corpus
        orchestrator.load_data(text_dir).preprocess_text()
        state_path = orchestrator.save_orchestrator_state("state.pkl")
        restored = TopicTrendsOrchestrator.load_orchestrator_state(state_path)
        assert restored.dtm.vocabulary == orchestrator.dtm.vocabulary
        assert restored.get_status()['text_preprocessed']
