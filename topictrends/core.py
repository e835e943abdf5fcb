"""
Core topictrends functionality.

This module provides the configuration loaders and TopicTrendsOrchestrator,
which chains the pipeline stages (loading, preprocessing, topic-count
selection, topic model fitting, metadata join, temporal aggregation and
plotting) and keeps every artifact in one experiment directory.
"""

import copy
import json
import logging
import os
import yaml
import matplotlib.pyplot as plt
import pandas as pd

from pathlib import Path
from typing import Optional, Union, List

from .dataframe_schema import DocumentSchema, GammaSchema
from .data_loaders import DataLoader, create_data_loader
from .text_preprocessing import TextPreprocessor
from .topic_models import (
    UnitTopicModel,
    create_topic_model,
)
from .model_evaluation import find_topics_number
from .metadata import load_document_years, attach_years
from .temporal import (
    aggregate_by_year as aggregate_gamma_by_year,
    to_time_series,
    topic_trend_slopes,
    write_gamma_csv,
    read_gamma_csv,
)
from ._topic_model_driver import tidy_beta, tidy_gamma, top_terms
from ._file_driver import (
    get_date_hour_minute,
    validate_corpus_name,
    write_pickle,
    read_pickle,
)
from . import visualization


DEFAULT_CONFIG_PATH = Path(__file__).parent / 'config.yaml'


"""============================================================================
Configuration
============================================================================"""
def merge_config(base: dict, override: Optional[dict]) -> dict:
    """Recursively overlay override onto a copy of base"""
    merged = copy.deepcopy(base)
    for key, value in (override or {}).items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = merge_config(merged[key], value)
        else:
            merged[key] = copy.deepcopy(value)
    return merged


def _read_yaml(path: Union[str, Path]) -> dict:
    logger = logging.getLogger('topictrends')
    try:
        with open(path, 'r', encoding='utf-8') as f:
            return yaml.safe_load(f) or {}
    except FileNotFoundError:
        logger.error(f"Config file not found at {path}")
        raise
    except yaml.YAMLError as e:
        logger.error(f"Error parsing config file: {e}")
        raise


def load_config(config_path: Optional[Union[str, Path]] = None) -> dict:
    """
    Load the default configuration, overlaid with a user YAML file if given.

    Raises:
        FileNotFoundError: config_path does not exist
        yaml.YAMLError: the file is not valid YAML
    """
    config = _read_yaml(DEFAULT_CONFIG_PATH)
    if config_path is None:
        return config
    return merge_config(config, _read_yaml(config_path))


"""============================================================================
class TopicTrendsOrchestrator

Primary user interface for topictrends
============================================================================"""
class TopicTrendsOrchestrator:
    """
    This class chains the topictrends stages and manages their artifacts.

    Each stage reads its defaults from the configuration, accepts explicit
    overrides, records its parameters in experiment_params.json and raises
    ValueError when the stage it depends on has not run.

    Example Usage:
        orchestrator = TopicTrendsOrchestrator("news_corpus")
        orchestrator.load_data("corpus/text", metadata_dir="corpus/meta")
        orchestrator.preprocess_text()
        orchestrator.select_topic_count(candidate_topics=[5, 10, 15, 20])
        # inspect orchestrator.topic_count_results, then choose K
        orchestrator.fit_topic_model(num_topics=10)
        orchestrator.extract_distributions()
        orchestrator.attach_metadata()
        orchestrator.aggregate_by_year()
        orchestrator.export_gamma()
        orchestrator.create_visualizations()
    """
    def __init__(self,
                 corpus_name: str,
                 experiment_name: str = "topictrends",
                 experiment_directory: Optional[str] = None,
                 data_loader: Optional[DataLoader] = None,
                 text_preprocessor: Optional[TextPreprocessor] = None,
                 config: Optional[dict] = None,
                 logger: Optional[logging.Logger] = None):
        """
        Initialize the orchestrator.

        Args:
            corpus_name: Name of the corpus, lowercase letters, digits and underscores
            experiment_name: Prefix of the auto-generated experiment directory
            experiment_directory: Path to experiment directory for results, auto-generated if None
            data_loader: Pre-configured DataLoader instance, created from the input directory if None
            text_preprocessor: Pre-configured TextPreprocessor instance, created from config if None
            config: Configuration overrides, merged over config.yaml
            logger: Custom logger, creates default if None
        """
        validate_corpus_name(corpus_name)
        self.corpus_name = corpus_name
        self.logger = logger or self._setup_logger()
        self.config = merge_config(self._get_default_config(), config)

        self.experiment_params = {
            'corpus_name': corpus_name,
            'experiment_name': experiment_name,
            'experiment_directory': None,
            'steps': {}
        }

        self.experiment_name = experiment_name
        if experiment_directory is None:
            timestamp = get_date_hour_minute()
            self.experiment_directory = str(Path.cwd() / "experiments" / f"{experiment_name}_{timestamp}")
        else:
            self.experiment_directory = str(experiment_directory)

        os.makedirs(self.experiment_directory, exist_ok=True)
        self.experiment_params['experiment_directory'] = self.experiment_directory
        self.logger.info(f"Experiment directory: {self.experiment_directory}")

        # Components
        self._data_loader = data_loader
        self._text_preprocessor = text_preprocessor
        self.topic_model_factory = create_topic_model

        # Stage results
        self.metadata_dir = None
        self.documents_df = None
        self.dtm = None
        self.topic_count_results = None
        self.topic_model: Optional[UnitTopicModel] = None
        self.beta_df = None
        self.top_terms_df = None
        self.gamma_df = None
        self.years_df = None
        self.aggregate_df = None
        self.trend_slopes_df = None
        self.figure_paths = []

        self.logger.info("TopicTrendsOrchestrator initialized")

    # ============================================================================
    # Getter/Setter Methods
    # ============================================================================
    def get_df(self) -> pd.DataFrame:
        """Get the documents dataframe managed by orchestrator"""
        return self.documents_df

    def get_data_loader(self) -> Optional[DataLoader]:
        return self._data_loader

    def set_data_loader(self, data_loader: DataLoader) -> 'TopicTrendsOrchestrator':
        self._data_loader = data_loader
        self.logger.info(f"DataLoader set: {type(data_loader).__name__}")
        return self

    def get_text_preprocessor(self) -> Optional[TextPreprocessor]:
        return self._text_preprocessor

    def set_text_preprocessor(self, text_preprocessor: TextPreprocessor) -> 'TopicTrendsOrchestrator':
        self._text_preprocessor = text_preprocessor
        self.logger.info("TextPreprocessor set")
        return self

    def _artifact_path(self, filename: str) -> str:
        return os.path.join(self.experiment_directory, filename)

    # ========================================================================================
    # 1. DATA LOADING
    # ========================================================================================

    def load_data(self,
                  text_dir: Optional[Union[str, Path]] = None,
                  metadata_dir: Optional[Union[str, Path]] = None,
                  encoding: Optional[str] = None) -> 'TopicTrendsOrchestrator':
        """
        Read the text documents.

        Args:
            text_dir: Directory (or file) of documents; not needed when a data loader was supplied
            metadata_dir: Directory of per-document XML metadata, used by attach_metadata()
            encoding: Text encoding (overrides config)

        Returns:
            Self for method chaining
        """
        data_config = self.config['data']
        encoding = encoding if encoding is not None else data_config['encoding']

        if self._data_loader is None:
            if text_dir is None:
                raise ValueError("No input given. Pass text_dir or supply a DataLoader.")
            self._data_loader = create_data_loader(text_dir, self.corpus_name, encoding=encoding)

        self._track_step_params('data_loading', {
            'text_dir': text_dir,
            'metadata_dir': metadata_dir,
            'encoding': encoding,
            'data_loader': type(self._data_loader).__name__,
        })

        self._data_loader.run()
        self.documents_df = self._data_loader.get_clean_df()
        self.metadata_dir = metadata_dir

        skipped = len(self._data_loader.get_na_df())
        self.logger.info(f"Loaded {len(self.documents_df)} documents ({skipped} skipped)")
        return self

    # ========================================================================================
    # 2. TEXT PREPROCESSING
    # ========================================================================================

    def preprocess_text(self,
                        sparsity_threshold: Optional[float] = None,
                        extra_stopwords: Optional[List[str]] = None,
                        stopword_lang: Optional[str] = None,
                        stopword_source: Optional[str] = None) -> 'TopicTrendsOrchestrator':
        """
        Normalize the documents and build the reduced document-term matrix.

        All parameters are optional and will use values from the configuration file if not provided.
        The stopword parameters only apply when no TextPreprocessor was supplied.

        Returns:
            Self for method chaining
        """
        if self.documents_df is None:
            raise ValueError("No documents loaded. Call load_data() first.")

        text_config = self.config['text_processing']
        sparsity_threshold = sparsity_threshold if sparsity_threshold is not None else text_config['sparsity_threshold']
        extra_stopwords = extra_stopwords if extra_stopwords is not None else text_config['extra_stopwords']
        stopword_lang = stopword_lang if stopword_lang is not None else text_config['stopword_lang']
        stopword_source = stopword_source if stopword_source is not None else text_config['stopword_source']

        self._track_step_params('text_preprocessing', {
            'sparsity_threshold': sparsity_threshold,
            'extra_stopwords': extra_stopwords,
            'stopword_lang': stopword_lang,
            'stopword_source': stopword_source,
        })

        if self._text_preprocessor is None:
            self._text_preprocessor = TextPreprocessor(
                stopword_lang=stopword_lang,
                custom_stopwords=extra_stopwords,
                stopword_source=stopword_source,
            )

        self.documents_df, self.dtm = self._text_preprocessor.update_dataframe(
            self.documents_df,
            text_column=DocumentSchema.RAW_TEXT.colname,
            sparsity_threshold=sparsity_threshold,
        )

        stats = self._text_preprocessor.get_stats_log()
        self.logger.info(
            f"Text preprocessing complete. "
            f"Initial vocab: {stats.get('vocab_initial', 'N/A')}, "
            f"After sparsity reduction: {stats.get('vocab_reduced', 'N/A')}, "
            f"Documents kept: {stats.get('docs_final', 'N/A')}/{stats.get('docs_initial', 'N/A')}"
        )
        self.experiment_params['steps']['text_preprocessing']['stats'] = dict(stats)

        write_pickle(self._artifact_path('vocabulary.pkl'), self.dtm.vocabulary)
        return self

    # ========================================================================================
    # 3. TOPIC-COUNT SELECTION
    # ========================================================================================

    def select_topic_count(self,
                           candidate_topics: Optional[List[int]] = None,
                           metrics: Optional[List[str]] = None,
                           num_workers: Optional[int] = None,
                           iterations: Optional[int] = None) -> 'TopicTrendsOrchestrator':
        """
        Score candidate numbers of topics. The choice itself is left to the
        caller, who passes it to fit_topic_model().

        Returns:
            Self for method chaining
        """
        if self.dtm is None:
            raise ValueError("No document-term matrix. Call preprocess_text() first.")

        selection_config = self.config['topic_count_selection']
        candidate_topics = candidate_topics if candidate_topics is not None else selection_config['candidate_topics']
        metrics = metrics if metrics is not None else selection_config['metrics']
        num_workers = num_workers if num_workers is not None else selection_config['num_workers']
        iterations = iterations if iterations is not None else selection_config['iterations']

        model_params = dict(self.config['topic_model']['params']['gibbs_lda'])
        model_params['iterations'] = iterations
        # alpha depends on K, so the per-candidate default applies
        model_params.pop('alpha', None)
        random_state = self.config['topic_model']['random_state']

        self._track_step_params('topic_count_selection', {
            'candidate_topics': list(candidate_topics),
            'metrics': list(metrics),
            'num_workers': num_workers,
            'model_params': model_params,
            'random_state': random_state,
        })

        self.topic_count_results = find_topics_number(
            self.dtm,
            candidate_topics,
            metrics=metrics,
            num_workers=num_workers,
            model_params=model_params,
            random_state=random_state,
        )
        csv_path = self._artifact_path(self.config['export']['topic_count_csv'])
        self.topic_count_results.to_csv(csv_path, index=False)
        self.logger.info(f"Topic-count metrics saved to {csv_path}")
        return self

    # ========================================================================================
    # 4. TOPIC MODEL FITTING
    # ========================================================================================

    def fit_topic_model(self,
                        num_topics: Optional[int] = None,
                        model_type: Optional[str] = None,
                        random_state: Optional[int] = None,
                        **model_params) -> 'TopicTrendsOrchestrator':
        """
        Fit the final topic model on the reduced document-term matrix.

        Args:
            num_topics: Number of topics K (overrides config topic_model.num_topics)
            model_type: 'gibbs_lda' or 'lda' (overrides config)
            random_state: Seed (overrides config)
            **model_params: Model-specific parameters overriding config topic_model.params

        Returns:
            Self for method chaining
        """
        if self.dtm is None:
            raise ValueError("No document-term matrix. Call preprocess_text() first.")

        topic_config = self.config['topic_model']
        num_topics = num_topics if num_topics is not None else topic_config['num_topics']
        model_type = model_type if model_type is not None else topic_config['type']
        random_state = random_state if random_state is not None else topic_config['random_state']
        if num_topics is None:
            raise ValueError(
                "Number of topics not chosen. Pass num_topics or set topic_model.num_topics; "
                "select_topic_count() scores candidates."
            )

        params = dict(topic_config['params'].get(model_type, {}))
        params.update(model_params)

        self._track_step_params('topic_model', {
            'model_type': model_type,
            'num_topics': num_topics,
            'random_state': random_state,
            **params,
        })

        self.logger.info(f"Fitting {model_type} with {num_topics} topics")
        self.topic_model = self.topic_model_factory(
            model_type, n_topics=num_topics, random_state=random_state, **params
        )
        self.topic_model.fit(self.dtm)

        write_pickle(self._artifact_path('topic_model.pkl'), self.topic_model)
        self.logger.info(f"Topic model fitted: {self.topic_model.get_model_params()}")
        return self

    # ========================================================================================
    # 5. DISTRIBUTIONS, METADATA AND TEMPORAL AGGREGATION
    # ========================================================================================

    def extract_distributions(self, top_n: Optional[int] = None) -> 'TopicTrendsOrchestrator':
        """Build the tidy beta and gamma tables from the fitted model"""
        if self.topic_model is None:
            raise ValueError("No topic model. Call fit_topic_model() first.")
        top_n = top_n if top_n is not None else self.config['visualization']['top_n_terms']

        self.beta_df = tidy_beta(self.topic_model, self.dtm.vocabulary)
        self.gamma_df = tidy_gamma(self.topic_model, self.dtm.doc_ids)
        self.top_terms_df = top_terms(self.beta_df, top_n)

        beta_path = self._artifact_path(self.config['export']['beta_csv'])
        self.beta_df.to_csv(beta_path, index=False)
        self.logger.info(
            f"Extracted beta ({len(self.beta_df)} rows) and gamma ({len(self.gamma_df)} rows); "
            f"beta saved to {beta_path}"
        )
        return self

    def attach_metadata(self,
                        metadata_dir: Optional[Union[str, Path]] = None,
                        extension: Optional[str] = None) -> 'TopicTrendsOrchestrator':
        """
        Add the publication year of each document to the gamma table.

        Raises:
            MetadataNotFoundError: a document has no metadata file or no year
        """
        if self.gamma_df is None:
            raise ValueError("No gamma table. Call extract_distributions() first.")
        metadata_dir = metadata_dir if metadata_dir is not None else self.metadata_dir
        extension = extension if extension is not None else self.config['data']['metadata_extension']
        if metadata_dir is None:
            raise ValueError("No metadata directory. Pass metadata_dir here or to load_data().")

        self._track_step_params('metadata_join', {'metadata_dir': metadata_dir, 'extension': extension})

        doc_ids = self.gamma_df[GammaSchema.DOCUMENT.colname].unique().tolist()
        self.years_df = load_document_years(doc_ids, metadata_dir, extension=extension)
        self.gamma_df = attach_years(self.gamma_df, self.years_df)

        years = self.years_df[GammaSchema.YEAR.colname]
        self.logger.info(f"Attached years {years.min()}-{years.max()} to {len(doc_ids)} documents")
        return self

    def aggregate_by_year(self) -> 'TopicTrendsOrchestrator':
        """Mean gamma per (year, topic), plus per-topic linear trends"""
        if self.gamma_df is None or GammaSchema.YEAR.colname not in self.gamma_df.columns:
            raise ValueError("Gamma table has no years. Call attach_metadata() or load_gamma() first.")

        self.aggregate_df = aggregate_gamma_by_year(self.gamma_df)
        self.trend_slopes_df = topic_trend_slopes(self.aggregate_df)

        aggregate_path = self._artifact_path(self.config['export']['aggregate_csv'])
        self.aggregate_df.to_csv(aggregate_path, index=False)
        self._track_step_params('temporal_aggregation', {'aggregate_csv': aggregate_path})
        self.logger.info(
            f"Aggregated {len(self.gamma_df)} gamma rows into {len(self.aggregate_df)} (year, topic) means"
        )
        return self

    def export_gamma(self, path: Optional[Union[str, Path]] = None) -> str:
        """Write the year-annotated gamma table; returns the file path"""
        if self.gamma_df is None or GammaSchema.YEAR.colname not in self.gamma_df.columns:
            raise ValueError("Gamma table has no years. Call attach_metadata() first.")
        path = path if path is not None else self._artifact_path(self.config['export']['gamma_csv'])
        write_gamma_csv(self.gamma_df, path)
        self._track_step_params('gamma_export', {'path': path})
        return str(path)

    def load_gamma(self, path: Optional[Union[str, Path]] = None) -> 'TopicTrendsOrchestrator':
        """Restore a gamma table written by export_gamma(), e.g. to re-plot without refitting"""
        path = path if path is not None else self._artifact_path(self.config['export']['gamma_csv'])
        self.gamma_df = read_gamma_csv(path)
        self._track_step_params('gamma_import', {'path': path})
        self.logger.info(f"Loaded {len(self.gamma_df)} gamma rows from {path}")
        return self

    # ========================================================================================
    # 6. VISUALIZATION
    # ========================================================================================

    def create_visualizations(self,
                              topics: Optional[List[int]] = None,
                              save_format: Optional[str] = None,
                              start_year: Optional[int] = None,
                              end_year: Optional[int] = None,
                              include_ldavis: bool = True,
                              show: bool = False) -> 'TopicTrendsOrchestrator':
        """
        Create every plot the available stage results allow and save them to
        the experiment directory.

        Args:
            topics: Topics (1-based) to plot time-series diagnostics for, all if None
            save_format: File format of the saved figures (overrides config)
            start_year, end_year: Time-series range (overrides config, else the data range)
            include_ldavis: Also write the pyLDAvis HTML page when a fitted model is available
            show: Display figures as well as saving them
        """
        vis_config = self.config['visualization']
        temporal_config = self.config['temporal']
        save_format = save_format if save_format is not None else vis_config['save_format']
        start_year = start_year if start_year is not None else temporal_config['start_year']
        end_year = end_year if end_year is not None else temporal_config['end_year']

        if self.beta_df is None and self.aggregate_df is None and self.topic_count_results is None:
            raise ValueError("Nothing to plot. Run select_topic_count(), extract_distributions() "
                             "or aggregate_by_year() first.")

        self._track_step_params('visualization', {
            'topics': topics,
            'save_format': save_format,
            'start_year': start_year,
            'end_year': end_year,
            'include_ldavis': include_ldavis,
            **vis_config,
        })

        def save(fig, name):
            path = self._artifact_path(f"{name}.{save_format}")
            fig.savefig(path, dpi=300, bbox_inches='tight')
            if show:
                plt.show()
            plt.close(fig)
            self.figure_paths.append(path)

        if self.topic_count_results is not None:
            save(visualization.plot_topic_count_metrics(self.topic_count_results), 'topic_count_metrics')

        if self.beta_df is not None:
            save(visualization.plot_top_terms(self.beta_df, n=vis_config['top_n_terms']), 'top_terms')

        if self.aggregate_df is not None:
            save(visualization.plot_topic_stream(self.aggregate_df, baseline=vis_config['stream_baseline']),
                 'topic_stream')
            self._plot_topic_series(topics, start_year, end_year, save)

        if include_ldavis and self.topic_model is not None:
            html_path = self._artifact_path(self.config['export']['ldavis_html'])
            visualization.export_ldavis(self.topic_model, self.dtm, html_path)
            self.figure_paths.append(html_path)

        self.logger.info(f"Saved {len(self.figure_paths)} visualizations to {self.experiment_directory}")
        return self

    def _plot_topic_series(self, topics, start_year, end_year, save):
        vis_config = self.config['visualization']
        temporal_config = self.config['temporal']
        period = temporal_config['decomposition_period']
        available = sorted(self.aggregate_df[GammaSchema.TOPIC.colname].unique())
        topics = topics if topics is not None else available

        for topic in topics:
            series = to_time_series(self.aggregate_df, topic, start_year=start_year, end_year=end_year,
                                    frequency=temporal_config['frequency'])
            # edge periods outside the observed years stay NaN
            series = series.dropna()
            if len(series) < 3:
                self.logger.warning(f"Topic {topic}: {len(series)} years is too short for time-series plots")
                continue
            save(visualization.plot_autocorrelation(series, lags=vis_config['acf_lags']),
                 f"topic_{topic}_autocorrelation")
            lag = min(vis_config['lag'], len(series) - 1)
            save(visualization.plot_lag(series, lag=lag), f"topic_{topic}_lag")
            if len(series) >= 2 * period:
                save(visualization.plot_trend_decomposition(series, period=period),
                     f"topic_{topic}_decomposition")
            else:
                self.logger.warning(
                    f"Topic {topic}: {len(series)} years is fewer than two {period}-year periods; "
                    f"skipping trend decomposition"
                )

    # ============================================================================
    # Experiment Tracking and State
    # ============================================================================

    def _track_step_params(self, step_name: str, params: dict):
        """Track hyperparameters for a processing step."""
        self.experiment_params['steps'][step_name] = {
            'timestamp': get_date_hour_minute(),
            'parameters': params.copy()
        }

        params_path = os.path.join(self.experiment_directory, 'experiment_params.json')
        with open(params_path, 'w') as f:
            json.dump(self.experiment_params, f, indent=2, default=str)

    def save_orchestrator_state(self, filename: Optional[str] = None) -> str:
        """Pickle the orchestrator into the experiment directory"""
        if filename is None:
            filename = f"topictrends_orchestrator_state_{get_date_hour_minute()}.pkl"
        state_path = self._artifact_path(filename)
        write_pickle(state_path, self)
        self.logger.info(f"Orchestrator state saved to {state_path}")
        return state_path

    @staticmethod
    def load_orchestrator_state(state_path: str) -> 'TopicTrendsOrchestrator':
        orchestrator = read_pickle(state_path)
        orchestrator.logger.info(f"Orchestrator state loaded from {state_path}")
        return orchestrator

    def _get_default_config(self) -> dict:
        """Load default configuration from YAML file."""
        return load_config()

    def _setup_logger(self) -> logging.Logger:
        """Setup default logger for topictrends operations."""
        logger = logging.getLogger('topictrends')
        if not logger.handlers:
            handler = logging.StreamHandler()
            formatter = logging.Formatter(
                '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
            )
            handler.setFormatter(formatter)
            logger.addHandler(handler)
            logger.setLevel(logging.INFO)
        return logger

    def get_status(self) -> dict:
        """Get current status of orchestrator stages."""
        return {
            'data_loaded': self.documents_df is not None,
            'text_preprocessed': self.dtm is not None,
            'topic_count_scored': self.topic_count_results is not None,
            'model_fitted': self.topic_model is not None,
            'distributions_extracted': self.beta_df is not None,
            'metadata_attached': (self.gamma_df is not None and
                                  GammaSchema.YEAR.colname in self.gamma_df.columns),
            'aggregated': self.aggregate_df is not None,
            'num_documents': self.dtm.n_docs if self.dtm is not None else
                             (len(self.documents_df) if self.documents_df is not None else 0),
            'num_terms': self.dtm.n_terms if self.dtm is not None else 0,
            'num_topics': self.topic_model.get_num_topics() if self.topic_model is not None else 0,
        }
