"""
Text preprocessing utilities for topictrends.

This module normalizes raw document text, builds the document-term matrix
and reduces its sparsity before topic modeling. Normalization applies, in
this order: lowercasing, stopword removal, digit removal, punctuation
removal and whitespace collapsing. There is no stemming or lemmatization,
so "cat" and "cats" stay distinct terms.
"""

import re
import nltk
import numpy as np
import pandas as pd
from gensim import corpora, matutils
from gensim.parsing.preprocessing import STOPWORDS as GENSIM_STOPWORDS
from nltk.corpus import stopwords
from scipy import sparse
from typing import Iterable, List, Optional, Sequence, Set, Tuple

from .dataframe_schema import DocumentSchema
from ._file_driver import log_print


_DIGITS = re.compile(r"\d+")
# Anything that is neither a word character nor whitespace, plus underscore
_PUNCTUATION = re.compile(r"[^\w\s]|_")
_WHITESPACE = re.compile(r"\s+")


def load_stopwords(lang: str = 'english', source: str = 'nltk') -> Set[str]:
    """
    Language stoplist from nltk (default) or gensim.

    The nltk corpus is downloaded on first use if it is missing.
    """
    if source == 'gensim':
        if lang != 'english':
            raise ValueError(f"gensim only ships an English stoplist, got lang='{lang}'")
        return set(GENSIM_STOPWORDS)
    if source != 'nltk':
        raise ValueError(f"Unknown stopword source '{source}'. Use 'nltk' or 'gensim'.")

    try:
        return set(stopwords.words(lang))
    except LookupError:
        log_print("nltk stopwords corpus not found - downloading it", level="warning")
        nltk.download('stopwords', quiet=True)
        return set(stopwords.words(lang))


def compile_stopword_pattern(words: Iterable[str]) -> Optional[re.Pattern]:
    """Whole-word alternation over the stoplist, longest words first"""
    words = sorted({w.lower() for w in words if w}, key=len, reverse=True)
    if not words:
        return None
    return re.compile(r"\b(?:" + "|".join(re.escape(w) for w in words) + r")\b")


def apply_normalization(text: str, stopword_pattern: Optional[re.Pattern],
                        stopword_set: Set[str]) -> str:
    text = str(text).lower()
    if stopword_pattern is not None:
        text = stopword_pattern.sub("", text)
    text = _DIGITS.sub("", text)
    text = _PUNCTUATION.sub("", text)
    text = _WHITESPACE.sub(" ", text).strip()
    # Digit/punctuation removal can expose new stopwords ("the1" -> "the")
    return " ".join(tok for tok in text.split(" ") if tok and tok not in stopword_set)


def normalize_text(text: str, stopwords: Iterable[str] = ()) -> str:
    """Normalize a single text against an explicit stoplist"""
    stopword_set = {w.lower() for w in stopwords}
    return apply_normalization(text, compile_stopword_pattern(stopword_set), stopword_set)


class DocumentTermMatrix:
    """
    Sparse document-term count matrix.

    Rows follow doc_ids, columns follow vocabulary. Counts are non-negative
    integers. Reduction methods return new matrices and never modify self.
    """

    def __init__(self, matrix, doc_ids: Sequence[str], vocabulary: Sequence[str]):
        matrix = sparse.csr_matrix(matrix, dtype=np.int64)
        matrix.eliminate_zeros()
        if matrix.shape != (len(doc_ids), len(vocabulary)):
            raise ValueError(
                f"Matrix shape {matrix.shape} does not match "
                f"{len(doc_ids)} documents x {len(vocabulary)} terms"
            )
        if matrix.nnz and matrix.data.min() < 0:
            raise ValueError("Document-term counts must be non-negative")
        self.matrix = matrix
        self.doc_ids = list(doc_ids)
        self.vocabulary = list(vocabulary)

    @classmethod
    def from_texts(cls, doc_ids: Sequence[str], texts: Sequence[str]) -> 'DocumentTermMatrix':
        """
        Build counts from whitespace-tokenized normalized texts. Columns are
        ordered by gensim dictionary id.
        """
        if len(doc_ids) != len(texts):
            raise ValueError(f"Got {len(doc_ids)} document ids for {len(texts)} texts")
        tokenized = [str(text).split() for text in texts]
        dictionary = corpora.Dictionary(tokenized)
        corpus = [dictionary.doc2bow(doc) for doc in tokenized]
        matrix = matutils.corpus2csc(
            corpus, num_terms=len(dictionary), num_docs=len(corpus), dtype=np.int64
        ).T
        vocabulary = [dictionary[i] for i in range(len(dictionary))]
        return cls(matrix, doc_ids, vocabulary)

    @property
    def n_docs(self) -> int:
        return self.matrix.shape[0]

    @property
    def n_terms(self) -> int:
        return self.matrix.shape[1]

    def doc_lengths(self) -> np.ndarray:
        """Row totals (tokens per document)"""
        return np.asarray(self.matrix.sum(axis=1)).ravel()

    def term_frequencies(self) -> np.ndarray:
        """Column totals (corpus-wide count of each term)"""
        return np.asarray(self.matrix.sum(axis=0)).ravel()

    def document_frequencies(self) -> np.ndarray:
        """Number of documents each term occurs in"""
        return np.diff(self.matrix.tocsc().indptr)

    def remove_sparse_terms(self, sparsity: float) -> 'DocumentTermMatrix':
        """
        Drop terms absent from more than `sparsity` of the documents.

        A term is kept when its document frequency is strictly greater than
        n_docs * (1 - sparsity); with sparsity=0.95 a term must appear in
        more than 5% of the documents.
        """
        if not 0 < sparsity < 1:
            raise ValueError(f"sparsity must be in the open interval (0, 1), got {sparsity}")
        keep = np.flatnonzero(self.document_frequencies() > self.n_docs * (1 - sparsity))
        return DocumentTermMatrix(
            self.matrix[:, keep],
            self.doc_ids,
            [self.vocabulary[i] for i in keep]
        )

    def drop_empty_documents(self) -> Tuple['DocumentTermMatrix', List[str]]:
        """Remove all-zero rows; returns the new matrix and the dropped ids"""
        lengths = self.doc_lengths()
        keep = np.flatnonzero(lengths > 0)
        dropped = [self.doc_ids[i] for i in np.flatnonzero(lengths == 0)]
        reduced = DocumentTermMatrix(
            self.matrix[keep, :],
            [self.doc_ids[i] for i in keep],
            self.vocabulary
        )
        return reduced, dropped

    def has_empty_documents(self) -> bool:
        return bool(np.any(self.doc_lengths() == 0))

    def to_bow_corpus(self) -> List[List[Tuple[int, int]]]:
        """gensim bag-of-words corpus, one list of (term_id, count) per row"""
        return [
            [(int(i), int(c)) for i, c in doc]
            for doc in matutils.Sparse2Corpus(self.matrix, documents_columns=False)
        ]

    def to_dictionary(self) -> corpora.Dictionary:
        dictionary = corpora.Dictionary()
        dictionary.token2id = {term: i for i, term in enumerate(self.vocabulary)}
        dictionary.id2token = dict(enumerate(self.vocabulary))
        return dictionary

    def to_dataframe(self) -> pd.DataFrame:
        return pd.DataFrame(self.matrix.toarray(), index=self.doc_ids, columns=self.vocabulary)

    def __repr__(self):
        return (f"DocumentTermMatrix(documents={self.n_docs}, terms={self.n_terms}, "
                f"non-zero entries={self.matrix.nnz})")


class TextPreprocessor:
    def __init__(self, stopword_lang='english', custom_stopwords=None, stopword_source='nltk'):
        self.stopwords = load_stopwords(stopword_lang, stopword_source)
        if custom_stopwords:
            self.stopwords.update(w.lower() for w in custom_stopwords)
        self._stopword_pattern = compile_stopword_pattern(self.stopwords)
        self.dtm = None
        self.dropped_documents = []
        self.stats_log = {}

    ### === STEP 1: Normalization === ###
    def normalize(self, text: str) -> str:
        return apply_normalization(text, self._stopword_pattern, self.stopwords)

    def normalize_documents(self, df, text_column=DocumentSchema.RAW_TEXT.colname):
        """Returns a copy of df with the normalized text column added"""
        if text_column not in df.columns:
            raise ValueError(f"Column '{text_column}' not found in dataframe")
        df = df.copy()
        df[DocumentSchema.NORMALIZED_TEXT.colname] = df[text_column].map(self.normalize)
        return df

    ### === STEP 2: Vectorization === ###
    def vectorize(self, df, text_column=DocumentSchema.NORMALIZED_TEXT.colname,
                  doc_column=DocumentSchema.DOCUMENT.colname) -> DocumentTermMatrix:
        dtm = DocumentTermMatrix.from_texts(df[doc_column].tolist(), df[text_column].tolist())
        self.stats_log['docs_initial'] = dtm.n_docs
        self.stats_log['vocab_initial'] = dtm.n_terms
        return dtm

    ### === STEP 3: Sparsity Reduction === ###
    def reduce_sparsity(self, dtm: DocumentTermMatrix, sparsity_threshold: float) -> DocumentTermMatrix:
        reduced = dtm.remove_sparse_terms(sparsity_threshold)
        self.stats_log['vocab_reduced'] = reduced.n_terms
        log_print(
            f"Sparsity reduction at {sparsity_threshold}: {dtm.n_terms} -> {reduced.n_terms} terms",
            level="info"
        )
        return reduced

    def drop_empty_documents(self, dtm: DocumentTermMatrix) -> DocumentTermMatrix:
        reduced, dropped = dtm.drop_empty_documents()
        self.dropped_documents = dropped
        self.stats_log['docs_final'] = reduced.n_docs
        self.stats_log['docs_dropped'] = len(dropped)
        if dropped:
            log_print(f"Dropped {len(dropped)} documents left empty after reduction: {dropped}",
                      level="warning")
        return reduced

    ### === PIPELINE WRAPPER METHODS === ###
    def build_document_term_matrix(self, df, sparsity_threshold=0.95,
                                   text_column=DocumentSchema.NORMALIZED_TEXT.colname) -> DocumentTermMatrix:
        """Vectorize, reduce sparsity and drop empty rows, in that order"""
        dtm = self.vectorize(df, text_column=text_column)
        dtm = self.reduce_sparsity(dtm, sparsity_threshold)
        self.dtm = self.drop_empty_documents(dtm)
        return self.dtm

    def update_dataframe(self, df, text_column=DocumentSchema.RAW_TEXT.colname, sparsity_threshold=0.95):
        """
        Complete preprocessing pipeline used by the orchestrator.

        Args:
            df: DataFrame with one row per document
            text_column: Name of column containing raw text
            sparsity_threshold: Maximum fraction of documents a kept term may be absent from

        Returns:
            (dataframe with normalized text column, reduced DocumentTermMatrix)
        """
        log_print("Starting text preprocessing pipeline", level="info")
        df = self.normalize_documents(df, text_column=text_column)
        dtm = self.build_document_term_matrix(df, sparsity_threshold=sparsity_threshold)
        log_print(
            f"Text preprocessing completed: {dtm.n_docs} documents, {dtm.n_terms} terms",
            level="info"
        )
        return df, dtm

    ### === Accessors === ###
    def get_document_term_matrix(self):
        return self.dtm

    def get_stats_log(self):
        return self.stats_log
