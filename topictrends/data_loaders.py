"""
This module implements data loaders for reading a corpus of source documents
into a pandas dataframe with the schema in dataframe_schema.py
"""
import pandas as pd

from typing import Optional, Union, List
from pathlib import Path
from abc import ABC, abstractmethod

from .dataframe_schema import DocumentSchema
from ._file_driver import log_print, validate_corpus_name, get_file_stem_only
from .data_loader_registry import DataLoaderRegistry, register_data_loader


"""============================================================================
class DataLoader(ABC)

This class is the base class for data loaders. Data loaders parse source
documents into a pandas dataframe with one row per document, ordered by
document identifier, following DocumentSchema.

Basic Usage:
    1. Create a DataLoader instance, given an input_path and valid corpus_name
    2. Use .run() to read, convert and validate the documents
    3. Use .get_clean_df() for the rows that passed validation
============================================================================"""
class DataLoader(ABC):
    """
    Base class for data loaders. Subclasses register the file extensions
    they read with @register_data_loader and implement _load_raw_data and
    _convert_to_schema.

    input_path may be a directory (every supported file directly inside it
    is read), a single file, or a list of files and directories.
    """
    def __init__(self,
                 input_path: Union[str, Path, List[Union[str, Path]]],
                 corpus_name: str,
                 encoding: str = 'utf-8') -> None:
        # Ensure that corpus_name is coherent for a directory name
        validate_corpus_name(corpus_name)

        # Normalize input to list of paths
        if isinstance(input_path, (str, Path)):
            self._original_input_paths = [Path(input_path)]
        else:
            self._original_input_paths = [Path(p) for p in input_path]

        self._corpus_name = corpus_name
        self.encoding = encoding

        # To be resolved later
        self.raw_data = []
        self.input_paths = None  # Resolved list of files
        self.df = None
        self._valid_mask = None  # Boolean Series marking rows with usable text

    @property
    def corpus_name(self):
        return self._corpus_name

    def get_clean_df(self) -> pd.DataFrame:
        """Get dataframe with only valid rows, in load order"""
        if self._valid_mask is None:
            raise RuntimeError("Validation not run yet.")
        return self.df[self._valid_mask].reset_index(drop=True)

    def get_na_df(self) -> pd.DataFrame:
        """Get dataframe with only rows that failed validation"""
        if self._valid_mask is None:
            raise RuntimeError("Validation not run yet.")
        return self.df[~self._valid_mask].reset_index(drop=True)

    def run(self) -> 'DataLoader':
        """Main pipeline: resolve input, load, convert to schema, validate"""
        self._prepare_input()
        self._load_raw_data()
        self._convert_to_schema()
        self._validate_and_flag()
        return self

    """=====================================================================
    PRIVATE METHODS
    ========================================================================"""

    @abstractmethod
    def _load_raw_data(self):
        """Load data from the resolved input files. Should set self.raw_data"""
        pass

    @abstractmethod
    def _convert_to_schema(self):
        """
        Convert raw entries into a dataframe with DocumentSchema columns.
        Text normalization is not done here; see text_preprocessing.py.

        Should set self.df
        """
        pass

    def _prepare_input(self):
        """
        Resolves self._original_input_paths into a flat, sorted list of files
        this loader can read. Updates self.input_paths.
        """
        extensions = DataLoaderRegistry.get_extensions_for_loader(type(self))
        resolved = []
        for path in self._original_input_paths:
            path = path.expanduser()
            if path.is_dir():
                found = DataLoaderRegistry.discover_supported_files(path, extensions or None)
                log_print(f"Found {len(found)} supported files in {path}", level="info")
                resolved.extend(found)
            elif path.is_file():
                resolved.append(path)
            else:
                raise FileNotFoundError(f"Input path '{path}' not found.")

        if not resolved:
            raise ValueError(
                f"No supported files found in {[str(p) for p in self._original_input_paths]} "
                f"(supported extensions: {sorted(extensions)})"
            )

        self.input_paths = sorted(resolved, key=lambda p: p.name)

    def _validate_and_flag(self):
        """
        Flags valid rows in self.df: a non-empty document identifier and
        non-blank raw text. Duplicate document identifiers are an error since
        identifiers key every later join.
        """
        if self.df is None:
            raise ValueError("self.df has not been populated.")

        doc_col = DocumentSchema.DOCUMENT.colname
        text_col = DocumentSchema.RAW_TEXT.colname

        duplicated = self.df[doc_col][self.df[doc_col].duplicated()].tolist()
        if duplicated:
            raise ValueError(f"Duplicate document identifiers: {sorted(set(duplicated))}")

        id_mask = self.df[doc_col].map(lambda x: isinstance(x, str) and len(x) > 0)
        text_mask = self.df[text_col].map(lambda x: isinstance(x, str) and len(x.strip()) > 0)
        self._valid_mask = id_mask & text_mask

        n_total = len(self.df)
        n_valid = int(self._valid_mask.sum())
        if n_valid < n_total:
            skipped = self.df.loc[~self._valid_mask, doc_col].tolist()
            log_print(f"Skipping {n_total - n_valid} empty documents: {skipped}", level="warning")
        log_print(f"Validation complete: {n_valid}/{n_total} documents valid.", level="info")


"""============================================================================
class TextDirectoryDataLoader(DataLoader)

This class implements a DataLoader for a directory of plain text files, one
document per file. The document identifier is the file name without its
extension.
============================================================================"""
@register_data_loader('txt')
class TextDirectoryDataLoader(DataLoader):
    def _load_raw_data(self):
        """Reads each text file; undecodable bytes are replaced rather than raising"""
        self.raw_data = []
        for input_path in self.input_paths:
            with open(input_path, 'r', encoding=self.encoding, errors='replace') as f:
                text = f.read()
            self.raw_data.append({
                'document': get_file_stem_only(input_path),
                'raw_text': text,
                'source_path': input_path,
            })
        log_print(f"Loaded {len(self.raw_data)} documents from {len(self.input_paths)} file(s)", level="info")

    def _convert_to_schema(self):
        rows = [
            {
                field.colname: field.get_extractor()(entry)
                for field in DocumentSchema
            }
            for entry in self.raw_data
        ]
        self.df = pd.DataFrame(rows, columns=DocumentSchema.all_colnames())


def create_data_loader(input_path: Union[str, Path], corpus_name: str,
                       encoding: str = 'utf-8') -> DataLoader:
    """
    Pick the registered loader for the files under input_path.

    Raises:
        FileNotFoundError: input_path does not exist
        ValueError: no supported files, or files needing different loaders
    """
    input_path = Path(input_path).expanduser()
    if input_path.is_dir():
        files = DataLoaderRegistry.discover_supported_files(input_path)
    elif input_path.is_file():
        files = [input_path]
    else:
        raise FileNotFoundError(f"Input path '{input_path}' not found.")

    extensions = {p.suffix.lower() for p in files}
    loader_class = DataLoaderRegistry.get_loader_for_extensions(extensions)
    if loader_class is None:
        raise ValueError(
            f"No single data loader handles the files in '{input_path}' "
            f"(found extensions: {sorted(extensions)}, "
            f"supported: {sorted(DataLoaderRegistry.get_supported_extensions())})"
        )
    return loader_class(input_path, corpus_name, encoding=encoding)
