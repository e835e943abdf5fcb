"""
dataframe_schema.py

Defines schemas (column formats) for the pandas dataframes passed between
pipeline stages
"""

from enum import Enum
from collections import namedtuple

# Each schema column/field needs to defined in this format, with an extractor method
# The extractor method should perform basic minimal processing of the field
FieldDef = namedtuple("FieldDef", ["column_name", "extractor", "type"])


class _SchemaMixin:
    @property
    def colname(self):
        return self.value.column_name

    def get_extractor(self):
        return self.value.extractor

    @classmethod
    def all_colnames(cls):
        return [field.colname for field in cls]

    @classmethod
    def all_fields(cls):
        return list(cls)


class DocumentSchema(_SchemaMixin, Enum):
    """
    Defines the schema of the documents dataframe produced by the data loaders
    """
    DOCUMENT = FieldDef(
        "document",
        lambda entry: str(entry.get("document", "")).strip(),
        str
    )
    RAW_TEXT = FieldDef(
        "raw_text",
        lambda entry: entry.get("raw_text") if isinstance(entry.get("raw_text"), str) else None,
        str
    )
    SOURCE_PATH = FieldDef(
        "source_path",
        lambda entry: str(entry["source_path"]) if entry.get("source_path") else None,
        str
    )
    NORMALIZED_TEXT = FieldDef("normalized_text", lambda entry: None, str)


class BetaSchema(_SchemaMixin, Enum):
    """Term probability per topic, one row per (topic, term)"""
    TOPIC = FieldDef("topic", lambda entry: int(entry["topic"]), int)
    TERM = FieldDef("term", lambda entry: str(entry["term"]), str)
    BETA = FieldDef("beta", lambda entry: float(entry["beta"]), float)


class GammaSchema(_SchemaMixin, Enum):
    """Topic probability per document, one row per (document, topic)"""
    DOCUMENT = FieldDef("document", lambda entry: str(entry["document"]), str)
    TOPIC = FieldDef("topic", lambda entry: int(entry["topic"]), int)
    GAMMA = FieldDef("gamma", lambda entry: float(entry["gamma"]), float)
    YEAR = FieldDef("year", lambda entry: int(entry["year"]), int)


class YearSchema(_SchemaMixin, Enum):
    """Publication year per document"""
    DOCUMENT = FieldDef("document", lambda entry: str(entry["document"]), str)
    YEAR = FieldDef("year", lambda entry: int(entry["year"]), int)


class AggregateSchema(_SchemaMixin, Enum):
    """Mean topic probability per (year, topic)"""
    YEAR = FieldDef("year", lambda entry: int(entry["year"]), int)
    TOPIC = FieldDef("topic", lambda entry: int(entry["topic"]), int)
    MEAN_GAMMA = FieldDef("mean_gamma", lambda entry: float(entry["mean_gamma"]), float)
