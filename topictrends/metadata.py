"""
Document metadata for topictrends.

Every text document has a companion XML file with the same stem in a
metadata directory. The publication year is the text of the first element
named `year` anywhere in that file, whatever its namespace.
"""

import pandas as pd
from pathlib import Path
from typing import Iterable, Optional, Union
from lxml import etree

from .dataframe_schema import GammaSchema, YearSchema
from ._file_driver import log_print, normalize_extension


XPATH_YEAR = "//*[local-name()='year']"


class MetadataNotFoundError(LookupError):
    """Raised when a document has no metadata file or no year in it"""


def _parse_xml(xml_path: Path):
    if not xml_path.is_file():
        raise MetadataNotFoundError(f"Metadata file '{xml_path}' not found")
    try:
        return etree.parse(str(xml_path))
    except etree.XMLSyntaxError as e:
        raise ValueError(f"Metadata file '{xml_path}' is not well-formed XML: {e}") from e


def find_year(xml_path: Union[str, Path]) -> Optional[int]:
    """
    Publication year from an XML metadata file, or None when the file has
    no `year` element. The first `year` element in document order wins.
    """
    xml_path = Path(xml_path)
    year_nodes = _parse_xml(xml_path).xpath(XPATH_YEAR)
    if not year_nodes:
        return None
    if len(year_nodes) > 1:
        log_print(
            f"{xml_path.name} has {len(year_nodes)} year elements; using the first", level="warning"
        )

    text = (year_nodes[0].text or "").strip()
    try:
        return int(text)
    except ValueError:
        raise ValueError(f"Year '{text}' in '{xml_path}' is not an integer") from None


def extract_year(xml_path: Union[str, Path]) -> int:
    """Like find_year, but a missing year raises MetadataNotFoundError"""
    year = find_year(xml_path)
    if year is None:
        raise MetadataNotFoundError(f"No year element in metadata file '{xml_path}'")
    return year


def load_document_years(doc_ids: Iterable[str], metadata_dir: Union[str, Path],
                        extension: str = "xml") -> pd.DataFrame:
    """
    Read the year of each document from <metadata_dir>/<document>.<extension>.

    Returns:
        DataFrame with YearSchema columns, one row per document, in doc_ids order
    """
    metadata_dir = Path(metadata_dir).expanduser()
    if not metadata_dir.is_dir():
        raise FileNotFoundError(f"Metadata directory '{metadata_dir}' not found.")
    ext = normalize_extension(extension)

    rows = []
    for doc_id in doc_ids:
        rows.append({
            YearSchema.DOCUMENT.colname: doc_id,
            YearSchema.YEAR.colname: extract_year(metadata_dir / f"{doc_id}{ext}"),
        })
    log_print(f"Read publication years for {len(rows)} documents from {metadata_dir}", level="info")
    return pd.DataFrame(rows, columns=YearSchema.all_colnames()).astype(
        {YearSchema.YEAR.colname: "int64"}
    )


def attach_years(gamma_df: pd.DataFrame, years_df: pd.DataFrame) -> pd.DataFrame:
    """
    Add the year column to a gamma table, matching rows by document.

    Every document in gamma_df must have exactly one year in years_df.

    Raises:
        MetadataNotFoundError: some documents have no year
        ValueError: a document appears more than once in years_df
    """
    doc_col = GammaSchema.DOCUMENT.colname
    year_col = GammaSchema.YEAR.colname

    duplicated = years_df[doc_col][years_df[doc_col].duplicated()].unique().tolist()
    if duplicated:
        raise ValueError(f"Documents with more than one year: {sorted(duplicated)}")

    missing = sorted(set(gamma_df[doc_col]) - set(years_df[doc_col]))
    if missing:
        raise MetadataNotFoundError(f"No metadata for {len(missing)} documents: {missing}")

    joined = gamma_df.drop(columns=[year_col], errors="ignore").merge(
        years_df[[doc_col, year_col]], on=doc_col, how="left", validate="many_to_one"
    )
    joined[year_col] = joined[year_col].astype("int64")
    return joined[GammaSchema.all_colnames()]
