"""
File I/O and utility functions for topictrends.

This module contains logging, naming, path and pickle helpers shared by the
pipeline stages.
"""

import os
import pickle
import re
import logging
from datetime import datetime
from pathlib import Path


# ============================================================================
# File I/O Operations
# ============================================================================

def write_pickle(file_path, data, overwrite=True):
    """Write data to a pickle file"""
    if not overwrite and os.path.exists(file_path):
        log_print(f"File '{file_path}' already exists. Skipping write as overwrite=False.", level="warning")
        return

    parent = os.path.dirname(str(file_path))
    if parent:
        os.makedirs(parent, exist_ok=True)
    with open(file_path, 'wb') as f:
        pickle.dump(data, f)
    log_print(f"Data successfully written to '{file_path}'.", level="debug")


def read_pickle(file_path):
    """Read data from a pickle file"""
    with open(file_path, 'rb') as f:
        return pickle.load(f)


# ============================================================================
# Time and Naming Utilities
# ============================================================================

def get_date_hour_minute():
    """Function to generate a 6 digit _ 4 digit timestr of [month|day|year]_[hour|minute]"""
    today = datetime.now()
    timestr = today.strftime("%m%d%Y_%H%M")
    return timestr


def get_file_stem_only(file_path):
    """Function to get the filename only, without the file extension"""
    path = Path(file_path)
    return path.stem


def normalize_extension(ext: str) -> str:
    """Return a lowercase extension with a leading dot"""
    if not ext.startswith('.'):
        ext = '.' + ext
    return ext.lower()


# ============================================================================
# Utility Functions
# ============================================================================

def validate_corpus_name(name: str) -> bool:
    if not re.fullmatch(r"[a-z_][a-z0-9_]*", name):
        raise ValueError(
            f"Invalid corpus name '{name}'. Must start with a letter or underscore and contain only lowercase letters, digits, and underscores."
        )
    return True


def log_print(message: str, level: str = "info", logger: logging.Logger = None, also_print: bool = False):
    """
    Logs and optionally prints a message.

    Parameters:
        message (str): The message to log/print.
        level (str): Logging level: 'debug', 'info', 'warning', 'error', or 'critical'.
        logger (logging.Logger): Logger instance. If None, uses the 'topictrends' logger.
        also_print (bool): Whether to also print to stdout.
    """
    if logger is None:
        logger = logging.getLogger('topictrends')

    log_func = getattr(logger, level.lower(), logger.info)
    log_func(message)

    if also_print:
        print(message)
