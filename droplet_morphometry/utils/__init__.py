"""Utility modules for droplet morphometry."""

from .helpers import (
    ensure_directory,
    find_specimen_folders,
    list_csv_files,
    sorted_case_insensitive,
    write_table
)

__all__ = [
    'ensure_directory',
    'find_specimen_folders',
    'list_csv_files',
    'sorted_case_insensitive',
    'write_table'
]
