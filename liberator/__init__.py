"""Liberator - strips proprietary platform code from uploaded projects."""

__version__ = "0.1.0"

from .core.zip_handler import archive_root, decode, encode
from .jobs.controller import JobController
from .jobs.storage import InMemoryJobStore
from .pipeline import clean, clean_files, generate_scaffold, scan, scan_line

__all__ = [
    "JobController",
    "InMemoryJobStore",
    "archive_root",
    "clean",
    "clean_files",
    "decode",
    "encode",
    "generate_scaffold",
    "scan",
    "scan_line",
]
