"""Search backend access: HTTP client and admission/retry control."""

from esview.backend.admission import AdmissionController, is_retryable
from esview.backend.client import HttpSearchBackend, IndexStats, SearchBackend

__all__ = [
    "AdmissionController",
    "HttpSearchBackend",
    "IndexStats",
    "SearchBackend",
    "is_retryable",
]
