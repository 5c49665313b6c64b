"""Expose constructed client wrappers."""

from .artifact_storage import ARTIFACT_ROUTE, LocalArtifactStorage
from .canva_api import CanvaApiClient
from .canva_auth import CanvaOAuthClient
from .file_fetcher import FetchedFile, FileFetcher
from .sqlite_store import ArtifactRecordStore

__all__ = [
    "ARTIFACT_ROUTE",
    "ArtifactRecordStore",
    "CanvaApiClient",
    "CanvaOAuthClient",
    "FetchedFile",
    "FileFetcher",
    "LocalArtifactStorage",
]
