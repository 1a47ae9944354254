from .exceptions import AuthError, CatalogError, NetworkError, ParseError, StorageError
from .file_service import Artifact, FileService

__all__ = [
    "Artifact",
    "FileService",
    "AuthError",
    "CatalogError",
    "NetworkError",
    "ParseError",
    "StorageError",
]
