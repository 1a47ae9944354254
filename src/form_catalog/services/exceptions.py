from form_catalog.utils.file_utils import ParseError


class CatalogError(Exception):
    """Base class for reconciliation errors"""

    pass


class StorageError(CatalogError):
    """Raised when the storage root is inaccessible or unwritable"""

    pass


class NetworkError(CatalogError):
    """Raised on connection failures, timeouts and unexpected server responses"""

    def __init__(self, message: str, transient: bool = True):
        super().__init__(message)
        self.transient = transient


class AuthError(CatalogError):
    """Raised when the server rejects the supplied credentials"""

    pass


__all__ = ["CatalogError", "StorageError", "NetworkError", "AuthError", "ParseError"]
