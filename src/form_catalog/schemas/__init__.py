from form_catalog.schemas.catalog import Credentials, MediaFile, RemoteCatalogEntry

__all__ = ["Credentials", "MediaFile", "RemoteCatalogEntry"]
