from form_catalog.clients.catalog_client import DownloadedForm, RemoteCatalogClient

__all__ = ["DownloadedForm", "RemoteCatalogClient"]
