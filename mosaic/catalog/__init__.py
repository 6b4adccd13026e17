"""Plugin catalogs: repository manifests, plugin lists and downloads."""

from mosaic.catalog.repository import CatalogClient, RepositoryStore, convert_raw_git_url

__all__ = ["CatalogClient", "RepositoryStore", "convert_raw_git_url"]
