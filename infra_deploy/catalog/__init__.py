"""Environment catalog retrieval."""

from infra_deploy.catalog.client import CatalogClient, load_catalog_file

__all__ = ["CatalogClient", "load_catalog_file"]
