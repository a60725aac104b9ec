"""Catalog data models.

Key Models:
    - Catalog: compiled applications for one environment
    - Application: named group of components
    - Component: one component, assigned to a node
    - NodeRelation: per-node aggregation of produced and consumed tags
"""

from infra_deploy.models.catalog import Application, Catalog, Component, NodeRelation, ResourceTag

__all__ = [
    "Application",
    "Catalog",
    "Component",
    "NodeRelation",
    "ResourceTag",
]
