"""Pytest configuration and shared fixtures."""

import json
from pathlib import Path

import pytest

from infra_deploy.config.settings import DeploySettings
from infra_deploy.models.catalog import Catalog, NodeRelation


@pytest.fixture
def lamp_document() -> dict:
    """Catalog document for a small LAMP stack spread over three nodes."""
    return {
        "applications": {
            "Lamp[prod]": {
                "Lamp::Db[prod]": {
                    "node": "db01.example.com",
                    "produces": ["Sql[prod]"],
                    "consumes": [],
                },
                "Lamp::Web[prod]": {
                    "node": "web01.example.com",
                    "produces": ["Http[prod]"],
                    "consumes": ["Sql[prod]"],
                },
                "Lamp::Lb[prod]": {
                    "node": "lb01.example.com",
                    "produces": [],
                    "consumes": ["Http[prod]"],
                },
            }
        }
    }


@pytest.fixture
def lamp_catalog(lamp_document: dict) -> Catalog:
    return Catalog.from_dict(lamp_document, environment="production")


@pytest.fixture
def chain_relations() -> dict[str, NodeRelation]:
    """db -> web -> lb dependency chain."""
    return {
        "db": NodeRelation(produces=["sql"], consumes=[]),
        "web": NodeRelation(produces=["http"], consumes=["sql"]),
        "lb": NodeRelation(produces=[], consumes=["http"]),
    }


@pytest.fixture
def settings() -> DeploySettings:
    """Settings with a fast poll interval for tests."""
    return DeploySettings(scheduler={"poll_interval": 0.01})


@pytest.fixture
def catalog_file(tmp_path: Path, lamp_document: dict) -> Path:
    path = tmp_path / "catalog.json"
    path.write_text(json.dumps(lamp_document))
    return path
