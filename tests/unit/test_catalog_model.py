"""Tests for infra_deploy.models.catalog."""

import pytest

from infra_deploy.exceptions import CatalogError, CompilationFailureError, MalformedCatalogError
from infra_deploy.models.catalog import Catalog, Component, NodeRelation


class TestCatalogParsing:
    """Test Catalog.from_dict."""

    def test_parses_applications_and_components(self, lamp_catalog):
        app = lamp_catalog.applications["Lamp[prod]"]

        assert lamp_catalog.environment == "production"
        assert set(app.components) == {"Lamp::Db[prod]", "Lamp::Web[prod]", "Lamp::Lb[prod]"}
        web = app.components["Lamp::Web[prod]"]
        assert web == Component(
            name="Lamp::Web[prod]",
            application="Lamp[prod]",
            node="web01.example.com",
            produces=("Http[prod]",),
            consumes=("Sql[prod]",),
        )

    def test_empty_applications_is_valid(self):
        catalog = Catalog.from_dict({"applications": {}})

        assert catalog.is_empty
        assert catalog.node_relations() == {}

    def test_null_applications_is_malformed(self):
        with pytest.raises(MalformedCatalogError, match="applications is not an object"):
            Catalog.from_dict({"applications": None})

    def test_missing_relations_default_to_empty(self):
        catalog = Catalog.from_dict({"applications": {"App": {"Comp": {"node": "n1"}}}})

        assert catalog.node_relations() == {"n1": NodeRelation()}

    def test_message_without_applications_is_compilation_failure(self):
        with pytest.raises(CompilationFailureError) as exc_info:
            Catalog.from_dict({"message": "Syntax error at line 3"}, environment="staging")

        assert exc_info.value.message == "Syntax error at line 3"
        assert exc_info.value.environment == "staging"
        assert "staging" in str(exc_info.value)

    def test_missing_applications_is_malformed(self):
        with pytest.raises(MalformedCatalogError):
            Catalog.from_dict({"something": "else"})

    @pytest.mark.parametrize("document", [[], "applications", None, 42])
    def test_non_object_document_is_malformed(self, document):
        with pytest.raises(MalformedCatalogError):
            Catalog.from_dict(document)

    def test_applications_not_object_is_malformed(self):
        with pytest.raises(MalformedCatalogError):
            Catalog.from_dict({"applications": ["App"]})

    def test_application_not_object_is_malformed(self):
        with pytest.raises(MalformedCatalogError):
            Catalog.from_dict({"applications": {"App": ["Comp"]}})

    @pytest.mark.parametrize("component", [{}, {"node": ""}, {"node": "   "}, {"node": None}, "n1"])
    def test_component_without_node_is_malformed(self, component):
        with pytest.raises(MalformedCatalogError) as exc_info:
            Catalog.from_dict({"applications": {"App": {"Comp": component}}})

        assert "Comp" in exc_info.value.message

    @pytest.mark.parametrize("produces", ["Sql[prod]", [1, 2], {"a": "b"}])
    def test_invalid_relations_are_malformed(self, produces):
        with pytest.raises(MalformedCatalogError):
            Catalog.from_dict({"applications": {"App": {"Comp": {"node": "n1", "produces": produces}}}})

    def test_catalog_errors_share_base(self):
        assert issubclass(MalformedCatalogError, CatalogError)
        assert issubclass(CompilationFailureError, CatalogError)


class TestNodeRelations:
    """Test per-node aggregation."""

    def test_one_relation_per_node(self, lamp_catalog):
        relations = lamp_catalog.node_relations()

        assert list(relations) == ["db01.example.com", "web01.example.com", "lb01.example.com"]
        assert relations["web01.example.com"] == NodeRelation(produces=["Http[prod]"], consumes=["Sql[prod]"])

    def test_relations_are_concatenated_not_deduplicated(self):
        catalog = Catalog.from_dict(
            {
                "applications": {
                    "App1": {
                        "Web": {"node": "n1", "produces": ["http"], "consumes": ["sql"]},
                    },
                    "App2": {
                        "Web": {"node": "n1", "produces": ["http"], "consumes": ["sql", "cache"]},
                        "Db": {"node": "n2", "produces": ["sql"], "consumes": []},
                    },
                }
            }
        )

        relations = catalog.node_relations()

        assert relations["n1"].produces == ["http", "http"]
        assert relations["n1"].consumes == ["sql", "sql", "cache"]
        assert relations["n2"].produces == ["sql"]

    def test_relations_are_fresh_copies(self, lamp_catalog):
        first = lamp_catalog.node_relations()
        first["web01.example.com"].consumes.clear()

        assert lamp_catalog.node_relations()["web01.example.com"].consumes == ["Sql[prod]"]

    def test_relation_copy_is_independent(self):
        relation = NodeRelation(produces=["a"], consumes=["b"])
        copy = relation.copy()
        copy.consumes.append("c")

        assert relation.consumes == ["b"]
