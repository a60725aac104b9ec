"""
Catalog models for an environment's application infrastructure.

A catalog describes, for one environment, every application and the
components it is made of. Each component is assigned to a node and declares
the service resource tags it produces and consumes. The scheduler does not
care about applications or components; it works on the per-node aggregation
returned by :meth:`Catalog.node_relations`.

Example:
    Parsing a compiled environment document::

        catalog = Catalog.from_dict(
            {
                "applications": {
                    "Lamp[prod]": {
                        "Lamp::Db[prod]": {
                            "node": "db01.example.com",
                            "produces": ["Sql[prod]"],
                            "consumes": [],
                        },
                        "Lamp::Web[prod]": {
                            "node": "web01.example.com",
                            "produces": [],
                            "consumes": ["Sql[prod]"],
                        },
                    }
                }
            },
            environment="production",
        )
        relations = catalog.node_relations()
        relations["web01.example.com"].consumes  # ["Sql[prod]"]
"""

from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

from infra_deploy.exceptions import CompilationFailureError, MalformedCatalogError

ResourceTag = str
"""Opaque name of an abstract resource. Only equality is meaningful."""


@dataclass(frozen=True)
class Component:
    """A single application component assigned to one node."""

    name: str
    application: str
    node: str
    produces: tuple[ResourceTag, ...] = ()
    consumes: tuple[ResourceTag, ...] = ()

    @classmethod
    def from_dict(cls, application: str, name: str, data: Any) -> "Component":
        """Build a component from its catalog entry.

        Raises:
            MalformedCatalogError: If the entry is not a mapping, has no node,
                or carries non-list relations.
        """
        if not isinstance(data, Mapping):
            raise MalformedCatalogError(f"Component {name} of {application} is not an object")

        node = data.get("node")
        if not isinstance(node, str) or not node.strip():
            raise MalformedCatalogError(f"Component {name} of {application} has no node assigned")

        return cls(
            name=name,
            application=application,
            node=node,
            produces=_parse_tags(data.get("produces"), "produces", name),
            consumes=_parse_tags(data.get("consumes"), "consumes", name),
        )


def _parse_tags(value: Any, relation: str, component: str) -> tuple[ResourceTag, ...]:
    if value is None:
        return ()
    if not isinstance(value, list) or not all(isinstance(tag, str) for tag in value):
        raise MalformedCatalogError(f"Component {component} has invalid {relation}: expected a list of strings")
    return tuple(value)


@dataclass(frozen=True)
class Application:
    """A named group of components. Component order is irrelevant."""

    name: str
    components: dict[str, Component] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, name: str, data: Any) -> "Application":
        if not isinstance(data, Mapping):
            raise MalformedCatalogError(f"Application {name} is not an object")
        return cls(
            name=name,
            components={
                component: Component.from_dict(name, component, entry) for component, entry in data.items()
            },
        )


@dataclass
class NodeRelation:
    """Everything a node produces and consumes, aggregated across its components.

    Both sides are multisets: a tag appears once per component that lists it.
    The scheduler treats instances as private working copies.
    """

    produces: list[ResourceTag] = field(default_factory=list)
    consumes: list[ResourceTag] = field(default_factory=list)

    def copy(self) -> "NodeRelation":
        return NodeRelation(produces=list(self.produces), consumes=list(self.consumes))


@dataclass(frozen=True)
class Catalog:
    """Compiled application infrastructure for one environment.

    Attributes:
        environment: Name of the environment the catalog was compiled for.
        applications: Application name to Application. Empty means there is
            nothing to deploy, which is not an error.
    """

    environment: str
    applications: dict[str, Application] = field(default_factory=dict)

    @property
    def is_empty(self) -> bool:
        return not self.applications

    @property
    def components(self) -> list[Component]:
        """All components in document order."""
        return [component for app in self.applications.values() for component in app.components.values()]

    @classmethod
    def from_dict(cls, document: Any, environment: str = "production") -> "Catalog":
        """Parse the JSON document served for an environment.

        Args:
            document: Decoded JSON body.
            environment: Environment name, used in error messages.

        Raises:
            CompilationFailureError: If the document carries an error message
                instead of applications.
            MalformedCatalogError: If the document is structurally invalid.
        """
        if not isinstance(document, Mapping):
            raise MalformedCatalogError("Catalog document is not an object", environment=environment)

        if "applications" not in document:
            message = document.get("message")
            if message:
                raise CompilationFailureError(str(message), environment=environment)
            raise MalformedCatalogError("Catalog document has no applications", environment=environment)

        applications = document["applications"]
        if not isinstance(applications, Mapping):
            raise MalformedCatalogError("Catalog applications is not an object", environment=environment)

        return cls(
            environment=environment,
            applications={name: Application.from_dict(name, data) for name, data in applications.items()},
        )

    def node_relations(self) -> dict[str, NodeRelation]:
        """Aggregate component relations per node.

        Nodes are keyed in first-seen order. Relations are concatenated
        without de-duplication.
        """
        relations: dict[str, NodeRelation] = {}
        for component in self.components:
            relation = relations.setdefault(component.node, NodeRelation())
            relation.produces.extend(component.produces)
            relation.consumes.extend(component.consumes)
        return relations
