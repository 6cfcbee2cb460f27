"""Graph schema discovery through read-only introspection queries."""

from __future__ import annotations

import json
import logging
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field

from .types import ErrorKind, GraphStore, PipelineConfig, PipelineError

logger = logging.getLogger(__name__)

LABELS_QUERY = "CALL db.labels() YIELD label RETURN label ORDER BY label"
RELATIONSHIP_TYPES_QUERY = (
    "CALL db.relationshipTypes() YIELD relationshipType "
    "RETURN relationshipType ORDER BY relationshipType"
)
LABEL_PROPERTIES_QUERY = "MATCH (n:{name}) WITH n LIMIT $sample RETURN properties(n) AS props"
RELATIONSHIP_PROPERTIES_QUERY = "MATCH ()-[r:{name}]->() WITH r LIMIT $sample RETURN properties(r) AS props"
RELATIONSHIP_ENDPOINTS_QUERY = (
    "MATCH (a)-[r:{name}]->(b) WITH a, b LIMIT $sample "
    "RETURN DISTINCT labels(a) AS source, labels(b) AS target"
)


@dataclass(frozen=True)
class LabelInfo:
    name: str
    properties: dict[str, str] = field(default_factory=dict)

    def to_dict(self) -> dict[str, object]:
        return {"name": self.name, "properties": dict(self.properties)}


@dataclass(frozen=True)
class RelationshipInfo:
    name: str
    properties: dict[str, str] = field(default_factory=dict)
    source_labels: tuple[str, ...] = ()
    target_labels: tuple[str, ...] = ()

    def to_dict(self) -> dict[str, object]:
        return {
            "name": self.name,
            "source_labels": list(self.source_labels),
            "target_labels": list(self.target_labels),
            "properties": dict(self.properties),
        }


@dataclass(frozen=True)
class SchemaDescriptor:
    """Labels and relationship types of a graph, each with property type hints."""

    labels: tuple[LabelInfo, ...] = ()
    relationship_types: tuple[RelationshipInfo, ...] = ()

    def __post_init__(self) -> None:
        _ensure_unique("label", (info.name for info in self.labels))
        _ensure_unique("relationship type", (info.name for info in self.relationship_types))

    @property
    def is_empty(self) -> bool:
        return not self.labels and not self.relationship_types

    def label_names(self) -> list[str]:
        return [info.name for info in self.labels]

    def relationship_names(self) -> list[str]:
        return [info.name for info in self.relationship_types]

    def to_dict(self) -> dict[str, object]:
        return {
            "labels": [info.to_dict() for info in self.labels],
            "relationship_types": [info.to_dict() for info in self.relationship_types],
        }

    def to_json(self, *, indent: int | None = None) -> str:
        return json.dumps(self.to_dict(), ensure_ascii=False, indent=indent)


def _ensure_unique(kind: str, names: Iterable[str]) -> None:
    seen: set[str] = set()
    for name in names:
        if name in seen:
            raise ValueError(f"Duplicate {kind} in schema: {name}")
        seen.add(name)


def _quote_identifier(name: str) -> str:
    return "`" + name.replace("`", "``") + "`"


def _type_hint(value: object) -> str:
    # bool first: it is a subclass of int
    if isinstance(value, bool):
        return "Boolean"
    if isinstance(value, int):
        return "Integer"
    if isinstance(value, float):
        return "Float"
    if isinstance(value, str):
        return "String"
    if isinstance(value, (list, tuple)):
        return "List"
    if isinstance(value, Mapping):
        return "Map"
    return type(value).__name__


def _merge_property_hints(samples: Iterable[object]) -> dict[str, str]:
    hints: dict[str, set[str]] = {}
    for props in samples:
        if not isinstance(props, Mapping):
            continue
        for key, value in props.items():
            if value is None:
                hints.setdefault(str(key), set())
                continue
            hints.setdefault(str(key), set()).add(_type_hint(value))
    return {key: "|".join(sorted(types)) or "Any" for key, types in sorted(hints.items())}


@dataclass
class SchemaDiscoverer:
    """Build a ``SchemaDescriptor`` for a graph from sampled labels, types and properties."""

    store: GraphStore
    config: PipelineConfig = field(default_factory=PipelineConfig)

    def discover(self, graph_name: str) -> SchemaDescriptor:
        try:
            return self._discover(graph_name)
        except PipelineError as exc:
            raise PipelineError(
                f"Schema discovery failed for graph '{graph_name}': {exc}",
                step="discover_schema",
                kind=ErrorKind.SCHEMA_DISCOVERY_FAILED,
            ) from exc
        except Exception as exc:
            raise PipelineError(
                f"Schema discovery failed for graph '{graph_name}': {type(exc).__name__}: {exc}",
                step="discover_schema",
                kind=ErrorKind.SCHEMA_DISCOVERY_FAILED,
            ) from exc

    def _discover(self, graph_name: str) -> SchemaDescriptor:
        labels = sorted({str(row["label"]) for row in self._read(graph_name, LABELS_QUERY)})
        rel_types = sorted(
            {str(row["relationshipType"]) for row in self._read(graph_name, RELATIONSHIP_TYPES_QUERY)}
        )
        logger.debug("Graph %s has %d labels and %d relationship types", graph_name, len(labels), len(rel_types))

        label_infos = tuple(
            LabelInfo(name=label, properties=self._sample_properties(graph_name, LABEL_PROPERTIES_QUERY, label))
            for label in labels
        )
        rel_infos = tuple(self._describe_relationship(graph_name, rel_type) for rel_type in rel_types)
        return SchemaDescriptor(labels=label_infos, relationship_types=rel_infos)

    def _describe_relationship(self, graph_name: str, rel_type: str) -> RelationshipInfo:
        sources: set[str] = set()
        targets: set[str] = set()
        endpoint_query = RELATIONSHIP_ENDPOINTS_QUERY.format(name=_quote_identifier(rel_type))
        for row in self._read(graph_name, endpoint_query, {"sample": self.config.schema_sample_size}):
            sources.update(str(label) for label in row.get("source") or [])
            targets.update(str(label) for label in row.get("target") or [])
        return RelationshipInfo(
            name=rel_type,
            properties=self._sample_properties(graph_name, RELATIONSHIP_PROPERTIES_QUERY, rel_type),
            source_labels=tuple(sorted(sources)),
            target_labels=tuple(sorted(targets)),
        )

    def _sample_properties(self, graph_name: str, template: str, name: str) -> dict[str, str]:
        cypher = template.format(name=_quote_identifier(name))
        rows = self._read(graph_name, cypher, {"sample": self.config.schema_sample_size})
        return _merge_property_hints(row.get("props") for row in rows)

    def _read(
        self, graph_name: str, cypher: str, parameters: dict[str, object] | None = None
    ) -> list[dict[str, object]]:
        return self.store.query(graph_name, cypher, parameters, read_only=True)
