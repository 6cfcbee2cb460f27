"""Neo4j graph-store adapter and the query executor used by the pipeline."""

from __future__ import annotations

import json
import logging
import threading
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta

from neo4j import READ_ACCESS, WRITE_ACCESS, Driver, GraphDatabase, Query
from neo4j.graph import Node, Path, Relationship

from .types import ErrorKind, GraphStore, PipelineConfig, PipelineError

logger = logging.getLogger(__name__)


def _node_to_dict(node: Node) -> dict[str, object]:
    return {
        "id": node.element_id,
        "labels": sorted(node.labels),
        "properties": {key: normalize_value(value) for key, value in node.items()},
    }


def _relationship_to_dict(rel: Relationship) -> dict[str, object]:
    start = rel.start_node
    end = rel.end_node
    return {
        "id": rel.element_id,
        "type": rel.type,
        "start": start.element_id if start is not None else None,
        "end": end.element_id if end is not None else None,
        "properties": {key: normalize_value(value) for key, value in rel.items()},
    }


def normalize_value(value: object) -> object:
    """Convert driver values into JSON-serializable structures."""
    if value is None or isinstance(value, (bool, int, float, str)):
        return value
    if isinstance(value, Node):
        return _node_to_dict(value)
    if isinstance(value, Relationship):
        return _relationship_to_dict(value)
    if isinstance(value, Path):
        return {
            "nodes": [_node_to_dict(node) for node in value.nodes],
            "relationships": [_relationship_to_dict(rel) for rel in value.relationships],
        }
    if isinstance(value, Mapping):
        return {str(key): normalize_value(item) for key, item in value.items()}
    if isinstance(value, (list, tuple, set, frozenset)):
        return [normalize_value(item) for item in value]
    if isinstance(value, (bytes, bytearray)):
        return bytes(value).hex()
    # neo4j.time types expose iso_format(); stdlib temporals expose isoformat().
    iso_format = getattr(value, "iso_format", None)
    if callable(iso_format):
        return iso_format()
    if isinstance(value, (datetime, date, time)):
        return value.isoformat()
    if isinstance(value, timedelta):
        return value.total_seconds()
    return str(value)


@dataclass(frozen=True)
class ExecutionResult:
    """Normalized rows returned by the graph store; an empty tuple means no rows."""

    columns: tuple[str, ...] = ()
    rows: tuple[dict[str, object], ...] = ()

    @classmethod
    def from_records(cls, records: list[dict[str, object]]) -> ExecutionResult:
        rows = tuple({str(key): normalize_value(value) for key, value in record.items()} for record in records)
        columns: list[str] = []
        for row in rows:
            for key in row:
                if key not in columns:
                    columns.append(key)
        return cls(columns=tuple(columns), rows=rows)

    @property
    def is_empty(self) -> bool:
        return not self.rows

    def __len__(self) -> int:
        return len(self.rows)

    def to_list(self) -> list[dict[str, object]]:
        return [dict(row) for row in self.rows]

    def to_json(self) -> str:
        return json.dumps(self.to_list(), ensure_ascii=False)


@dataclass
class Neo4jGraphStore:
    """Run Cypher on a Neo4j database; ``graph_name`` selects the database.

    The driver is created on first use so that building a store never fails
    because of bad credentials or an unreachable server.
    """

    uri: str
    user: str
    password: str
    config: PipelineConfig = field(default_factory=PipelineConfig)

    def __post_init__(self) -> None:
        self._driver: Driver | None = None
        self._lock = threading.Lock()

    def _get_driver(self) -> Driver:
        if self._driver is None:
            with self._lock:
                if self._driver is None:
                    auth = (self.user, self.password) if self.user else None
                    self._driver = GraphDatabase.driver(self.uri, auth=auth)
        return self._driver

    def close(self) -> None:
        with self._lock:
            if self._driver is not None:
                self._driver.close()
                self._driver = None

    def query(
        self,
        graph_name: str,
        cypher: str,
        parameters: Mapping[str, object] | None = None,
        *,
        read_only: bool = False,
    ) -> list[dict[str, object]]:
        try:
            driver = self._get_driver()
            with driver.session(
                database=graph_name or None,
                default_access_mode=READ_ACCESS if read_only else WRITE_ACCESS,
                fetch_size=self.config.neo4j_fetch_size,
            ) as session:
                result = session.run(Query(cypher, timeout=self.config.neo4j_timeout_seconds), dict(parameters or {}))
                return [dict(record.items()) for record in result]
        except Exception as exc:
            raise PipelineError(f"Neo4j query failed: {type(exc).__name__}: {exc}", step="neo4j") from exc


@dataclass
class QueryExecutor:
    """Submit generated Cypher verbatim and normalize what comes back.

    Statements are neither validated nor rewritten, and write statements run
    like any other; read-only enforcement is left to the store's permissions.
    """

    store: GraphStore

    def execute(self, graph_name: str, cypher: str) -> ExecutionResult:
        try:
            records = self.store.query(graph_name, cypher)
        except Exception as exc:
            message = str(exc) if isinstance(exc, PipelineError) else f"{type(exc).__name__}: {exc}"
            raise PipelineError(message, step="execute_cypher", kind=ErrorKind.EXECUTION_FAILED) from exc
        result = ExecutionResult.from_records(records)
        logger.debug("Query on graph %s returned %d rows", graph_name, len(result))
        return result
