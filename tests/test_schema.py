"""Unit tests for schema discovery."""

from __future__ import annotations

import json

import pytest

from text_to_cypher.schema import LabelInfo, SchemaDescriptor, SchemaDiscoverer
from text_to_cypher.types import ErrorKind, PipelineConfig, PipelineError


def test_empty_graph_yields_empty_descriptor(fake_store):
    schema = SchemaDiscoverer(store=fake_store()).discover("empty")

    assert schema == SchemaDescriptor()
    assert schema.is_empty
    assert json.loads(schema.to_json()) == {"labels": [], "relationship_types": []}


def test_discovers_labels_relationships_and_property_types(movie_store):
    schema = SchemaDiscoverer(store=movie_store).discover("movies")

    assert schema.label_names() == ["Actor", "Movie"]
    assert schema.labels[0].properties == {"born": "Integer", "name": "String"}
    assert schema.labels[1].properties == {"rating": "Float", "released": "Integer", "title": "String"}

    (acted_in,) = schema.relationship_types
    assert acted_in.name == "ACTED_IN"
    assert acted_in.source_labels == ("Actor",)
    assert acted_in.target_labels == ("Movie",)
    assert acted_in.properties == {"roles": "List"}


def test_discovery_only_issues_read_queries(movie_store):
    SchemaDiscoverer(store=movie_store, config=PipelineConfig(schema_sample_size=7)).discover("movies")

    assert movie_store.calls
    assert all(call["read_only"] for call in movie_store.calls)
    assert all(call["graph"] == "movies" for call in movie_store.calls)
    sampled = [call for call in movie_store.calls if call["parameters"]]
    assert sampled and all(call["parameters"] == {"sample": 7} for call in sampled)


def test_discovery_is_idempotent_on_unchanged_graph(movie_store):
    discoverer = SchemaDiscoverer(store=movie_store)

    assert discoverer.discover("movies") == discoverer.discover("movies")


def test_mixed_and_null_property_values(fake_store):
    store = fake_store(nodes={"Thing": [{"code": 1, "note": None}, {"code": "A1", "flag": True}]})

    schema = SchemaDiscoverer(store=store).discover("g")

    assert schema.labels[0].properties == {"code": "Integer|String", "flag": "Boolean", "note": "Any"}


def test_identifiers_with_backticks_are_escaped(fake_store):
    store = fake_store(nodes={"Odd`Label": [{"x": 1}]})

    schema = SchemaDiscoverer(store=store).discover("g")

    assert schema.label_names() == ["Odd`Label"]
    assert any("`Odd``Label`" in call["cypher"] for call in store.calls)


def test_store_failure_is_wrapped_without_retry(fake_store):
    store = fake_store(schema_error=ConnectionError("connection refused"))

    with pytest.raises(PipelineError) as excinfo:
        SchemaDiscoverer(store=store).discover("movies")

    assert excinfo.value.kind is ErrorKind.SCHEMA_DISCOVERY_FAILED
    assert "connection refused" in str(excinfo.value)
    assert len(store.calls) == 1


def test_duplicate_label_names_are_rejected():
    with pytest.raises(ValueError):
        SchemaDescriptor(labels=(LabelInfo(name="Movie"), LabelInfo(name="Movie")))
