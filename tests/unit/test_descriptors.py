"""Unit tests for index descriptor resolution."""

from __future__ import annotations

import logging

import pytest

from lightning_search.config import ModelIndexConfig, Settings
from lightning_search.descriptors import IndexDescriptorResolver, build_registry, resolve_descriptor
from lightning_search.domain.entities import EntityRegistry, EntityType
from lightning_search.domain.errors import IndexDescriptorError


COMPANY = EntityType(name="company", table="companies", fillable=("name", "city", "country"))


class TestResolveDescriptor:
    def test_structural_default(self):
        descriptor = resolve_descriptor(COMPANY, None)

        assert descriptor.searchable_fields == ("name", "city", "country")
        assert descriptor.index_fields == ("id", "name", "city", "country")
        assert descriptor.table_id == "companies"

    def test_configuration_beats_structural_default(self):
        config = ModelIndexConfig(searchable_fields=["name"], index_fields=["name", "city"], table="firms")

        descriptor = resolve_descriptor(COMPANY, config)

        assert descriptor.searchable_fields == ("name",)
        assert descriptor.index_fields == ("id", "name", "city")
        assert descriptor.table_id == "firms"

    def test_explicit_override_beats_configuration(self):
        entity_type = EntityType(
            name="company",
            table="companies",
            fillable=("name", "city"),
            searchable=("city",),
            searchable_table="company_search",
        )
        config = ModelIndexConfig(searchable_fields=["name"], table="firms")

        descriptor = resolve_descriptor(entity_type, config)

        assert descriptor.searchable_fields == ("city",)
        assert descriptor.table_id == "company_search"
        assert descriptor.index_fields == ("id", "name", "city")

    def test_each_part_resolves_independently(self):
        config = ModelIndexConfig(index_fields=["name"])

        descriptor = resolve_descriptor(COMPANY, config)

        assert descriptor.searchable_fields == COMPANY.fillable
        assert descriptor.index_fields == ("id", "name")
        assert descriptor.table_id == "companies"

    def test_primary_key_carried_over(self):
        entity_type = EntityType(name="sku", table="skus", primary_key="code", fillable=("title",))

        descriptor = resolve_descriptor(entity_type, None)

        assert descriptor.primary_key == "code"
        assert descriptor.index_fields[0] == "code"


class TestIndexDescriptorResolver:
    def test_resolve_caches(self, settings: Settings):
        resolver = IndexDescriptorResolver(settings, EntityRegistry([COMPANY]))

        assert resolver.resolve("company") is resolver.resolve("company")

    def test_unknown_entity_type(self, settings: Settings):
        resolver = IndexDescriptorResolver(settings, EntityRegistry([COMPANY]))

        with pytest.raises(IndexDescriptorError, match="Unknown entity type 'person'"):
            resolver.resolve("person")

    def test_warns_when_nothing_is_searchable(self, settings: Settings, caplog: pytest.LogCaptureFixture):
        caplog.set_level(logging.WARNING)
        resolver = IndexDescriptorResolver(settings, EntityRegistry([EntityType(name="audit", table="audits")]))

        descriptor = resolver.resolve("audit")

        assert descriptor.is_engine_dispatchable is False
        assert "audit has no searchable fields" in caplog.text

    def test_resolve_all(self, settings: Settings):
        registry = EntityRegistry([COMPANY, EntityType(name="person", table="people", fillable=("name",))])

        descriptors = IndexDescriptorResolver(settings, registry).resolve_all()

        assert [d.table_id for d in descriptors] == ["companies", "people"]


def test_build_registry_adds_configuration_only_entries():
    settings = Settings(
        _env_file=None,
        models={
            "company": {"searchable_fields": ["name"]},
            "person": {"index_fields": ["id", "first_name", "last_name"], "table": "people"},
        },
    )

    registry = build_registry(settings, [COMPANY])

    assert registry.get("company") is COMPANY
    person = registry.get("person")
    assert person is not None
    assert person.table == "people"
    assert person.fillable == ("first_name", "last_name")
