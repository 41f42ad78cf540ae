"""Static invariants over every service's table metadata.

Checks run against ``service_metadata()`` so a newly wired service is
covered without touching this module.
"""

from __future__ import annotations

import pytest
from sqlalchemy import String, Table

from packages.synap_core.pipeline import service_metadata
from packages.synap_shared.ids import ULID_STR_LENGTH
from packages.synap_shared.manifest import ServiceManifest, get_registry


def _tables() -> list[tuple[str, Table]]:
    return [
        (schema, table)
        for schema, metadata in sorted(service_metadata().items())
        for table in metadata.sorted_tables
    ]


def test_every_wired_schema_belongs_to_a_registered_service() -> None:
    service_schemas = {
        manifest.schema_name
        for manifest in get_registry().list_services()
        if isinstance(manifest, ServiceManifest)
    }

    assert set(service_metadata()) <= service_schemas


@pytest.mark.parametrize(
    ("schema", "table"), _tables(), ids=lambda value: getattr(value, "name", value)
)
def test_table_lives_in_its_service_schema_with_a_primary_key(
    schema: str, table: Table
) -> None:
    assert table.schema == schema
    assert len(table.primary_key.columns) > 0


@pytest.mark.parametrize(
    ("schema", "table"), _tables(), ids=lambda value: getattr(value, "name", value)
)
def test_surrogate_id_keys_are_ulid_text(schema: str, table: Table) -> None:
    del schema
    if "id" not in table.c or not table.c.id.primary_key:
        pytest.skip("table is keyed by natural columns")

    column_type = table.c.id.type
    assert isinstance(column_type, String)
    assert column_type.length == ULID_STR_LENGTH


@pytest.mark.parametrize(
    ("schema", "table"), _tables(), ids=lambda value: getattr(value, "name", value)
)
def test_foreign_keys_stay_inside_the_owning_schema(schema: str, table: Table) -> None:
    for foreign_key in table.foreign_keys:
        target_schema = foreign_key.target_fullname.split(".")[0]
        assert target_schema == schema, (
            f"{table.fullname} references {foreign_key.target_fullname}"
        )
