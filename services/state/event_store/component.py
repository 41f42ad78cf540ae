"""Component declaration for the Event Store service."""

from __future__ import annotations

from packages.synap_shared.manifest import (
    ComponentId,
    ModuleRoot,
    ServiceManifest,
    register_component,
)

SERVICE_COMPONENT_ID = ComponentId("service_event_store")

MANIFEST = register_component(
    ServiceManifest(
        id=SERVICE_COMPONENT_ID,
        system="state",
        module_roots=frozenset({ModuleRoot("services.state.event_store")}),
        public_api_roots=frozenset(
            {
                ModuleRoot("services.state.event_store.service"),
                ModuleRoot("services.state.event_store.domain"),
                ModuleRoot("services.state.event_store.taxonomy"),
            }
        ),
    )
)
