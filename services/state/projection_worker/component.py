"""Component declaration for the Projection Worker service."""

from __future__ import annotations

from packages.synap_shared.manifest import (
    ComponentId,
    ModuleRoot,
    ServiceManifest,
    register_component,
)

SERVICE_COMPONENT_ID = ComponentId("service_projection_worker")

MANIFEST = register_component(
    ServiceManifest(
        id=SERVICE_COMPONENT_ID,
        system="state",
        module_roots=frozenset({ModuleRoot("services.state.projection_worker")}),
        public_api_roots=frozenset(
            {
                ModuleRoot("services.state.projection_worker.service"),
                ModuleRoot("services.state.projection_worker.domain"),
                ModuleRoot("services.state.projection_worker.worker"),
            }
        ),
    )
)
