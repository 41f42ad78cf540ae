"""Component declaration for the Dispatcher service."""

from __future__ import annotations

from packages.synap_shared.manifest import (
    ComponentId,
    ModuleRoot,
    ServiceManifest,
    register_component,
)

SERVICE_COMPONENT_ID = ComponentId("service_dispatcher")

MANIFEST = register_component(
    ServiceManifest(
        id=SERVICE_COMPONENT_ID,
        system="action",
        module_roots=frozenset({ModuleRoot("services.action.dispatcher")}),
        public_api_roots=frozenset(
            {
                ModuleRoot("services.action.dispatcher.service"),
                ModuleRoot("services.action.dispatcher.domain"),
            }
        ),
    )
)
