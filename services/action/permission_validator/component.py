"""Component declaration for the Permission Validator service."""

from __future__ import annotations

from packages.synap_shared.manifest import (
    ComponentId,
    ModuleRoot,
    ServiceManifest,
    register_component,
)

SERVICE_COMPONENT_ID = ComponentId("service_permission_validator")

MANIFEST = register_component(
    ServiceManifest(
        id=SERVICE_COMPONENT_ID,
        system="action",
        module_roots=frozenset({ModuleRoot("services.action.permission_validator")}),
        public_api_roots=frozenset(
            {
                ModuleRoot("services.action.permission_validator.service"),
                ModuleRoot("services.action.permission_validator.domain"),
                ModuleRoot("services.action.permission_validator.policy"),
            }
        ),
    )
)
