"""Component declaration for the Proposal Manager service."""

from __future__ import annotations

from packages.synap_shared.manifest import (
    ComponentId,
    ModuleRoot,
    ServiceManifest,
    register_component,
)

SERVICE_COMPONENT_ID = ComponentId("service_proposal_manager")

MANIFEST = register_component(
    ServiceManifest(
        id=SERVICE_COMPONENT_ID,
        system="action",
        module_roots=frozenset({ModuleRoot("services.action.proposal_manager")}),
        public_api_roots=frozenset(
            {
                ModuleRoot("services.action.proposal_manager.service"),
                ModuleRoot("services.action.proposal_manager.domain"),
            }
        ),
    )
)
