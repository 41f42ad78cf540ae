"""Component declaration for the Webhook Broker service."""

from __future__ import annotations

from packages.synap_shared.manifest import (
    ComponentId,
    ModuleRoot,
    ServiceManifest,
    register_component,
)

SERVICE_COMPONENT_ID = ComponentId("service_webhook_broker")

MANIFEST = register_component(
    ServiceManifest(
        id=SERVICE_COMPONENT_ID,
        system="action",
        module_roots=frozenset({ModuleRoot("services.action.webhook_broker")}),
        public_api_roots=frozenset(
            {
                ModuleRoot("services.action.webhook_broker.service"),
                ModuleRoot("services.action.webhook_broker.domain"),
                ModuleRoot("services.action.webhook_broker.signing"),
            }
        ),
    )
)
