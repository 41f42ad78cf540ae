"""Component manifests and the process-local registry.

Each service and substrate registers a manifest from its ``component.py``.
Bootstrap walks the registry to create one Postgres schema per service.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from threading import RLock
from typing import Final, FrozenSet, Literal, NewType

ComponentId = NewType("ComponentId", str)
ModuleRoot = NewType("ModuleRoot", str)

System = Literal["state", "action"]

_SYSTEM_ORDER: Final[dict[str, int]] = {"state": 0, "action": 1}
_COMPONENT_ID_RE: Final[re.Pattern[str]] = re.compile(r"^[a-z][a-z0-9_]{1,62}$")
_MODULE_ROOT_RE: Final[re.Pattern[str]] = re.compile(
    r"^[a-zA-Z_][a-zA-Z0-9_]*(\.[a-zA-Z_][a-zA-Z0-9_]*)*$"
)


class ManifestError(ValueError):
    """Raised when manifest definitions or registration are invalid."""


@dataclass(frozen=True, slots=True)
class ComponentManifest:
    """Base manifest model for any pipeline component."""

    id: ComponentId
    system: System
    module_roots: FrozenSet[ModuleRoot]

    def __post_init__(self) -> None:
        validate_component_id(self.id)
        if len(self.module_roots) == 0:
            raise ManifestError("module_roots must not be empty")
        for root in self.module_roots:
            validate_module_root(root)


@dataclass(frozen=True, slots=True)
class ResourceManifest(ComponentManifest):
    """Manifest for shared infrastructure such as the Postgres substrate."""


@dataclass(frozen=True, slots=True)
class ServiceManifest(ComponentManifest):
    """Manifest for one pipeline service; owns exactly one schema."""

    public_api_roots: FrozenSet[ModuleRoot] = frozenset()

    def __post_init__(self) -> None:
        super(ServiceManifest, self).__post_init__()
        if len(self.public_api_roots) == 0:
            raise ManifestError("public_api_roots must not be empty")
        for root in self.public_api_roots:
            validate_module_root(root)

    @property
    def schema_name(self) -> str:
        """Return canonical Postgres schema name derived from service id."""
        return component_id_to_schema_name(self.id)


@dataclass(slots=True)
class ManifestRegistry:
    """In-memory registry for all component manifests."""

    _components: dict[ComponentId, ComponentManifest] = field(default_factory=dict)
    _lock: RLock = field(default_factory=RLock)

    def register_component(self, manifest: ComponentManifest) -> None:
        """Register one manifest; re-registering an identical one is a no-op."""
        with self._lock:
            existing = self._components.get(manifest.id)
            if existing is not None and existing != manifest:
                raise ManifestError(
                    f"duplicate component id with mismatched definition: {manifest.id}"
                )
            self._components[manifest.id] = manifest

    def get_component(self, component_id: ComponentId) -> ComponentManifest:
        try:
            return self._components[component_id]
        except KeyError as exc:
            raise ManifestError(f"component not registered: {component_id}") from exc

    def list_services(self) -> tuple[ServiceManifest, ...]:
        """Return registered services, state system first, then by id."""
        services = [
            item for item in self._components.values() if isinstance(item, ServiceManifest)
        ]
        return tuple(
            sorted(services, key=lambda item: (_SYSTEM_ORDER[item.system], str(item.id)))
        )

    def list_components(self) -> tuple[ComponentManifest, ...]:
        return tuple(sorted(self._components.values(), key=lambda item: str(item.id)))


def validate_component_id(value: ComponentId) -> None:
    """Validate component-id format suitable for schema derivation."""
    raw = str(value)
    if not _COMPONENT_ID_RE.fullmatch(raw):
        raise ManifestError(
            f"invalid component id '{raw}'; expected ^[a-z][a-z0-9_]{{1,62}}$"
        )


def validate_module_root(value: ModuleRoot) -> None:
    raw = str(value)
    if not _MODULE_ROOT_RE.fullmatch(raw):
        raise ManifestError(f"invalid module root '{raw}'")


def component_id_to_schema_name(component_id: ComponentId) -> str:
    """Derive canonical Postgres schema name from component id."""
    validate_component_id(component_id)
    return str(component_id)


_DEFAULT_REGISTRY = ManifestRegistry()


def register_component(manifest: ComponentManifest) -> ComponentManifest:
    """Register a manifest in the default process-local registry."""
    _DEFAULT_REGISTRY.register_component(manifest)
    return manifest


def get_registry() -> ManifestRegistry:
    return _DEFAULT_REGISTRY
