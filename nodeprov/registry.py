"""Registration of a cloud provider's capabilities with validation."""

from __future__ import annotations

from typing import Dict, Optional

from .cloudprovider import CloudProvider, Options
from .fake_provider import FakeCloudProvider
from .validation import ValidationRegistry


def register(cloud_provider: CloudProvider, registry: ValidationRegistry) -> None:
    """Record supported instance types, zones, architectures and operating
    systems, and install the provider's validation hooks.

    Meant to be called once at start-up for each registry.
    """
    try:
        instance_types = cloud_provider.get_instance_types()
    except Exception as exc:
        raise RuntimeError(f"Failed to retrieve instance types, {exc}") from exc
    zones: Dict[str, None] = {}
    architectures: Dict[str, None] = {}
    operating_systems: Dict[str, None] = {}
    for instance_type in instance_types:
        registry.supported_instance_types.append(instance_type.name())
        zones.update(dict.fromkeys(instance_type.zones()))
        architectures.update(dict.fromkeys(instance_type.architectures()))
        operating_systems.update(dict.fromkeys(instance_type.operating_systems()))
    registry.supported_zones.extend(zones)
    registry.supported_architectures.extend(architectures)
    registry.supported_operating_systems.extend(operating_systems)
    registry.constraints_validation_hook = cloud_provider.validate_constraints
    registry.spec_validation_hook = cloud_provider.validate_spec


def new_cloud_provider(
    options: Optional[Options], registry: ValidationRegistry
) -> CloudProvider:
    """Build the default cloud provider and register it."""
    cloud_provider = FakeCloudProvider()
    register(cloud_provider, registry)
    return cloud_provider