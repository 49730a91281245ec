"""EC2 and SSM resource records and the client interfaces used to reach them."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Protocol

Filters = Dict[str, List[str]]

FLEET_TYPE_INSTANT = "instant"
FLEET_ON_DEMAND_LOWEST_PRICE = "lowest-price"
SPOT_CAPACITY_OPTIMIZED_PRIORITIZED = "capacity-optimized-prioritized"
RESOURCE_TYPE_INSTANCE = "instance"


@dataclass
class Tag:
    key: Optional[str] = None
    value: Optional[str] = None


@dataclass
class Subnet:
    subnet_id: str = ""
    availability_zone: Optional[str] = None
    tags: List[Tag] = field(default_factory=list)


@dataclass
class SecurityGroup:
    group_id: str = ""
    tags: List[Tag] = field(default_factory=list)


@dataclass
class GpuDeviceInfo:
    manufacturer: str = ""
    count: int = 0


@dataclass
class InferenceDeviceInfo:
    manufacturer: str = ""
    count: int = 0


@dataclass
class InstanceTypeInfo:
    """What EC2 reports about an instance type."""

    instance_type: str = ""
    supported_usage_classes: List[str] = field(default_factory=list)
    supported_virtualization_types: List[str] = field(default_factory=list)
    burstable_performance_supported: bool = False
    bare_metal: bool = False
    supported_architectures: List[str] = field(default_factory=list)
    default_vcpus: int = 0
    memory_mib: int = 0
    maximum_network_interfaces: int = 0
    ipv4_addresses_per_interface: int = 0
    # None when the type has no GPUs or accelerators at all.
    gpus: Optional[List[GpuDeviceInfo]] = None
    inference_accelerators: Optional[List[InferenceDeviceInfo]] = None
    has_fpga: bool = False


@dataclass
class InstanceTypeOffering:
    instance_type: str = ""
    location: str = ""


@dataclass
class AvailabilityZone:
    zone_name: str = ""
    zone_id: str = ""


@dataclass
class Instance:
    instance_id: str = ""
    instance_type: str = ""
    availability_zone: str = ""
    private_dns_name: str = ""
    architecture: str = ""


@dataclass
class LaunchTemplateRecord:
    launch_template_name: str = ""
    launch_template_id: str = ""


@dataclass
class FleetOverride:
    """One {instance type, subnet} option of a fleet request."""

    instance_type: str = ""
    subnet_id: str = ""
    priority: Optional[float] = None


@dataclass
class CreateFleetRequest:
    """An instant fleet request for a single instance."""

    default_target_capacity_type: str = ""
    launch_template_id: Optional[str] = None
    launch_template_name: Optional[str] = None
    launch_template_version: Optional[str] = None
    overrides: List[FleetOverride] = field(default_factory=list)
    type: str = FLEET_TYPE_INSTANT
    total_target_capacity: int = 1
    on_demand_allocation_strategy: str = FLEET_ON_DEMAND_LOWEST_PRICE
    spot_allocation_strategy: str = SPOT_CAPACITY_OPTIMIZED_PRIORITIZED


@dataclass
class FleetError:
    error_code: str = ""
    error_message: str = ""


@dataclass
class CreateFleetResult:
    """Launched instances, one id list per launch, and any fleet errors."""

    instances: List[List[str]] = field(default_factory=list)
    errors: List[FleetError] = field(default_factory=list)


@dataclass
class CreateLaunchTemplateRequest:
    launch_template_name: str = ""
    iam_instance_profile_name: str = ""
    tags: List[Tag] = field(default_factory=list)
    security_group_ids: List[str] = field(default_factory=list)
    user_data: str = ""
    image_id: str = ""
    resource_type: str = RESOURCE_TYPE_INSTANCE


class AWSError(Exception):
    """An error reported by an AWS API, identified by its code."""

    def __init__(self, code: str, message: str = "") -> None:
        super().__init__(f"{code}: {message}" if message else code)
        self.code = code
        self.message = message


class EC2API(Protocol):
    """The EC2 operations the provider relies on."""

    def create_fleet(self, request: CreateFleetRequest) -> CreateFleetResult: ...

    def create_launch_template(self, request: CreateLaunchTemplateRequest) -> LaunchTemplateRecord: ...

    def describe_instances(self, instance_ids: List[str]) -> List[List[Instance]]:
        """Reservations, each a list of instances."""
        ...

    def describe_launch_templates(self, names: List[str]) -> List[LaunchTemplateRecord]:
        """Raises AWSError with a not-found code when none match."""
        ...

    def describe_subnets(self, filters: Filters) -> List[Subnet]: ...

    def describe_security_groups(self, filters: Filters) -> List[SecurityGroup]: ...

    def describe_availability_zones(self) -> List[AvailabilityZone]: ...

    def describe_instance_types(self, filters: Filters) -> Iterable[InstanceTypeInfo]: ...

    def describe_instance_type_offerings(self, location_type: str) -> Iterable[InstanceTypeOffering]: ...

    def terminate_instances(self, instance_ids: List[str]) -> None: ...


class SSMAPI(Protocol):
    """The parameter store operation used to discover images."""

    def get_parameter(self, name: str) -> str: ...