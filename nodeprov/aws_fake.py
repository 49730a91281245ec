"""In-memory stand-ins for the EC2 and SSM APIs, for tests and local runs."""

from __future__ import annotations

import random
import secrets
import threading
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional

from .ec2 import (
    AWSError,
    AvailabilityZone,
    CreateFleetRequest,
    CreateFleetResult,
    CreateLaunchTemplateRequest,
    Filters,
    GpuDeviceInfo,
    InferenceDeviceInfo,
    Instance,
    InstanceTypeInfo,
    InstanceTypeOffering,
    LaunchTemplateRecord,
    SecurityGroup,
    Subnet,
    Tag,
)
from .provisioner import ARCHITECTURE_ARM64

FAKE_LAUNCH_TEMPLATE_ID = "test-launch-template-id"
FAKE_AMI_ID = "test-ami-id"
FAKE_INSTANCE_ZONE = "test-zone-1a"
LAUNCH_TEMPLATE_NOT_FOUND = "InvalidLaunchTemplateName.NotFoundException"
INSTANCE_NOT_FOUND = "InvalidInstanceID.NotFound"


def _random_ipv4() -> str:
    return ".".join(str(random.randint(1, 254)) for _ in range(4))


def _default_subnets() -> List[Subnet]:
    return [
        Subnet("test-subnet-1", "test-zone-1a", [Tag("Name", "test-subnet-1")]),
        Subnet("test-subnet-2", "test-zone-1b", [Tag("Name", "test-subnet-2")]),
        Subnet("test-subnet-3", "test-zone-1c", [Tag("Name", "test-subnet-3"), Tag("TestTag")]),
    ]


def _default_security_groups() -> List[SecurityGroup]:
    return [
        SecurityGroup("test-security-group-1", [Tag("Name", "test-security-group-1")]),
        SecurityGroup("test-security-group-2", [Tag("Name", "test-security-group-2")]),
        SecurityGroup(
            "test-security-group-3", [Tag("Name", "test-security-group-3"), Tag("TestTag")]
        ),
    ]


def _default_availability_zones() -> List[AvailabilityZone]:
    return [
        AvailabilityZone("test-zone-1a", "testzone1a"),
        AvailabilityZone("test-zone-1b", "testzone1b"),
        AvailabilityZone("test-zone-1c", "testzone1c"),
    ]


def _instance_type(
    name: str,
    architecture: str,
    vcpus: int,
    memory_mib: int,
    enis: int,
    ips_per_eni: int,
    gpus: Optional[List[GpuDeviceInfo]] = None,
    inference_accelerators: Optional[List[InferenceDeviceInfo]] = None,
) -> InstanceTypeInfo:
    return InstanceTypeInfo(
        instance_type=name,
        supported_usage_classes=["on-demand"],
        supported_virtualization_types=["hvm"],
        burstable_performance_supported=False,
        bare_metal=False,
        supported_architectures=[architecture],
        default_vcpus=vcpus,
        memory_mib=memory_mib,
        maximum_network_interfaces=enis,
        ipv4_addresses_per_interface=ips_per_eni,
        gpus=gpus,
        inference_accelerators=inference_accelerators,
    )


def _default_instance_types() -> List[InstanceTypeInfo]:
    return [
        _instance_type("m5.large", "x86_64", 2, 8 * 1024, 3, 30),
        _instance_type("m5.xlarge", "x86_64", 4, 16 * 1024, 4, 60),
        _instance_type(
            "p3.8xlarge", "x86_64", 32, 249856, 4, 60,
            gpus=[GpuDeviceInfo(manufacturer="NVIDIA", count=4)],
        ),
        _instance_type("c6g.large", ARCHITECTURE_ARM64, 2, 2 * 1024, 4, 60),
        _instance_type(
            "inf1.6xlarge", "x86_64", 24, 49152, 4, 60,
            inference_accelerators=[InferenceDeviceInfo(manufacturer="AWS", count=4)],
        ),
    ]


def _default_offerings() -> List[InstanceTypeOffering]:
    return [
        InstanceTypeOffering("m5.large", "test-zone-1a"),
        InstanceTypeOffering("m5.large", "test-zone-1b"),
        InstanceTypeOffering("m5.large", "test-zone-1c"),
        InstanceTypeOffering("m5.xlarge", "test-zone-1a"),
        InstanceTypeOffering("m5.2xlarge", "test-zone-1a"),
        InstanceTypeOffering("m5.4xlarge", "test-zone-1a"),
        InstanceTypeOffering("m5.8xlarge", "test-zone-1a"),
        InstanceTypeOffering("p3.8xlarge", "test-zone-1a"),
        InstanceTypeOffering("inf1.6xlarge", "test-zone-1a"),
    ]


class FakeEC2API:
    """An EC2 client that keeps state in memory.

    The ``*_output`` attributes override the canned answers when set. Call
    ``reset`` between tests so that they do not affect each other.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self.reset()

    def reset(self) -> None:
        """Forget overrides, recorded calls, instances and launch templates."""
        with self._lock:
            self.describe_instances_output: Optional[List[List[Instance]]] = None
            self.describe_launch_templates_output: Optional[List[LaunchTemplateRecord]] = None
            self.describe_subnets_output: Optional[List[Subnet]] = None
            self.describe_security_groups_output: Optional[List[SecurityGroup]] = None
            self.describe_instance_types_output: Optional[List[InstanceTypeInfo]] = None
            self.describe_instance_type_offerings_output: Optional[List[InstanceTypeOffering]] = None
            self.describe_availability_zones_output: Optional[List[AvailabilityZone]] = None
            self.called_with_create_fleet_input: List[CreateFleetRequest] = []
            self.called_with_create_launch_template_input: List[CreateLaunchTemplateRequest] = []
            self.instances: Dict[str, Instance] = {}
            self.launch_templates: Dict[str, LaunchTemplateRecord] = {}

    def create_fleet(self, request: CreateFleetRequest) -> CreateFleetResult:
        """Launch one instance of the first override's type."""
        with self._lock:
            self.called_with_create_fleet_input.append(request)
        if request.launch_template_id is None and request.launch_template_name is None:
            raise ValueError("missing launch template id or name")
        instance = Instance(
            instance_id=f"i-{secrets.token_hex(8)}",
            instance_type=request.overrides[0].instance_type,
            availability_zone=FAKE_INSTANCE_ZONE,
            private_dns_name=_random_ipv4(),
        )
        with self._lock:
            self.instances[instance.instance_id] = instance
        return CreateFleetResult(instances=[[instance.instance_id]])

    def create_launch_template(self, request: CreateLaunchTemplateRequest) -> LaunchTemplateRecord:
        with self._lock:
            self.called_with_create_launch_template_input.append(request)
            record = LaunchTemplateRecord(
                launch_template_name=request.launch_template_name,
                launch_template_id=FAKE_LAUNCH_TEMPLATE_ID,
            )
            self.launch_templates[request.launch_template_name] = record
        return record

    def describe_instances(self, instance_ids: List[str]) -> List[List[Instance]]:
        if self.describe_instances_output is not None:
            return self.describe_instances_output
        with self._lock:
            instance = self.instances.get(instance_ids[0])
        if instance is None:
            raise AWSError(INSTANCE_NOT_FOUND, f"instance {instance_ids[0]} not found")
        return [[instance]]

    def describe_launch_templates(self, names: List[str]) -> List[LaunchTemplateRecord]:
        if self.describe_launch_templates_output is not None:
            return self.describe_launch_templates_output
        wanted = set(names)
        with self._lock:
            found = [
                record
                for record in self.launch_templates.values()
                if record.launch_template_name in wanted
            ]
        if not found:
            raise AWSError(LAUNCH_TEMPLATE_NOT_FOUND, "not found")
        return found

    def describe_subnets(self, filters: Filters) -> List[Subnet]:
        if self.describe_subnets_output is not None:
            return self.describe_subnets_output
        return _default_subnets()

    def describe_security_groups(self, filters: Filters) -> List[SecurityGroup]:
        if self.describe_security_groups_output is not None:
            return self.describe_security_groups_output
        return _default_security_groups()

    def describe_availability_zones(self) -> List[AvailabilityZone]:
        if self.describe_availability_zones_output is not None:
            return self.describe_availability_zones_output
        return _default_availability_zones()

    def describe_instance_types(self, filters: Filters) -> Iterable[InstanceTypeInfo]:
        if self.describe_instance_types_output is not None:
            return list(self.describe_instance_types_output)
        return _default_instance_types()

    def describe_instance_type_offerings(self, location_type: str) -> Iterable[InstanceTypeOffering]:
        if self.describe_instance_type_offerings_output is not None:
            return list(self.describe_instance_type_offerings_output)
        return _default_offerings()

    def terminate_instances(self, instance_ids: List[str]) -> None:
        """Forget the given instances; unknown ids are ignored."""
        with self._lock:
            for instance_id in instance_ids:
                self.instances.pop(instance_id, None)


@dataclass
class FakeSSMAPI:
    """A parameter store that answers every query with one image id."""

    parameter_value: Optional[str] = None
    want_err: Optional[Exception] = None

    def get_parameter(self, name: str) -> str:
        if self.want_err is not None:
            raise self.want_err
        if self.parameter_value is not None:
            return self.parameter_value
        return FAKE_AMI_ID