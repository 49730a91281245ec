"""EC2 instance types as the provider sees them, and their discovery."""

from __future__ import annotations

import logging
import threading
import time
from fractions import Fraction
from typing import Callable, Iterable, List, Optional

from cachetools import TTLCache

from .ami import CACHE_TTL_SECONDS
from .aws_constraints import AWS_TO_KUBE_ARCHITECTURES
from .cloudprovider import RESOURCE_CPU, RESOURCE_MEMORY, InstanceType, Quantity, ResourceList
from .ec2 import EC2API, InstanceTypeInfo

# The VM is assumed to leave at least this share of memory to the node.
EC2_VM_AVAILABLE_MEMORY_FACTOR = 0.925

ALL_INSTANCE_TYPES_KEY = "all"

_OPERATING_SYSTEM_LINUX = "linux"
_USEFUL_PREFIXES = (
    "m", "c", "r", "a",  # standard
    "t3", "t4",  # burstable
    "p", "inf", "g",  # accelerators
)
# (start, end, share) of CPU millis reserved for the kubelet in each band.
_CPU_RESERVED_BANDS = (
    (0, 1000, 0.06),
    (1000, 2000, 0.01),
    (2000, 4000, 0.005),
    (4000, 1 << 31, 0.0025),
)

_log = logging.getLogger(__name__)


def _count(value: int) -> Quantity:
    return Quantity.parse(str(value))


class AWSInstanceType(InstanceType):
    """An EC2 instance type and the zones in which it is offered."""

    def __init__(self, info: InstanceTypeInfo, zone_options: Optional[Iterable[str]] = None) -> None:
        self.info = info
        self.zone_options: List[str] = list(zone_options or [])

    def __repr__(self) -> str:
        return f"AWSInstanceType({self.info.instance_type!r}, zones={self.zone_options!r})"

    def name(self) -> str:
        return self.info.instance_type or ""

    def zones(self) -> List[str]:
        return self.zone_options

    def architectures(self) -> List[str]:
        return [AWS_TO_KUBE_ARCHITECTURES.get(arch, "") for arch in self.info.supported_architectures]

    def operating_systems(self) -> List[str]:
        return [_OPERATING_SYSTEM_LINUX]

    def cpu(self) -> Quantity:
        return _count(self.info.default_vcpus)

    def memory(self) -> Quantity:
        usable = int(self.info.memory_mib * EC2_VM_AVAILABLE_MEMORY_FACTOR)
        return Quantity.parse(f"{usable}Mi")

    def pods(self) -> Quantity:
        # max ENIs * (IPv4 addresses per ENI - 1) + 2
        network = self.info
        return _count(
            network.maximum_network_interfaces * (network.ipv4_addresses_per_interface - 1) + 2
        )

    def _gpus_of(self, manufacturer: str) -> Quantity:
        gpus = self.info.gpus
        if not gpus:
            return _count(0)
        # The manufacturer of the first device decides for the whole list.
        if gpus[0].manufacturer != manufacturer:
            return _count(0)
        return _count(sum(gpu.count for gpu in gpus))

    def nvidia_gpus(self) -> Quantity:
        return self._gpus_of("NVIDIA")

    def amd_gpus(self) -> Quantity:
        return self._gpus_of("AMD")

    def aws_neurons(self) -> Quantity:
        accelerators = self.info.inference_accelerators or []
        return _count(sum(accelerator.count for accelerator in accelerators))

    def overhead(self) -> ResourceList:
        """System and kubelet reservations for a node of this type."""
        cpu_milli = self.cpu().milli_value()
        reserved_milli = 100  # system-reserved
        for start, end, share in _CPU_RESERVED_BANDS:
            if cpu_milli >= start:
                span = (cpu_milli if cpu_milli < end else end) - start
                reserved_milli += int(float(span) * share)
        # kube-reserved + system-reserved + eviction threshold
        memory_mi = (11 * self.pods().value() + 255) + 100 + 100
        return {
            RESOURCE_CPU: Quantity(Fraction(reserved_milli, 1000)),
            RESOURCE_MEMORY: Quantity.parse(f"{memory_mi}Mi"),
        }


def _is_useful(info: InstanceTypeInfo) -> bool:
    if info.has_fpga or info.bare_metal:
        return False
    return (info.instance_type or "").startswith(_USEFUL_PREFIXES)


class InstanceTypeProvider:
    """Lists the instance types that can serve as nodes, with caching."""

    def __init__(
        self,
        ec2api: EC2API,
        *,
        ttl: float = CACHE_TTL_SECONDS,
        timer: Callable[[], float] = time.monotonic,
    ) -> None:
        self._ec2api = ec2api
        self._cache: TTLCache = TTLCache(maxsize=1, ttl=ttl, timer=timer)
        self._lock = threading.Lock()

    def get(self) -> List[InstanceType]:
        """Instance types together with the zones offering them."""
        with self._lock:
            cached = self._cache.get(ALL_INSTANCE_TYPES_KEY)
        if cached is not None:
            return list(cached)
        instance_types = self._discover()
        with self._lock:
            self._cache[ALL_INSTANCE_TYPES_KEY] = instance_types
        _log.debug("Discovered %d EC2 instance types", len(instance_types))
        return list(instance_types)

    def _discover(self) -> List[InstanceType]:
        try:
            infos = self._ec2api.describe_instance_types({"supported-virtualization-type": ["hvm"]})
            instance_types = [AWSInstanceType(info) for info in infos if _is_useful(info)]
        except Exception as exc:
            raise RuntimeError(
                "retrieving all instance types, fetching instance types using "
                f"ec2.DescribeInstanceTypes, {exc}"
            ) from exc
        try:
            offerings = list(self._ec2api.describe_instance_type_offerings("availability-zone"))
        except Exception as exc:
            raise RuntimeError(f"describing instance type zone offerings, {exc}") from exc
        for offering in offerings:
            for instance_type in instance_types:
                if instance_type.name() == (offering.instance_type or ""):
                    instance_type.zone_options.append(offering.location or "")
        return list(instance_types)