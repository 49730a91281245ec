"""An in-memory cloud provider for tests and local runs."""

from __future__ import annotations

import random
import threading
from concurrent.futures import Future
from typing import Any, Callable, List, Optional, Sequence

from .cloudprovider import (
    RESOURCE_CPU,
    RESOURCE_MEMORY,
    RESOURCE_PODS,
    CloudProvider,
    InstanceType,
    Node,
    Packing,
    Quantity,
    ResourceList,
)
from .provisioner import Constraints, Provisioner, ProvisionerSpec
from .validation import FieldError

_ADJECTIVES = (
    "Amber", "Brave", "Crimson", "Dapper", "Eager", "Fuzzy", "Gentle", "Hollow",
    "Jolly", "Lucky", "Misty", "Noble", "Quiet", "Rusty", "Silver", "Wobbly",
)
_NOUNS = (
    "badger", "cloud", "falcon", "gnome", "heron", "lantern", "marble", "otter",
    "pebble", "quill", "raven", "spark", "thistle", "walrus", "willow", "zephyr",
)


def _silly_name() -> str:
    return random.choice(_ADJECTIVES) + random.choice(_NOUNS)


def _or_default(quantity: Optional[Quantity], default: str) -> Quantity:
    if quantity is None or quantity.is_zero():
        return Quantity.parse(default)
    return quantity


class FakeInstanceType(InstanceType):
    """An instance type with fixed properties and sensible defaults."""

    def __init__(
        self,
        name: str,
        *,
        zones: Optional[Sequence[str]] = None,
        architectures: Optional[Sequence[str]] = None,
        operating_systems: Optional[Sequence[str]] = None,
        cpu: Optional[Quantity] = None,
        memory: Optional[Quantity] = None,
        pods: Optional[Quantity] = None,
        nvidia_gpus: Optional[Quantity] = None,
        amd_gpus: Optional[Quantity] = None,
        aws_neurons: Optional[Quantity] = None,
    ) -> None:
        self._name = name
        self._zones = list(zones) if zones else ["test-zone-1", "test-zone-2"]
        self._architectures = list(architectures) if architectures else ["amd64"]
        self._operating_systems = list(operating_systems) if operating_systems else ["linux"]
        self._cpu = _or_default(cpu, "4")
        self._memory = _or_default(memory, "4Gi")
        self._pods = _or_default(pods, "5")
        self._nvidia_gpus = nvidia_gpus or Quantity()
        self._amd_gpus = amd_gpus or Quantity()
        self._aws_neurons = aws_neurons or Quantity()

    def __repr__(self) -> str:
        return f"FakeInstanceType({self._name!r})"

    def name(self) -> str:
        return self._name

    def zones(self) -> List[str]:
        return self._zones

    def architectures(self) -> List[str]:
        return self._architectures

    def operating_systems(self) -> List[str]:
        return self._operating_systems

    def cpu(self) -> Quantity:
        return self._cpu

    def memory(self) -> Quantity:
        return self._memory

    def pods(self) -> Quantity:
        return self._pods

    def nvidia_gpus(self) -> Quantity:
        return self._nvidia_gpus

    def amd_gpus(self) -> Quantity:
        return self._amd_gpus

    def aws_neurons(self) -> Quantity:
        return self._aws_neurons

    def overhead(self) -> ResourceList:
        """Fake nodes reserve nothing."""
        return {}


class FakeCloudProvider(CloudProvider):
    """Creates nodes instantly from the first viable instance type and zone."""

    def create(
        self,
        provisioner: Provisioner,
        packing: Packing,
        bind: Callable[[Node], Any],
    ) -> "Future[Any]":
        name = _silly_name().lower()
        constraints = packing.constraints or Constraints()
        instance = packing.instance_type_options[0]
        zones = instance.zones()
        if constraints.zones:
            offered = set(instance.zones())
            zones = [zone for zone in constraints.zones if zone in offered]
        if not zones:
            raise ValueError(f"instance type {instance.name()} is not offered in any allowed zone")
        node = Node(
            name=name,
            labels=dict(constraints.labels),
            provider_id=f"fake:///{name}/{zones[0]}",
            taints=list(constraints.taints),
            architecture=instance.architectures()[0],
            operating_system=instance.operating_systems()[0],
            allocatable={
                RESOURCE_PODS: instance.pods(),
                RESOURCE_CPU: instance.cpu(),
                RESOURCE_MEMORY: instance.memory(),
            },
        )
        future: "Future[Any]" = Future()

        def run() -> None:
            try:
                future.set_result(bind(node))
            except Exception as exc:  # handed to the caller through the future
                future.set_exception(exc)

        threading.Thread(target=run, daemon=True).start()
        return future

    def get_instance_types(self) -> List[InstanceType]:
        return [
            FakeInstanceType("default-instance-type"),
            FakeInstanceType("nvidia-gpu-instance-type", nvidia_gpus=Quantity.parse("2")),
            FakeInstanceType("amd-gpu-instance-type", amd_gpus=Quantity.parse("2")),
            FakeInstanceType("aws-neuron-instance-type", aws_neurons=Quantity.parse("2")),
            FakeInstanceType("windows-instance-type", operating_systems=["windows"]),
            FakeInstanceType("arm-instance-type", architectures=["arm64"]),
        ]

    def validate_spec(self, spec: ProvisionerSpec) -> Optional[FieldError]:
        return None

    def validate_constraints(self, constraints: Constraints) -> Optional[FieldError]:
        return None

    def terminate(self, node: Node) -> None:
        return None