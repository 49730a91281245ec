"""Cloud provider contract and the core resource types it exchanges."""

from __future__ import annotations

import math
import re
from abc import ABC, abstractmethod
from concurrent.futures import Future
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from fractions import Fraction
from typing import TYPE_CHECKING, Any, Callable, Dict, List, Optional, Union

if TYPE_CHECKING:
    from .provisioner import Constraints, Provisioner, ProvisionerSpec
    from .validation import FieldError

RESOURCE_CPU = "cpu"
RESOURCE_MEMORY = "memory"
RESOURCE_PODS = "pods"

TAINT_EFFECT_NO_SCHEDULE = "NoSchedule"
TAINT_EFFECT_PREFER_NO_SCHEDULE = "PreferNoSchedule"
TAINT_EFFECT_NO_EXECUTE = "NoExecute"

_SUFFIXES: Dict[str, Fraction] = {
    "": Fraction(1),
    "n": Fraction(1, 10**9),
    "u": Fraction(1, 10**6),
    "m": Fraction(1, 10**3),
    "k": Fraction(10**3),
    "M": Fraction(10**6),
    "G": Fraction(10**9),
    "T": Fraction(10**12),
    "P": Fraction(10**15),
    "E": Fraction(10**18),
    "Ki": Fraction(2**10),
    "Mi": Fraction(2**20),
    "Gi": Fraction(2**30),
    "Ti": Fraction(2**40),
    "Pi": Fraction(2**50),
    "Ei": Fraction(2**60),
}
_NUMBER = re.compile(r"([+-]?(?:\d+(?:\.\d*)?|\.\d+))(.*)", re.DOTALL)
_EXPONENT = re.compile(r"[eE]([+-]?\d+)")


@dataclass(frozen=True, order=True)
class Quantity:
    """An exact resource amount such as ``4``, ``100m`` or ``4Gi``."""

    amount: Fraction = Fraction(0)

    def __post_init__(self) -> None:
        object.__setattr__(self, "amount", Fraction(self.amount))

    @classmethod
    def parse(cls, text: str) -> "Quantity":
        """Parse a quantity string; raises ValueError when it is malformed."""
        match = _NUMBER.fullmatch(text)
        if match is None:
            raise ValueError(f"invalid quantity {text!r}")
        number, suffix = match.groups()
        try:
            base = Fraction(Decimal(number))
        except InvalidOperation as exc:
            raise ValueError(f"invalid quantity {text!r}") from exc
        if suffix in _SUFFIXES:
            return cls(base * _SUFFIXES[suffix])
        exponent = _EXPONENT.fullmatch(suffix)
        if exponent is None:
            raise ValueError(f"invalid quantity suffix in {text!r}")
        return cls(base * Fraction(10) ** int(exponent.group(1)))

    def value(self) -> int:
        """The amount rounded up to a whole unit."""
        return math.ceil(self.amount)

    def milli_value(self) -> int:
        """The amount in thousandths, rounded up."""
        return math.ceil(self.amount * 1000)

    def is_zero(self) -> bool:
        return self.amount == 0

    def __add__(self, other: "Quantity") -> "Quantity":
        if not isinstance(other, Quantity):
            return NotImplemented
        return Quantity(self.amount + other.amount)

    def __sub__(self, other: "Quantity") -> "Quantity":
        if not isinstance(other, Quantity):
            return NotImplemented
        return Quantity(self.amount - other.amount)

    def __str__(self) -> str:
        if self.amount.denominator == 1:
            return str(self.amount.numerator)
        milli = self.amount * 1000
        if milli.denominator == 1:
            return f"{milli.numerator}m"
        return f"{math.ceil(self.amount * 10**9)}n"


ResourceList = Dict[str, Quantity]


@dataclass
class Taint:
    """A node taint; pods without a matching toleration are repelled."""

    key: str = ""
    value: str = ""
    effect: str = ""


@dataclass
class Pod:
    """The parts of a pod that provisioning looks at."""

    name: str = ""
    namespace: str = "default"
    node_selector: Dict[str, str] = field(default_factory=dict)
    node_name: str = ""
    requests: ResourceList = field(default_factory=dict)
    limits: ResourceList = field(default_factory=dict)


@dataclass
class Node:
    """A cluster node as created by a cloud provider."""

    name: str = ""
    labels: Dict[str, str] = field(default_factory=dict)
    provider_id: str = ""
    taints: List[Taint] = field(default_factory=list)
    allocatable: ResourceList = field(default_factory=dict)
    architecture: str = ""
    operating_system: str = ""


class InstanceType(ABC):
    """The properties of a potential node."""

    @abstractmethod
    def name(self) -> str:
        """The instance type's name."""

    @abstractmethod
    def zones(self) -> List[str]:
        """Zones in which the instance type is offered."""

    @abstractmethod
    def architectures(self) -> List[str]:
        """Supported CPU architectures."""

    @abstractmethod
    def operating_systems(self) -> List[str]:
        """Supported operating systems."""

    @abstractmethod
    def cpu(self) -> Quantity:
        """Number of CPUs."""

    @abstractmethod
    def memory(self) -> Quantity:
        """Usable memory."""

    @abstractmethod
    def pods(self) -> Quantity:
        """Maximum number of pods."""

    @abstractmethod
    def nvidia_gpus(self) -> Quantity:
        """Number of NVIDIA GPUs."""

    @abstractmethod
    def amd_gpus(self) -> Quantity:
        """Number of AMD GPUs."""

    @abstractmethod
    def aws_neurons(self) -> Quantity:
        """Number of inference accelerators."""

    @abstractmethod
    def overhead(self) -> ResourceList:
        """Resources reserved by the system on such a node."""


class CloudProvider(ABC):
    """Implemented by cloud providers to support provisioning."""

    @abstractmethod
    def create(
        self,
        provisioner: "Provisioner",
        packing: "Packing",
        bind: Callable[[Node], Any],
    ) -> "Future[Any]":
        """Create capacity for a packing and call ``bind`` with the node.

        The returned future resolves once binding is done, or carries the error.
        """

    @abstractmethod
    def get_instance_types(self) -> List[InstanceType]:
        """Instance types the provider can launch."""

    @abstractmethod
    def validate_spec(self, spec: "ProvisionerSpec") -> Optional["FieldError"]:
        """Provider specific spec validation; constraints are checked separately."""

    @abstractmethod
    def validate_constraints(self, constraints: "Constraints") -> Optional["FieldError"]:
        """Provider specific constraint validation."""

    @abstractmethod
    def terminate(self, node: Node) -> None:
        """Terminate the machine behind a node."""


@dataclass
class Packing:
    """Equivalently schedulable pods and the instance types they fit on."""

    pods: List[Pod] = field(default_factory=list)
    instance_type_options: List[InstanceType] = field(default_factory=list)
    constraints: Optional["Constraints"] = None


@dataclass
class PackedNode:
    """A node and the pods that should be bound to it."""

    node: Node
    pods: List[Pod] = field(default_factory=list)


@dataclass
class Options:
    """Handed to cloud provider factories."""

    client_set: Union[Any, None] = None