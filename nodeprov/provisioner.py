"""Provisioner resource: specification, constraints and status."""

from __future__ import annotations

import copy
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List, Optional

from .cloudprovider import Pod, Taint

GROUP = "karpenter.sh"
VERSION = "v1alpha3"
API_VERSION = f"{GROUP}/{VERSION}"

# Condition type implemented by all resources: the controller can act.
CONDITION_ACTIVE = "Active"

ARCHITECTURE_AMD64 = "amd64"
ARCHITECTURE_ARM64 = "arm64"
OPERATING_SYSTEM_LINUX = "linux"

ARCHITECTURE_LABEL_KEY = "kubernetes.io/arch"
OPERATING_SYSTEM_LABEL_KEY = "kubernetes.io/os"

PROVISIONER_NAME_LABEL_KEY = GROUP + "/provisioner-name"
PROVISIONER_UNDERUTILIZED_LABEL_KEY = GROUP + "/underutilized"

DO_NOT_EVICT_POD_ANNOTATION = GROUP + "/do-not-evict"
PROVISIONER_TTL_AFTER_EMPTY_KEY = GROUP + "/ttl-after-empty"

ZONE_LABEL_KEY = "topology.kubernetes.io/zone"
INSTANCE_TYPE_LABEL_KEY = "node.kubernetes.io/instance-type"

KARPENTER_FINALIZER = GROUP + "/termination"

DEFAULT_PROVISIONER_NAME = "default"


@dataclass
class Cluster:
    """The cluster that launched nodes connect to."""

    endpoint: str = ""
    # None: load from in-cluster config at runtime; "": use no bundle.
    ca_bundle: Optional[str] = None
    name: Optional[str] = None


@dataclass
class Constraints:
    """Constraints applied to every node a provisioner launches."""

    taints: List[Taint] = field(default_factory=list)
    labels: Dict[str, str] = field(default_factory=dict)
    zones: List[str] = field(default_factory=list)
    instance_types: List[str] = field(default_factory=list)
    architecture: Optional[str] = None
    operating_system: Optional[str] = None

    def with_label(self, key: str, value: str) -> "Constraints":
        """Add a label, replacing the label mapping; returns self."""
        self.labels = {**self.labels, key: value}
        return self

    def with_overrides(self, pod: Pod) -> "Constraints":
        """New constraints with the pod's node selector taking precedence."""
        selector = pod.node_selector
        return Constraints(
            taints=list(self.taints),
            labels={**self.labels, **selector},
            zones=[selector[ZONE_LABEL_KEY]] if ZONE_LABEL_KEY in selector else list(self.zones),
            instance_types=(
                [selector[INSTANCE_TYPE_LABEL_KEY]]
                if INSTANCE_TYPE_LABEL_KEY in selector
                else list(self.instance_types)
            ),
            architecture=selector.get(
                ARCHITECTURE_LABEL_KEY, self.architecture or ARCHITECTURE_AMD64
            ),
            operating_system=selector.get(
                OPERATING_SYSTEM_LABEL_KEY, self.operating_system or OPERATING_SYSTEM_LINUX
            ),
        )


@dataclass
class ProvisionerSpec(Constraints):
    """Top level provisioner specification; its constraints are inline."""

    cluster: Cluster = field(default_factory=Cluster)
    ttl_seconds_after_empty: Optional[int] = None
    ttl_seconds_until_expired: Optional[int] = None


@dataclass
class Condition:
    """One observed condition of a resource."""

    type: str
    status: str = "Unknown"
    reason: str = ""
    message: str = ""
    last_transition_time: Optional[datetime] = None


@dataclass
class ProvisionerStatus:
    """Observed state of a provisioner."""

    last_scale_time: Optional[datetime] = None
    conditions: List[Condition] = field(default_factory=list)


@dataclass
class Provisioner:
    """A provisioner resource with its metadata."""

    name: str = ""
    namespace: str = ""
    labels: Dict[str, str] = field(default_factory=dict)
    annotations: Dict[str, str] = field(default_factory=dict)
    spec: ProvisionerSpec = field(default_factory=ProvisionerSpec)
    status: ProvisionerStatus = field(default_factory=ProvisionerStatus)

    def deep_copy(self) -> "Provisioner":
        """A fully independent copy."""
        return copy.deepcopy(self)


@dataclass
class ProvisionerList:
    """A list of provisioners."""

    items: List[Provisioner] = field(default_factory=list)