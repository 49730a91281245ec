"""The AWS cloud provider: launches, lists and terminates EC2 capacity."""

from __future__ import annotations

import threading
import time
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Callable, List, Optional

from .ami import CACHE_TTL_SECONDS, AMIProvider, ServerVersion
from .aws_constraints import AWSConstraints
from .aws_instancetypes import InstanceTypeProvider
from .cloudprovider import CloudProvider, InstanceType, Node, Packing
from .ec2 import EC2API, SSMAPI
from .instance import InstanceProvider
from .launchtemplate import LaunchTemplateProvider
from .node import NodeFactory
from .provisioner import (
    ARCHITECTURE_AMD64,
    ARCHITECTURE_ARM64,
    OPERATING_SYSTEM_LINUX,
    Constraints,
    Provisioner,
    ProvisionerSpec,
)
from .securitygroups import SecurityGroupProvider
from .subnets import SubnetProvider
from .validation import FieldError

# Request rate and burst allowed for fleet creation.
CREATION_QPS = 2
CREATION_BURST = 100

SUPPORTED_OPERATING_SYSTEMS = (OPERATING_SYSTEM_LINUX,)
SUPPORTED_ARCHITECTURES = (ARCHITECTURE_AMD64, ARCHITECTURE_ARM64)

_WORKERS = 16


class _RateLimiter:
    """A token bucket: ``burst`` requests at once, refilled at ``qps``."""

    def __init__(self, qps: float, burst: int) -> None:
        self._rate = float(qps)
        self._capacity = float(burst)
        self._tokens = float(burst)
        self._last = time.monotonic()
        self._lock = threading.Lock()

    def acquire(self) -> None:
        while True:
            with self._lock:
                now = time.monotonic()
                self._tokens = min(self._capacity, self._tokens + (now - self._last) * self._rate)
                self._last = now
                if self._tokens >= 1.0:
                    self._tokens -= 1.0
                    return
                wait = (1.0 - self._tokens) / self._rate
            time.sleep(wait)


class AWSCloudProvider(CloudProvider):
    """Provisions nodes as EC2 instances through fleet requests."""

    def __init__(
        self,
        ec2api: EC2API,
        ssm: SSMAPI,
        server_version: Callable[[], ServerVersion],
        *,
        ttl: float = CACHE_TTL_SECONDS,
        timer: Callable[[], float] = time.monotonic,
        qps: float = CREATION_QPS,
        burst: int = CREATION_BURST,
    ) -> None:
        self._node_factory = NodeFactory(ec2api)
        self._launch_template_provider = LaunchTemplateProvider(
            ec2api,
            AMIProvider(ssm, server_version, ttl=ttl, timer=timer),
            SecurityGroupProvider(ec2api, ttl=ttl, timer=timer),
            ttl=ttl,
            timer=timer,
        )
        self._subnet_provider = SubnetProvider(ec2api, ttl=ttl, timer=timer)
        self._instance_type_provider = InstanceTypeProvider(ec2api, ttl=ttl, timer=timer)
        self._instance_provider = InstanceProvider(ec2api)
        self._limiter = _RateLimiter(qps, burst)
        self._executor = ThreadPoolExecutor(max_workers=_WORKERS, thread_name_prefix="node-create")

    def create(
        self, provisioner: Provisioner, packing: Packing, bind: Callable[[Node], None]
    ) -> "Future[None]":
        """Launch a node for the packing and hand it to ``bind``.

        Runs in the background at a limited rate; the returned future
        completes when the node is bound, or raises what went wrong.
        """

        def run() -> None:
            self._limiter.acquire()
            self._create(provisioner, packing, bind)

        return self._executor.submit(run)

    def _create(
        self, provisioner: Provisioner, packing: Packing, bind: Callable[[Node], None]
    ) -> None:
        constraints = AWSConstraints(packing.constraints)
        try:
            subnets = self._subnet_provider.get(provisioner, constraints)
        except Exception as exc:
            raise RuntimeError(f"getting zonal subnets, {exc}") from exc
        try:
            launch_template = self._launch_template_provider.get(provisioner, constraints)
        except Exception as exc:
            raise RuntimeError(f"getting launch template, {exc}") from exc
        try:
            instance_id = self._instance_provider.create(
                launch_template,
                packing.instance_type_options,
                subnets,
                constraints.capacity_type(),
            )
        except Exception as exc:
            raise RuntimeError(f"launching instances, {exc}") from exc
        try:
            node = self._node_factory.for_instance(instance_id)
        except Exception as exc:
            raise RuntimeError(f"constructing node, {exc}") from exc
        bind(node)

    def get_instance_types(self) -> List[InstanceType]:
        return self._instance_type_provider.get()

    def terminate(self, node: Node) -> None:
        self._instance_provider.terminate(node)

    def validate_constraints(self, constraints: Constraints) -> Optional[FieldError]:
        """AWS specific problems with the constraints, or None."""
        return AWSConstraints(constraints).errors()

    def validate_spec(self, spec: ProvisionerSpec) -> Optional[FieldError]:
        """AWS specific problems with the specification, or None."""
        if not spec.cluster.name:
            return FieldError("missing field(s)", ("name",)).via_field("cluster")
        return None