"""Discovery of the subnets that nodes may be launched into."""

from __future__ import annotations

import logging
import threading
import time
from typing import Callable, Iterable, List

from cachetools import TTLCache

from .ami import CACHE_TTL_SECONDS
from .aws_constraints import AWSConstraints
from .ec2 import EC2API, Subnet
from .predicates import has_name_tag, has_tag_key, within_strings
from .provisioner import Provisioner

# Set on every resource owned by a Kubernetes cluster.
CLUSTER_TAG_KEY_FORMAT = "kubernetes.io/cluster/{}"

_CACHE_SIZE = 1024

_log = logging.getLogger(__name__)


class SubnetProvider:
    """Finds the cluster's subnets that satisfy a set of constraints."""

    def __init__(
        self,
        ec2api: EC2API,
        *,
        ttl: float = CACHE_TTL_SECONDS,
        timer: Callable[[], float] = time.monotonic,
    ) -> None:
        self._ec2api = ec2api
        self._cache: TTLCache = TTLCache(maxsize=_CACHE_SIZE, ttl=ttl, timer=timer)
        self._lock = threading.Lock()

    def get(self, provisioner: Provisioner, constraints: AWSConstraints) -> List[Subnet]:
        """Subnets matching the constraints; raises RuntimeError when none do."""
        subnets: Iterable[Subnet] = self._subnets(provisioner)
        name = constraints.subnet_name()
        if name is not None:
            matches = has_name_tag(name)
            subnets = [subnet for subnet in subnets if matches(subnet.tags)]
        tag_key = constraints.subnet_tag_key()
        if tag_key is not None:
            matches = has_tag_key(tag_key)
            subnets = [subnet for subnet in subnets if matches(subnet.tags)]
        zones = constraints.zones
        if zones:
            allowed = within_strings(zones)
            subnets = [subnet for subnet in subnets if allowed(subnet.availability_zone or "")]
        result = list(subnets)
        if not result:
            raise RuntimeError("no subnets exist given constraints")
        return result

    def _subnets(self, provisioner: Provisioner) -> List[Subnet]:
        cluster_name = provisioner.spec.cluster.name or ""
        with self._lock:
            cached = self._cache.get(cluster_name)
        if cached is not None:
            return list(cached)
        try:
            subnets = list(
                self._ec2api.describe_subnets(
                    {"tag-key": [CLUSTER_TAG_KEY_FORMAT.format(cluster_name)]}
                )
            )
        except Exception as exc:
            raise RuntimeError(f"describing subnets, {exc}") from exc
        with self._lock:
            self._cache[cluster_name] = subnets
        _log.debug("Discovered %d subnets for cluster %s", len(subnets), cluster_name)
        return list(subnets)