"""Discovery of the security groups attached to launched nodes."""

from __future__ import annotations

import logging
import threading
import time
from typing import Callable, List

from cachetools import TTLCache

from .ami import CACHE_TTL_SECONDS
from .aws_constraints import AWSConstraints
from .ec2 import EC2API, SecurityGroup
from .predicates import has_name_tag, has_tag_key
from .provisioner import Provisioner
from .subnets import CLUSTER_TAG_KEY_FORMAT

_CACHE_SIZE = 1024

_log = logging.getLogger(__name__)


class SecurityGroupProvider:
    """Finds the cluster's security groups that satisfy a set of constraints."""

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

    def get(self, provisioner: Provisioner, constraints: AWSConstraints) -> List[SecurityGroup]:
        """Security groups matching the constraints.

        Raises RuntimeError when none match, since a node without them could
        not reach the API server.
        """
        groups = self._security_groups(provisioner.spec.cluster.name or "")
        name = constraints.security_group_name()
        if name is not None:
            matches = has_name_tag(name)
            groups = [group for group in groups if matches(group.tags)]
        tag_key = constraints.security_group_tag_key()
        if tag_key is not None:
            matches = has_tag_key(tag_key)
            groups = [group for group in groups if matches(group.tags)]
        if not groups:
            raise RuntimeError("no security groups exist given constraints")
        return groups

    def _security_groups(self, cluster_name: str) -> List[SecurityGroup]:
        with self._lock:
            cached = self._cache.get(cluster_name)
        if cached is not None:
            return list(cached)
        tag_key = CLUSTER_TAG_KEY_FORMAT.format(cluster_name)
        try:
            # Security groups must be tagged for the cluster.
            groups = list(self._ec2api.describe_security_groups({"tag-key": [tag_key]}))
        except Exception as exc:
            raise RuntimeError(f"describing security groups with tag key {tag_key}, {exc}") from exc
        with self._lock:
            self._cache[cluster_name] = groups
        _log.debug("Discovered %d security groups for cluster %s", len(groups), cluster_name)
        return list(groups)