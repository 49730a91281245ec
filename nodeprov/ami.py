"""Discovery of the node image to launch, by Kubernetes version and architecture."""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass
from typing import Callable, Optional

from cachetools import TTLCache

from .aws_constraints import KUBE_TO_AWS_ARCHITECTURES, AWSConstraints
from .ec2 import SSMAPI

# How long discovered values are trusted before AWS is asked again.
CACHE_TTL_SECONDS = 60.0
_CACHE_SIZE = 1024

KUBERNETES_VERSION_CACHE_KEY = "kubernetesVersion"

_log = logging.getLogger(__name__)


@dataclass(frozen=True)
class ServerVersion:
    """The API server's version as it reports it, e.g. major "1", minor "20+"."""

    major: str
    minor: str


class AMIProvider:
    """Finds the image id for a given set of constraints, with caching."""

    def __init__(
        self,
        ssm: SSMAPI,
        server_version: Callable[[], ServerVersion],
        *,
        ttl: float = CACHE_TTL_SECONDS,
        timer: Callable[[], float] = time.monotonic,
    ) -> None:
        self._ssm = ssm
        self._server_version = server_version
        self._ttl = ttl
        self._cache: TTLCache = TTLCache(maxsize=_CACHE_SIZE, ttl=ttl, timer=timer)
        self._lock = threading.Lock()

    def _cached(self, key: str) -> Optional[str]:
        with self._lock:
            return self._cache.get(key)

    def _store(self, key: str, value: str) -> None:
        with self._lock:
            self._cache[key] = value

    def get(self, constraints: AWSConstraints) -> str:
        """The image id for the cluster's version and the constrained architecture."""
        try:
            version = self._kube_server_version()
        except Exception as exc:
            raise RuntimeError(f"kube server version, {exc}") from exc
        architecture = constraints.architecture
        if architecture is None:
            raise ValueError("constraints name no architecture")
        aws_architecture = KUBE_TO_AWS_ARCHITECTURES.get(architecture, "")
        name = f"/aws/service/bottlerocket/aws-k8s-{version}/{aws_architecture}/latest/image_id"
        cached = self._cached(name)
        if cached is not None:
            return cached
        try:
            ami = self._ssm.get_parameter(name)
        except Exception as exc:
            raise RuntimeError(f"getting ssm parameter, {exc}") from exc
        self._store(name, ami)
        _log.debug("Discovered ami %s for query %s", ami, name)
        return ami

    def _kube_server_version(self) -> str:
        cached = self._cached(KUBERNETES_VERSION_CACHE_KEY)
        if cached is not None:
            return cached
        server_version = self._server_version()
        version = f"{server_version.major}.{server_version.minor.removesuffix('+')}"
        self._store(KUBERNETES_VERSION_CACHE_KEY, version)
        _log.debug("Discovered kubernetes version %s", version)
        return version