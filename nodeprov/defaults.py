"""Dynamic defaults filled into provisioners at runtime, never saved back."""

from __future__ import annotations

import base64
import dataclasses
import logging
import os
from pathlib import Path
from typing import Optional, Union

from .provisioner import Cluster, Provisioner

IN_CLUSTER_CA_BUNDLE_PATH = "/var/run/secrets/kubernetes.io/serviceaccount/ca.crt"

_log = logging.getLogger(__name__)

PathLike = Union[str, "os.PathLike[str]"]


def with_dynamic_defaults(
    provisioner: Provisioner, ca_bundle_path: PathLike = IN_CLUSTER_CA_BUNDLE_PATH
) -> Provisioner:
    """A copy of the provisioner with missing values replaced by runtime defaults.

    The defaults may change over time (for example a rotated CA bundle), so
    they are applied to a copy and never written back to the given object.
    """
    result = provisioner.deep_copy()
    result.spec.cluster = cluster_with_dynamic_defaults(result.spec.cluster, ca_bundle_path)
    return result


def cluster_with_dynamic_defaults(
    cluster: Cluster, ca_bundle_path: PathLike = IN_CLUSTER_CA_BUNDLE_PATH
) -> Cluster:
    """A copy of the cluster whose CA bundle falls back to the in-cluster file."""
    return dataclasses.replace(cluster, ca_bundle=_ca_bundle(cluster, ca_bundle_path))


def _ca_bundle(cluster: Cluster, ca_bundle_path: PathLike) -> Optional[str]:
    if cluster.ca_bundle is not None:
        # An explicit empty string disables the in-cluster bundle on purpose.
        _log.debug("Using inline CABundle from Provisioner specification")
        return cluster.ca_bundle
    try:
        binary = Path(ca_bundle_path).read_bytes()
    except FileNotFoundError:
        _log.debug(
            "In-cluster CABundle file %s not found, will use HTTP client's default trust-store instead",
            ca_bundle_path,
        )
        return None
    _log.debug("Using in-cluster CABundle from file %s", ca_bundle_path)
    return base64.b64encode(binary).decode("ascii")