"""Generated launch templates for nodes, and the user data they carry."""

from __future__ import annotations

import base64
import dataclasses
import hashlib
import json
import logging
import threading
import time
from dataclasses import dataclass
from typing import Callable, Tuple

from cachetools import TTLCache

from .ami import CACHE_TTL_SECONDS, AMIProvider
from .aws_constraints import DEFAULT_LAUNCH_TEMPLATE_VERSION, AWSConstraints, LaunchTemplate
from .aws_fake import LAUNCH_TEMPLATE_NOT_FOUND
from .ec2 import EC2API, AWSError, CreateLaunchTemplateRequest, LaunchTemplateRecord, Tag
from .provisioner import Cluster, Provisioner
from .securitygroups import SecurityGroupProvider
from .subnets import CLUSTER_TAG_KEY_FORMAT

# Set on every resource this controller owns.
KARPENTER_TAG_KEY_FORMAT = "karpenter.sh/cluster/{}"
LAUNCH_TEMPLATE_NAME_FORMAT = "Karpenter-{}-{}"

_CACHE_SIZE = 1024

_log = logging.getLogger(__name__)


@dataclass(frozen=True)
class LaunchTemplateOptions:
    """Everything a generated launch template depends on.

    The name of the template is a hash of these values, so any change here
    results in new templates being created.
    """

    cluster: Cluster
    user_data: str
    security_groups: Tuple[str, ...]
    ami_id: str

    def __post_init__(self) -> None:
        object.__setattr__(self, "security_groups", tuple(self.security_groups))


def _fingerprint(options: LaunchTemplateOptions) -> int:
    document = json.dumps(
        {
            "cluster": dataclasses.asdict(options.cluster),
            "user_data": options.user_data,
            "security_groups": list(options.security_groups),
            "ami_id": options.ami_id,
        },
        sort_keys=True,
    )
    return int.from_bytes(hashlib.sha256(document.encode("utf-8")).digest()[:8], "big")


def launch_template_name(options: LaunchTemplateOptions) -> str:
    """A name that is the same for equal options and differs otherwise."""
    return LAUNCH_TEMPLATE_NAME_FORMAT.format(options.cluster.name or "", _fingerprint(options))


def _text(value: object) -> str:
    return str(getattr(value, "value", value))


def render_user_data(provisioner: Provisioner, constraints: AWSConstraints) -> str:
    """Base64 encoded node settings: API server, cluster, labels and taints."""
    cluster = provisioner.spec.cluster
    labels = constraints.labels
    taints = constraints.taints
    head = [
        "",
        "[settings.kubernetes]",
        f'api-server = "{cluster.endpoint}"',
        f'cluster-certificate = "{cluster.ca_bundle}"' if cluster.ca_bundle else "",
        f'cluster-name = "{cluster.name or ""}"',
        "[settings.kubernetes.node-labels]" if labels else "",
    ]
    text = "\n".join(head) + "\n"
    text += "".join(f'"{key}" = "{value}"\n' for key, value in sorted(labels.items())) + "\n"
    text += ("[settings.kubernetes.node-taints]" if taints else "") + "\n"
    text += "".join(
        f'"{taint.key}" = "{taint.value}:{_text(taint.effect)}"\n' for taint in taints
    ) + "\n"
    return base64.b64encode(text.encode("utf-8")).decode("ascii")


class LaunchTemplateProvider:
    """Resolves the launch template for a set of constraints, creating it if needed."""

    def __init__(
        self,
        ec2api: EC2API,
        ami_provider: AMIProvider,
        security_group_provider: SecurityGroupProvider,
        *,
        ttl: float = CACHE_TTL_SECONDS,
        timer: Callable[[], float] = time.monotonic,
    ) -> None:
        self._ec2api = ec2api
        self._ami_provider = ami_provider
        self._security_group_provider = security_group_provider
        self._cache: TTLCache = TTLCache(maxsize=_CACHE_SIZE, ttl=ttl, timer=timer)
        self._lock = threading.Lock()

    def get(self, provisioner: Provisioner, constraints: AWSConstraints) -> LaunchTemplate:
        """The requested launch template, or a generated one."""
        requested = constraints.launch_template()
        if requested is not None:
            return requested
        ami_id = self._ami_provider.get(constraints)
        try:
            groups = self._security_group_provider.get(provisioner, constraints)
        except Exception as exc:
            raise RuntimeError(f"getting security group ids, {exc}") from exc
        record = self._ensure(
            LaunchTemplateOptions(
                cluster=provisioner.spec.cluster,
                user_data=render_user_data(provisioner, constraints),
                security_groups=tuple(group.group_id for group in groups),
                ami_id=ami_id,
            )
        )
        return LaunchTemplate(id=record.launch_template_id, version=DEFAULT_LAUNCH_TEMPLATE_VERSION)

    def _ensure(self, options: LaunchTemplateOptions) -> LaunchTemplateRecord:
        name = launch_template_name(options)
        with self._lock:
            cached = self._cache.get(name)
        if cached is not None:
            return cached
        try:
            found = self._ec2api.describe_launch_templates([name])
        except AWSError as exc:
            if exc.code != LAUNCH_TEMPLATE_NOT_FOUND:
                raise RuntimeError(f"describing launch templates, {exc}") from exc
            try:
                record = self._create(name, options)
            except Exception as create_exc:
                raise RuntimeError(f"creating launch template, {create_exc}") from create_exc
        except Exception as exc:
            raise RuntimeError(f"describing launch templates, {exc}") from exc
        else:
            if len(found) != 1:
                raise RuntimeError(
                    f"expected to find one launch template, but found {len(found)}"
                )
            _log.debug("Discovered launch template %s", name)
            record = found[0]
        with self._lock:
            self._cache[name] = record
        return record

    def _create(self, name: str, options: LaunchTemplateOptions) -> LaunchTemplateRecord:
        cluster_name = options.cluster.name or ""
        record = self._ec2api.create_launch_template(
            CreateLaunchTemplateRequest(
                launch_template_name=name,
                iam_instance_profile_name=f"KarpenterNodeInstanceProfile-{cluster_name}",
                tags=[
                    Tag("Name", f"Karpenter/{cluster_name}"),
                    Tag(CLUSTER_TAG_KEY_FORMAT.format(cluster_name), "owned"),
                    Tag(KARPENTER_TAG_KEY_FORMAT.format(cluster_name), "owned"),
                ],
                security_group_ids=list(options.security_groups),
                user_data=options.user_data,
                image_id=options.ami_id,
            )
        )
        _log.debug("Created launch template, %s", record.launch_template_name)
        return record