"""Building node objects for freshly launched instances."""

from __future__ import annotations

import logging

from .cloudprovider import RESOURCE_CPU, RESOURCE_MEMORY, RESOURCE_PODS, Node, Quantity
from .ec2 import EC2API, AWSError

_OPERATING_SYSTEM_LINUX = "linux"

_log = logging.getLogger(__name__)


class NodeFactory:
    """Turns an EC2 instance id into the node that will represent it."""

    def __init__(self, ec2api: EC2API) -> None:
        self._ec2api = ec2api

    def for_instance(self, instance_id: str) -> Node:
        """The node object for a launched instance."""
        try:
            reservations = self._ec2api.describe_instances([instance_id])
        except AWSError:
            raise
        except Exception as exc:
            raise RuntimeError(f"failed to describe ec2 instances, {exc}") from exc
        if len(reservations) != 1:
            raise RuntimeError(f"expected a single instance reservation, got {len(reservations)}")
        instances = reservations[0]
        if len(instances) != 1:
            raise RuntimeError(f"expected a single instance, got {len(instances)}")
        instance = instances[0]
        _log.info(
            "Launched instance: %s, type: %s, zone: %s, hostname: %s",
            instance.instance_id,
            instance.instance_type,
            instance.availability_zone,
            instance.private_dns_name,
        )
        return Node(
            name=instance.private_dns_name,
            provider_id=f"aws:///{instance.availability_zone}/{instance.instance_id}",
            # Generous values that keep the node from looking full before it reports in.
            allocatable={
                RESOURCE_PODS: Quantity.parse("1000"),
                RESOURCE_CPU: Quantity.parse("96"),
                RESOURCE_MEMORY: Quantity.parse("384Gi"),
            },
            architecture=instance.architecture or "",
            operating_system=_OPERATING_SYSTEM_LINUX,
        )