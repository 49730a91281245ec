"""Launching and terminating EC2 instances through fleet requests."""

from __future__ import annotations

from typing import Iterable, Iterator, List, Sequence

from .aws_constraints import CAPACITY_TYPE_SPOT, LaunchTemplate
from .cloudprovider import InstanceType, Node
from .ec2 import EC2API, CreateFleetRequest, FleetError, FleetOverride, Subnet


class FleetCreationError(RuntimeError):
    """A fleet request could not launch an instance."""

    def __init__(self, message: str, codes: Sequence[str] = ()) -> None:
        super().__init__(message)
        self.codes = list(codes)


def _fleet_failure(errors: Iterable[FleetError]) -> FleetCreationError:
    codes = [error.error_code for error in errors]
    return FleetCreationError("; ".join(codes) or "fleet launched no instance", codes)


def instance_id_of(node: Node) -> str:
    """The EC2 instance id in a provider id like ``aws:///zone/id``."""
    parts = node.provider_id.split("/")
    if len(parts) < 5:
        raise ValueError(f"parsing instance id {node.provider_id}")
    return parts[4]


class InstanceProvider:
    """Creates and terminates instances."""

    def __init__(self, ec2api: EC2API) -> None:
        self._ec2api = ec2api

    def create(
        self,
        launch_template: LaunchTemplate,
        instance_type_options: Sequence[InstanceType],
        subnets: Sequence[Subnet],
        capacity_type: str,
    ) -> str:
        """Launch one instance and return its id.

        For spot capacity the options are taken to be ordered by priority; for
        on-demand the fleet picks the lowest price, so order does not matter.
        """
        overrides = list(self._overrides(instance_type_options, subnets, capacity_type))
        if not overrides:
            raise FleetCreationError("no viable {subnet, instanceType} combination")
        request = CreateFleetRequest(
            default_target_capacity_type=capacity_type,
            launch_template_id=launch_template.id,
            launch_template_version=launch_template.version,
            overrides=overrides,
        )
        try:
            result = self._ec2api.create_fleet(request)
        except Exception as exc:
            raise FleetCreationError(f"creating fleet {exc}") from exc
        if len(result.instances) != 1 or len(result.instances[0]) != 1:
            raise _fleet_failure(result.errors)
        return result.instances[0][0]

    @staticmethod
    def _overrides(
        instance_type_options: Sequence[InstanceType],
        subnets: Sequence[Subnet],
        capacity_type: str,
    ) -> Iterator[FleetOverride]:
        for priority, instance_type in enumerate(instance_type_options):
            for zone in instance_type.zones():
                # A fleet cannot span two subnets of one zone: take the first.
                subnet = next((s for s in subnets if (s.availability_zone or "") == zone), None)
                if subnet is None:
                    continue
                yield FleetOverride(
                    instance_type=instance_type.name(),
                    subnet_id=subnet.subnet_id,
                    # Smaller types come first, so prefer them for spot.
                    priority=float(priority) if capacity_type == CAPACITY_TYPE_SPOT else None,
                )

    def terminate(self, node: Node) -> None:
        """Terminate the instance behind a node."""
        try:
            instance_id = instance_id_of(node)
        except ValueError as exc:
            raise ValueError(f"getting instance ID for node {node.name}, {exc}") from exc
        try:
            self._ec2api.terminate_instances([instance_id])
        except Exception as exc:
            raise RuntimeError(f"terminating instance {node.name}, {exc}") from exc