"""AWS specific constraints carried in provisioner labels."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Optional

from .provisioner import ARCHITECTURE_AMD64, ARCHITECTURE_ARM64, Constraints
from .validation import FieldError

CAPACITY_TYPE_SPOT = "spot"
CAPACITY_TYPE_ON_DEMAND = "on-demand"
DEFAULT_LAUNCH_TEMPLATE_VERSION = "$Default"

AWS_LABEL_PREFIX = "node.k8s.aws/"
CAPACITY_TYPE_LABEL = AWS_LABEL_PREFIX + "capacity-type"
LAUNCH_TEMPLATE_ID_LABEL = AWS_LABEL_PREFIX + "launch-template-id"
LAUNCH_TEMPLATE_VERSION_LABEL = AWS_LABEL_PREFIX + "launch-template-version"
SUBNET_NAME_LABEL = AWS_LABEL_PREFIX + "subnet-name"
SUBNET_TAG_KEY_LABEL = AWS_LABEL_PREFIX + "subnet-tag-key"
SECURITY_GROUP_NAME_LABEL = AWS_LABEL_PREFIX + "security-group-name"
SECURITY_GROUP_TAG_KEY_LABEL = AWS_LABEL_PREFIX + "security-group-tag-key"
ALLOWED_LABELS = (
    CAPACITY_TYPE_LABEL,
    LAUNCH_TEMPLATE_ID_LABEL,
    LAUNCH_TEMPLATE_VERSION_LABEL,
    SUBNET_NAME_LABEL,
    SUBNET_TAG_KEY_LABEL,
    SECURITY_GROUP_NAME_LABEL,
    SECURITY_GROUP_TAG_KEY_LABEL,
)
CAPACITY_TYPES = (CAPACITY_TYPE_SPOT, CAPACITY_TYPE_ON_DEMAND)

AWS_TO_KUBE_ARCHITECTURES = {
    "x86_64": ARCHITECTURE_AMD64,
    ARCHITECTURE_ARM64: ARCHITECTURE_ARM64,
}
KUBE_TO_AWS_ARCHITECTURES = {kube: aws for aws, kube in AWS_TO_KUBE_ARCHITECTURES.items()}


@dataclass(frozen=True)
class LaunchTemplate:
    """A launch template reference: its id and version."""

    id: str
    version: str


def _label_path(label: str) -> str:
    return f"spec.labels[{label}]"


def _combine(*errors: Optional[FieldError]) -> Optional[FieldError]:
    present = [error for error in errors if error is not None]
    if not present:
        return None
    return present[0].also(*present[1:])


@dataclass
class AWSConstraints:
    """Constraints read with their AWS meaning; other attributes pass through."""

    constraints: Constraints

    def __getattr__(self, name: str) -> Any:
        if name == "constraints":
            raise AttributeError(name)
        return getattr(self.constraints, name)

    def capacity_type(self) -> str:
        return self.constraints.labels.get(CAPACITY_TYPE_LABEL, CAPACITY_TYPE_ON_DEMAND)

    def launch_template(self) -> Optional[LaunchTemplate]:
        """The requested launch template, or None to have one generated."""
        labels = self.constraints.labels
        if LAUNCH_TEMPLATE_ID_LABEL not in labels:
            return None
        return LaunchTemplate(
            id=labels[LAUNCH_TEMPLATE_ID_LABEL],
            version=labels.get(LAUNCH_TEMPLATE_VERSION_LABEL, DEFAULT_LAUNCH_TEMPLATE_VERSION),
        )

    def subnet_name(self) -> Optional[str]:
        return self.constraints.labels.get(SUBNET_NAME_LABEL)

    def subnet_tag_key(self) -> Optional[str]:
        return self.constraints.labels.get(SUBNET_TAG_KEY_LABEL)

    def security_group_name(self) -> Optional[str]:
        return self.constraints.labels.get(SECURITY_GROUP_NAME_LABEL)

    def security_group_tag_key(self) -> Optional[str]:
        return self.constraints.labels.get(SECURITY_GROUP_TAG_KEY_LABEL)

    def errors(self) -> Optional[FieldError]:
        """Problems with the AWS labels, or None."""
        return _combine(
            self._allowed_label_errors(),
            self._capacity_type_error(),
            self._launch_template_error(),
            self._subnet_error(),
        )

    def _allowed_label_errors(self) -> Optional[FieldError]:
        return _combine(
            *(
                FieldError(f'invalid key name "{key}"', ("spec.labels",))
                for key in self.constraints.labels
                if key.startswith(AWS_LABEL_PREFIX) and key not in ALLOWED_LABELS
            )
        )

    def _capacity_type_error(self) -> Optional[FieldError]:
        capacity_type = self.constraints.labels.get(CAPACITY_TYPE_LABEL)
        if capacity_type is None or capacity_type in CAPACITY_TYPES:
            return None
        allowed = "[" + " ".join(CAPACITY_TYPES) + "]"
        return FieldError(
            f"invalid value: {capacity_type} not in {allowed}",
            (_label_path(CAPACITY_TYPE_LABEL),),
        )

    def _launch_template_error(self) -> Optional[FieldError]:
        labels = self.constraints.labels
        if LAUNCH_TEMPLATE_VERSION_LABEL in labels and LAUNCH_TEMPLATE_ID_LABEL not in labels:
            return FieldError("missing field(s)", (_label_path(LAUNCH_TEMPLATE_ID_LABEL),))
        return None

    def _subnet_error(self) -> Optional[FieldError]:
        if self.subnet_name() is not None and self.subnet_tag_key() is not None:
            return FieldError(
                "expected exactly one, got both",
                (_label_path(SUBNET_NAME_LABEL), _label_path(SUBNET_TAG_KEY_LABEL)),
            )
        return None