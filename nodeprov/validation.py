"""Validation of provisioners and their constraints."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Callable, Iterable, Iterator, List, Optional, Sequence, Tuple

from .cloudprovider import (
    TAINT_EFFECT_NO_EXECUTE,
    TAINT_EFFECT_NO_SCHEDULE,
    TAINT_EFFECT_PREFER_NO_SCHEDULE,
)
from .provisioner import (
    ARCHITECTURE_LABEL_KEY,
    INSTANCE_TYPE_LABEL_KEY,
    OPERATING_SYSTEM_LABEL_KEY,
    PROVISIONER_NAME_LABEL_KEY,
    PROVISIONER_TTL_AFTER_EMPTY_KEY,
    PROVISIONER_UNDERUTILIZED_LABEL_KEY,
    ZONE_LABEL_KEY,
    Cluster,
    Constraints,
    Provisioner,
    ProvisionerSpec,
)

# Labels that must be set through top level provisioner fields instead.
RESTRICTED_LABELS = (
    ARCHITECTURE_LABEL_KEY,
    OPERATING_SYSTEM_LABEL_KEY,
    PROVISIONER_NAME_LABEL_KEY,
    PROVISIONER_UNDERUTILIZED_LABEL_KEY,
    PROVISIONER_TTL_AFTER_EMPTY_KEY,
    ZONE_LABEL_KEY,
    INSTANCE_TYPE_LABEL_KEY,
)

_VALID_TAINT_EFFECTS = (
    TAINT_EFFECT_NO_SCHEDULE,
    TAINT_EFFECT_PREFER_NO_SCHEDULE,
    TAINT_EFFECT_NO_EXECUTE,
    "",
)


@dataclass(frozen=True)
class FieldError:
    """One or more validation problems, each tied to field paths."""

    message: str = ""
    paths: Tuple[str, ...] = ()
    details: str = ""
    errors: Tuple["FieldError", ...] = ()

    def __post_init__(self) -> None:
        object.__setattr__(self, "paths", tuple(self.paths))
        object.__setattr__(self, "errors", tuple(self.errors))

    def _leaves(self) -> Iterator["FieldError"]:
        if self.errors:
            for error in self.errors:
                yield from error._leaves()
        else:
            yield self

    def __iter__(self) -> Iterator["FieldError"]:
        return self._leaves()

    def __len__(self) -> int:
        return sum(1 for _ in self._leaves())

    def also(self, *args: Optional["FieldError"]) -> "FieldError":
        """This error combined with the given ones; None entries are skipped."""
        leaves = list(self._leaves())
        for other in args:
            if other is not None:
                leaves.extend(other._leaves())
        if len(leaves) == 1:
            return leaves[0]
        return FieldError(errors=tuple(leaves))

    def via_field(self, *args: str) -> "FieldError":
        """The same errors with their paths nested under the given field."""
        if not args:
            return self
        prefix = ".".join(args)
        leaves = [
            FieldError(
                message=leaf.message,
                paths=tuple(_nest(prefix, path) for path in leaf.paths),
                details=leaf.details,
            )
            for leaf in self._leaves()
        ]
        if len(leaves) == 1:
            return leaves[0]
        return FieldError(errors=tuple(leaves))

    def __str__(self) -> str:
        lines = []
        for leaf in self._leaves():
            line = leaf.message
            if leaf.paths:
                line += ": " + ", ".join(leaf.paths)
            if leaf.details:
                line += "\n" + leaf.details
            lines.append(line)
        return "\n".join(sorted(lines))


class ValidationError(ValueError):
    """Raised when a provisioner does not pass validation."""

    def __init__(self, error: FieldError) -> None:
        super().__init__(str(error))
        self.error = error


@dataclass
class ValidationRegistry:
    """Values and hooks a cloud provider contributes to validation."""

    supported_architectures: List[str] = field(default_factory=list)
    supported_operating_systems: List[str] = field(default_factory=list)
    supported_zones: List[str] = field(default_factory=list)
    supported_instance_types: List[str] = field(default_factory=list)
    constraints_validation_hook: Optional[Callable[[Constraints], Optional[FieldError]]] = None
    spec_validation_hook: Optional[Callable[[ProvisionerSpec], Optional[FieldError]]] = None


def _nest(prefix: str, path: str) -> str:
    if not path:
        return prefix
    if path.startswith("["):
        return prefix + path
    return f"{prefix}.{path}"


def _combine(*errors: Optional[FieldError]) -> Optional[FieldError]:
    present = [error for error in errors if error is not None]
    if not present:
        return None
    return present[0].also(*present[1:])


def _missing_field(*paths: str) -> FieldError:
    return FieldError("missing field(s)", paths)


def _invalid_value(value: object, path: str, details: str = "") -> FieldError:
    return FieldError(f"invalid value: {value}", (path,), details)


def _invalid_key_name(key: str, path: str, details: str = "") -> FieldError:
    return FieldError(f'invalid key name "{key}"', (path,), details)


def _invalid_array_value(value: object, name: str, index: int) -> FieldError:
    return FieldError(f"invalid value: {value}", (f"{name}[{index}]",))


def _go_list(items: Sequence[str]) -> str:
    return "[" + " ".join(items) + "]"


# Name checks follow the rules the Kubernetes API server applies.

_EMPTY_ERROR = "must be non-empty"


def _max_len_error(length: int) -> str:
    return f"must be no more than {length} characters"


def _regex_error(message: str, pattern: str, examples: Iterable[str]) -> str:
    shown = ", or ".join(f"'{example}'" for example in examples)
    return f"{message} (e.g. {shown}, regex used for validation is '{pattern}')"


_QUALIFIED_NAME_FMT = "([A-Za-z0-9][-A-Za-z0-9_.]*)?[A-Za-z0-9]"
_QUALIFIED_NAME_RE = re.compile(_QUALIFIED_NAME_FMT)
_QUALIFIED_NAME_MESSAGE = (
    "must consist of alphanumeric characters, '-', '_' or '.', "
    "and must start and end with an alphanumeric character"
)
_QUALIFIED_NAME_MAX_LENGTH = 63

_LABEL_VALUE_FMT = "(" + _QUALIFIED_NAME_FMT + ")?"
_LABEL_VALUE_RE = re.compile(_LABEL_VALUE_FMT)
_LABEL_VALUE_MESSAGE = (
    "a valid label must be an empty string or consist of alphanumeric characters, "
    "'-', '_' or '.', and must start and end with an alphanumeric character"
)
_LABEL_VALUE_MAX_LENGTH = 63

_DNS1123_LABEL_FMT = "[a-z0-9]([-a-z0-9]*[a-z0-9])?"
_DNS1123_SUBDOMAIN_FMT = _DNS1123_LABEL_FMT + r"(\." + _DNS1123_LABEL_FMT + ")*"
_DNS1123_SUBDOMAIN_RE = re.compile(_DNS1123_SUBDOMAIN_FMT)
_DNS1123_SUBDOMAIN_MESSAGE = (
    "a lowercase RFC 1123 subdomain must consist of lower case alphanumeric characters, "
    "'-' or '.', and must start and end with an alphanumeric character"
)
_DNS1123_SUBDOMAIN_MAX_LENGTH = 253


def _dns1123_subdomain_errors(value: str) -> List[str]:
    errors = []
    if len(value) > _DNS1123_SUBDOMAIN_MAX_LENGTH:
        errors.append(_max_len_error(_DNS1123_SUBDOMAIN_MAX_LENGTH))
    if not _DNS1123_SUBDOMAIN_RE.fullmatch(value):
        errors.append(
            _regex_error(_DNS1123_SUBDOMAIN_MESSAGE, _DNS1123_SUBDOMAIN_FMT, ["example.com"])
        )
    return errors


def is_qualified_name(value: str) -> List[str]:
    """Problems with a qualified name such as ``example.com/MyName``; empty if valid."""
    examples = ["MyName", "my.name", "123-abc"]
    errors: List[str] = []
    parts = value.split("/")
    if len(parts) == 1:
        name = parts[0]
    elif len(parts) == 2:
        prefix, name = parts
        if not prefix:
            errors.append("prefix part " + _EMPTY_ERROR)
        else:
            errors.extend("prefix part " + msg for msg in _dns1123_subdomain_errors(prefix))
    else:
        errors.append(
            "a qualified name "
            + _regex_error(_QUALIFIED_NAME_MESSAGE, _QUALIFIED_NAME_FMT, examples)
            + " with an optional DNS subdomain prefix and '/' (e.g. 'example.com/MyName')"
        )
        return errors
    if not name:
        errors.append("name part " + _EMPTY_ERROR)
    elif len(name) > _QUALIFIED_NAME_MAX_LENGTH:
        errors.append("name part " + _max_len_error(_QUALIFIED_NAME_MAX_LENGTH))
    if not _QUALIFIED_NAME_RE.fullmatch(name):
        errors.append(
            "name part " + _regex_error(_QUALIFIED_NAME_MESSAGE, _QUALIFIED_NAME_FMT, examples)
        )
    return errors


def is_valid_label_value(value: str) -> List[str]:
    """Problems with a label value; empty if valid."""
    errors = []
    if len(value) > _LABEL_VALUE_MAX_LENGTH:
        errors.append(_max_len_error(_LABEL_VALUE_MAX_LENGTH))
    if not _LABEL_VALUE_RE.fullmatch(value):
        errors.append(
            _regex_error(_LABEL_VALUE_MESSAGE, _LABEL_VALUE_FMT, ["MyValue", "my_value", "12345"])
        )
    return errors


def cluster_errors(cluster: Optional[Cluster]) -> Optional[FieldError]:
    """Problems with a cluster specification, or None."""
    if cluster is None:
        return _missing_field()
    if not cluster.endpoint:
        return _missing_field("endpoint")
    return None


def _label_errors(constraints: Constraints) -> Optional[FieldError]:
    errors: List[FieldError] = []
    for key, value in constraints.labels.items():
        errors.extend(_invalid_key_name(key, "labels", msg) for msg in is_qualified_name(key))
        errors.extend(_invalid_value(f"{value}, {msg}", "labels") for msg in is_valid_label_value(value))
    return _combine(*errors)


def _taint_errors(constraints: Constraints) -> Optional[FieldError]:
    errors: List[FieldError] = []
    for index, taint in enumerate(constraints.taints):
        if not taint.key:
            errors.append(_invalid_array_value(taint.key, "taints", index))
        errors.extend(
            _invalid_array_value(msg, "taints", index) for msg in is_qualified_name(taint.key)
        )
        if taint.value:
            errors.extend(
                _invalid_array_value(msg, "taints", index) for msg in is_qualified_name(taint.value)
            )
        if taint.effect not in _VALID_TAINT_EFFECTS:
            errors.append(_invalid_array_value(taint.effect, "effect", index))
    return _combine(*errors)


def _membership_error(value: Optional[str], supported: Sequence[str], path: str) -> Optional[FieldError]:
    if value is None or value in supported:
        return None
    return _invalid_value(f"{value} not in {_go_list(supported)}", path)


def _array_membership_errors(values: Sequence[str], supported: Sequence[str], name: str) -> Optional[FieldError]:
    return _combine(
        *(
            _invalid_array_value(f"{value} not in {_go_list(supported)}", name, index)
            for index, value in enumerate(values)
            if value not in supported
        )
    )


def constraints_errors(
    constraints: Constraints, registry: Optional[ValidationRegistry] = None
) -> Optional[FieldError]:
    """Problems with a set of constraints, or None.

    Used both for provisioners and for constraints with pod overrides applied.
    """
    registry = registry or ValidationRegistry()
    errors = _combine(
        _label_errors(constraints),
        _taint_errors(constraints),
        _membership_error(constraints.architecture, registry.supported_architectures, "architecture"),
        _membership_error(
            constraints.operating_system, registry.supported_operating_systems, "operatingSystem"
        ),
        _array_membership_errors(constraints.zones, registry.supported_zones, "zones"),
        _array_membership_errors(
            constraints.instance_types, registry.supported_instance_types, "instanceTypes"
        ),
    )
    if registry.constraints_validation_hook is not None:
        errors = _combine(errors, registry.constraints_validation_hook(constraints))
    return errors


def _ttl_error(value: Optional[int], path: str) -> Optional[FieldError]:
    if (value or 0) < 0:
        return _invalid_value("cannot be negative", path)
    return None


def _restricted_label_errors(spec: ProvisionerSpec) -> Optional[FieldError]:
    return _combine(
        *(_invalid_key_name(key, "labels") for key in spec.labels if key in RESTRICTED_LABELS)
    )


def spec_errors(
    spec: ProvisionerSpec, registry: Optional[ValidationRegistry] = None
) -> Optional[FieldError]:
    """Problems with a provisioner specification, or None."""
    registry = registry or ValidationRegistry()
    cluster = cluster_errors(spec.cluster)
    errors = _combine(
        _ttl_error(spec.ttl_seconds_until_expired, "ttlSecondsUntilExpired"),
        _ttl_error(spec.ttl_seconds_after_empty, "ttlSecondsAfterEmpty"),
        cluster.via_field("cluster") if cluster is not None else None,
        # Restricted for provisioners only; pods need them to override constraints.
        _restricted_label_errors(spec),
        constraints_errors(spec, registry),
    )
    if registry.spec_validation_hook is not None:
        errors = _combine(errors, registry.spec_validation_hook(spec))
    return errors


def _metadata_errors(provisioner: Provisioner) -> Optional[FieldError]:
    if not provisioner.name:
        return _missing_field("name")
    messages = _dns1123_subdomain_errors(provisioner.name)
    if messages:
        return _invalid_value(f"not a DNS 1123 subdomain: {_go_list(messages)}", "name")
    return None


def provisioner_errors(
    provisioner: Provisioner, registry: Optional[ValidationRegistry] = None
) -> Optional[FieldError]:
    """Every problem with a provisioner, or None when it is valid."""
    metadata = _metadata_errors(provisioner)
    spec = spec_errors(provisioner.spec, registry)
    return _combine(
        metadata.via_field("metadata") if metadata is not None else None,
        spec.via_field("spec") if spec is not None else None,
    )


def validate_provisioner(
    provisioner: Provisioner, registry: Optional[ValidationRegistry] = None
) -> None:
    """Raise ValidationError when the provisioner is not valid."""
    errors = provisioner_errors(provisioner, registry)
    if errors is not None:
        raise ValidationError(errors)