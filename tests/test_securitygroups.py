import pytest

from nodeprov.aws_constraints import (
    SECURITY_GROUP_NAME_LABEL,
    SECURITY_GROUP_TAG_KEY_LABEL,
    AWSConstraints,
)
from nodeprov.aws_fake import FakeEC2API
from nodeprov.ec2 import AWSError, SecurityGroup, Tag
from nodeprov.provisioner import Cluster, Constraints, Provisioner, ProvisionerSpec
from nodeprov.securitygroups import SecurityGroupProvider


def _provisioner():
    return Provisioner(
        name="default",
        spec=ProvisionerSpec(
            cluster=Cluster(
                endpoint="https://test-cluster",
                name="test-cluster",
                ca_bundle="dGVzdC1jbHVzdGVyCg==",
            )
        ),
    )


def _constraints(labels=None):
    return AWSConstraints(Constraints(labels=dict(labels or {})))


def _ids(groups):
    return [group.group_id for group in groups]


class _RecordingEC2:
    def __init__(self, groups):
        self.groups = groups
        self.calls = []

    def describe_security_groups(self, filters):
        self.calls.append(filters)
        return list(self.groups)


class _FailingEC2:
    def describe_security_groups(self, filters):
        raise AWSError("UnauthorizedOperation", "denied")


def test_defaults_to_all_cluster_security_groups():
    provider = SecurityGroupProvider(FakeEC2API())
    groups = provider.get(_provisioner(), _constraints())
    assert _ids(groups) == [
        "test-security-group-1",
        "test-security-group-2",
        "test-security-group-3",
    ]


def test_filters_by_name():
    provider = SecurityGroupProvider(FakeEC2API())
    groups = provider.get(
        _provisioner(), _constraints({SECURITY_GROUP_NAME_LABEL: "test-security-group-2"})
    )
    assert _ids(groups) == ["test-security-group-2"]


def test_filters_by_tag_key():
    provider = SecurityGroupProvider(FakeEC2API())
    groups = provider.get(_provisioner(), _constraints({SECURITY_GROUP_TAG_KEY_LABEL: "TestTag"}))
    assert _ids(groups) == ["test-security-group-3"]


def test_name_and_tag_key_must_both_match():
    provider = SecurityGroupProvider(FakeEC2API())
    with pytest.raises(RuntimeError, match="no security groups exist given constraints"):
        provider.get(
            _provisioner(),
            _constraints(
                {
                    SECURITY_GROUP_NAME_LABEL: "test-security-group-1",
                    SECURITY_GROUP_TAG_KEY_LABEL: "TestTag",
                }
            ),
        )


def test_invalid_tag_key_fails():
    provider = SecurityGroupProvider(FakeEC2API())
    with pytest.raises(RuntimeError, match="no security groups exist given constraints"):
        provider.get(_provisioner(), _constraints({SECURITY_GROUP_TAG_KEY_LABEL: "Invalid"}))


def test_queries_by_cluster_tag_key():
    ec2 = _RecordingEC2([])
    provider = SecurityGroupProvider(ec2)
    with pytest.raises(RuntimeError):
        provider.get(_provisioner(), _constraints())
    assert ec2.calls == [{"tag-key": ["kubernetes.io/cluster/test-cluster"]}]


def test_results_are_cached_until_ttl_expires():
    now = [0.0]
    ec2 = _RecordingEC2([SecurityGroup("sg-a", [Tag("Name", "a")])])
    provider = SecurityGroupProvider(ec2, ttl=60.0, timer=lambda: now[0])
    assert _ids(provider.get(_provisioner(), _constraints())) == ["sg-a"]
    ec2.groups = [SecurityGroup("sg-b", [Tag("Name", "b")])]
    assert _ids(provider.get(_provisioner(), _constraints())) == ["sg-a"]
    assert len(ec2.calls) == 1
    now[0] = 61.0
    assert _ids(provider.get(_provisioner(), _constraints())) == ["sg-b"]
    assert len(ec2.calls) == 2


def test_api_errors_are_wrapped():
    provider = SecurityGroupProvider(_FailingEC2())
    with pytest.raises(RuntimeError, match="describing security groups with tag key"):
        provider.get(_provisioner(), _constraints())