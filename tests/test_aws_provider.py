import pytest

from nodeprov.ami import ServerVersion
from nodeprov.aws_constraints import (
    CAPACITY_TYPE_ON_DEMAND,
    CAPACITY_TYPE_SPOT,
    CAPACITY_TYPE_LABEL,
    DEFAULT_LAUNCH_TEMPLATE_VERSION,
    LAUNCH_TEMPLATE_ID_LABEL,
    LAUNCH_TEMPLATE_VERSION_LABEL,
    SECURITY_GROUP_NAME_LABEL,
    SECURITY_GROUP_TAG_KEY_LABEL,
    SUBNET_NAME_LABEL,
    SUBNET_TAG_KEY_LABEL,
)
from nodeprov.aws_fake import FAKE_LAUNCH_TEMPLATE_ID, FakeEC2API, FakeSSMAPI
from nodeprov.aws_provider import AWSCloudProvider
from nodeprov.cloudprovider import Packing
from nodeprov.provisioner import (
    ARCHITECTURE_AMD64,
    ARCHITECTURE_ARM64,
    OPERATING_SYSTEM_LINUX,
    Cluster,
    Constraints,
    Provisioner,
    ProvisionerSpec,
)
from nodeprov.registry import register
from nodeprov.validation import ValidationError, ValidationRegistry, validate_provisioner

CA_BUNDLE = "dGVzdC1jbHVzdGVyCg=="


@pytest.fixture
def ec2():
    return FakeEC2API()


@pytest.fixture
def provider(ec2):
    return AWSCloudProvider(ec2, FakeSSMAPI(), lambda: ServerVersion("1", "20+"))


@pytest.fixture
def registry(provider):
    result = ValidationRegistry()
    register(provider, result)
    return result


def _provisioner():
    return Provisioner(
        name="default",
        spec=ProvisionerSpec(
            cluster=Cluster(endpoint="https://test-cluster", name="test-cluster", ca_bundle=CA_BUNDLE)
        ),
    )


def _packing(provider, labels=None, instance_types=None):
    options = provider.get_instance_types()
    if instance_types:
        options = [option for option in options if option.name() in instance_types]
    constraints = Constraints(labels=dict(labels or {}), architecture=ARCHITECTURE_AMD64)
    return Packing(pods=[], instance_type_options=options, constraints=constraints)


def _launch(provider, packing):
    bound = []
    provider.create(_provisioner(), packing, bound.append).result(timeout=10)
    return bound


def _overrides(ec2):
    return {
        (override.instance_type, override.subnet_id)
        for request in ec2.called_with_create_fleet_input
        for override in request.overrides
    }


def test_instance_types_come_from_ec2(provider):
    names = {instance_type.name() for instance_type in provider.get_instance_types()}
    assert names == {"m5.large", "m5.xlarge", "p3.8xlarge", "c6g.large", "inf1.6xlarge"}


def test_binds_a_node_for_the_launched_instance(provider, ec2):
    bound = _launch(provider, _packing(provider))
    assert len(bound) == 1
    node = bound[0]
    assert node.provider_id.startswith("aws:///test-zone-1a/")
    assert node.provider_id.split("/")[4] in ec2.instances


def test_nvidia_gpu_instance_type_uses_first_subnet(provider, ec2):
    _launch(provider, _packing(provider, instance_types=["p3.8xlarge"]))
    assert ("p3.8xlarge", "test-subnet-1") in _overrides(ec2)


def test_aws_neuron_instance_type_uses_first_subnet(provider, ec2):
    _launch(provider, _packing(provider, instance_types=["inf1.6xlarge"]))
    assert ("inf1.6xlarge", "test-subnet-1") in _overrides(ec2)


def test_capacity_type_defaults_to_on_demand(provider, ec2):
    _launch(provider, _packing(provider))
    assert len(ec2.called_with_create_fleet_input) == 1
    request = ec2.called_with_create_fleet_input[0]
    assert request.default_target_capacity_type == CAPACITY_TYPE_ON_DEMAND
    assert all(override.priority is None for override in request.overrides)


def test_capacity_type_spot_is_honoured_with_priorities(provider, ec2):
    _launch(provider, _packing(provider, labels={CAPACITY_TYPE_LABEL: CAPACITY_TYPE_SPOT}))
    request = ec2.called_with_create_fleet_input[0]
    assert request.default_target_capacity_type == CAPACITY_TYPE_SPOT
    assert request.overrides[0].priority == 0.0


def test_defaults_to_generated_launch_template(provider, ec2):
    _launch(provider, _packing(provider))
    request = ec2.called_with_create_fleet_input[0]
    assert request.launch_template_id == FAKE_LAUNCH_TEMPLATE_ID
    assert request.launch_template_version == DEFAULT_LAUNCH_TEMPLATE_VERSION


def test_uses_requested_launch_template_and_version(provider, ec2):
    labels = {LAUNCH_TEMPLATE_ID_LABEL: "lt-custom", LAUNCH_TEMPLATE_VERSION_LABEL: "5"}
    _launch(provider, _packing(provider, labels=labels))
    request = ec2.called_with_create_fleet_input[0]
    assert request.launch_template_id == "lt-custom"
    assert request.launch_template_version == "5"
    assert ec2.called_with_create_launch_template_input == []


def test_uses_requested_launch_template_with_default_version(provider, ec2):
    _launch(provider, _packing(provider, labels={LAUNCH_TEMPLATE_ID_LABEL: "lt-custom"}))
    request = ec2.called_with_create_fleet_input[0]
    assert request.launch_template_id == "lt-custom"
    assert request.launch_template_version == DEFAULT_LAUNCH_TEMPLATE_VERSION


def test_defaults_to_cluster_subnets(provider, ec2):
    _launch(provider, _packing(provider, instance_types=["m5.large"]))
    assert _overrides(ec2) == {
        ("m5.large", "test-subnet-1"),
        ("m5.large", "test-subnet-2"),
        ("m5.large", "test-subnet-3"),
    }


def test_subnet_name_limits_subnets(provider, ec2):
    _launch(provider, _packing(provider, {SUBNET_NAME_LABEL: "test-subnet-2"}, ["m5.large"]))
    assert _overrides(ec2) == {("m5.large", "test-subnet-2")}


def test_subnet_tag_key_limits_subnets(provider, ec2):
    _launch(provider, _packing(provider, {SUBNET_TAG_KEY_LABEL: "TestTag"}, ["m5.large"]))
    assert _overrides(ec2) == {("m5.large", "test-subnet-3")}


def test_invalid_subnet_fails(provider, ec2):
    future = provider.create(
        _provisioner(), _packing(provider, {SUBNET_TAG_KEY_LABEL: "Invalid"}, ["m5.large"]), list.append
    )
    with pytest.raises(RuntimeError, match="no subnets exist given constraints"):
        future.result(timeout=10)
    assert ec2.called_with_create_fleet_input == []


def test_defaults_to_cluster_security_groups(provider, ec2):
    _launch(provider, _packing(provider))
    assert len(ec2.called_with_create_launch_template_input) == 1
    assert sorted(ec2.called_with_create_launch_template_input[0].security_group_ids) == [
        "test-security-group-1",
        "test-security-group-2",
        "test-security-group-3",
    ]


def test_security_group_name_limits_groups(provider, ec2):
    _launch(provider, _packing(provider, {SECURITY_GROUP_NAME_LABEL: "test-security-group-2"}))
    request = ec2.called_with_create_launch_template_input[0]
    assert request.security_group_ids == ["test-security-group-2"]


def test_security_group_tag_key_limits_groups(provider, ec2):
    _launch(provider, _packing(provider, {SECURITY_GROUP_TAG_KEY_LABEL: "TestTag"}))
    request = ec2.called_with_create_launch_template_input[0]
    assert request.security_group_ids == ["test-security-group-3"]


def test_invalid_security_group_fails(provider):
    future = provider.create(
        _provisioner(), _packing(provider, {SECURITY_GROUP_TAG_KEY_LABEL: "Invalid"}), list.append
    )
    with pytest.raises(RuntimeError, match="no security groups exist given constraints"):
        future.result(timeout=10)


def test_terminate_removes_instance(provider, ec2):
    node = _launch(provider, _packing(provider))[0]
    instance_id = node.provider_id.split("/")[4]
    provider.terminate(node)
    assert instance_id not in ec2.instances


def test_validate_spec_requires_cluster_name(provider):
    spec = ProvisionerSpec(cluster=Cluster(endpoint="https://test-cluster"))
    error = provider.validate_spec(spec)
    assert error is not None
    assert [path for leaf in error for path in leaf.paths] == ["cluster.name"]
    assert provider.validate_spec(_provisioner().spec) is None


@pytest.mark.parametrize(
    "labels, valid",
    [
        ({"foo": "bar"}, True),
        ({"node.k8s.aws/foo": "bar"}, False),
        ({LAUNCH_TEMPLATE_VERSION_LABEL: "v1", LAUNCH_TEMPLATE_ID_LABEL: "23"}, True),
        ({LAUNCH_TEMPLATE_ID_LABEL: "23"}, True),
        ({LAUNCH_TEMPLATE_VERSION_LABEL: "v1"}, False),
        ({CAPACITY_TYPE_LABEL: CAPACITY_TYPE_ON_DEMAND}, True),
        ({CAPACITY_TYPE_LABEL: CAPACITY_TYPE_SPOT}, True),
        ({CAPACITY_TYPE_LABEL: "foo"}, False),
    ],
)
def test_label_validation(provider, registry, labels, valid):
    assert (provider.validate_constraints(Constraints(labels=labels)) is None) == valid
    provisioner = _provisioner()
    provisioner.spec.labels = labels
    if valid:
        assert validate_provisioner(provisioner, registry) is None
    else:
        with pytest.raises(ValidationError):
            validate_provisioner(provisioner, registry)


@pytest.mark.parametrize(
    "cluster",
    [
        Cluster(endpoint="https://test-cluster", ca_bundle=CA_BUNDLE),
        Cluster(name="test-cluster", ca_bundle=CA_BUNDLE),
        Cluster(ca_bundle=CA_BUNDLE),
        Cluster(name="test-cluster"),
    ],
)
def test_incomplete_cluster_fails(registry, cluster):
    provisioner = _provisioner()
    provisioner.spec.cluster = cluster
    with pytest.raises(ValidationError):
        validate_provisioner(provisioner, registry)


@pytest.mark.parametrize(
    "field_name, value, valid",
    [
        ("zones", ["unknown"], False),
        ("zones", ["test-zone-1a", "test-zone-1b", "test-zone-1c"], True),
        ("instance_types", ["unknown"], False),
        ("instance_types", ["m5.large"], True),
        ("architecture", "unknown", False),
        ("architecture", ARCHITECTURE_AMD64, True),
        ("architecture", ARCHITECTURE_ARM64, True),
        ("operating_system", "unknown", False),
        ("operating_system", OPERATING_SYSTEM_LINUX, True),
    ],
)
def test_registered_validation(registry, field_name, value, valid):
    provisioner = _provisioner()
    assert validate_provisioner(provisioner, registry) is None
    setattr(provisioner.spec, field_name, value)
    if valid:
        assert validate_provisioner(provisioner, registry) is None
    else:
        with pytest.raises(ValidationError):
            validate_provisioner(provisioner, registry)