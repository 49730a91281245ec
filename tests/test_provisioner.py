from nodeprov.cloudprovider import Pod, Taint
from nodeprov.provisioner import (
    ARCHITECTURE_AMD64,
    ARCHITECTURE_ARM64,
    ARCHITECTURE_LABEL_KEY,
    DEFAULT_PROVISIONER_NAME,
    INSTANCE_TYPE_LABEL_KEY,
    KARPENTER_FINALIZER,
    OPERATING_SYSTEM_LABEL_KEY,
    OPERATING_SYSTEM_LINUX,
    PROVISIONER_NAME_LABEL_KEY,
    ZONE_LABEL_KEY,
    Cluster,
    Condition,
    Constraints,
    Provisioner,
    ProvisionerList,
    ProvisionerSpec,
)


def test_well_known_keys_as_labels():
    constraints = Constraints().with_label(PROVISIONER_NAME_LABEL_KEY, DEFAULT_PROVISIONER_NAME)
    constraints.with_label(KARPENTER_FINALIZER, "yes")
    assert constraints.labels == {
        "karpenter.sh/provisioner-name": "default",
        "karpenter.sh/termination": "yes",
    }


def test_with_label_returns_self_and_leaves_original_mapping():
    labels = {"a": "b"}
    constraints = Constraints(labels=labels)
    assert constraints.with_label("x", "y") is constraints
    assert constraints.labels == {"a": "b", "x": "y"}
    assert labels == {"a": "b"}


def test_with_overrides_defaults():
    result = Constraints().with_overrides(Pod())
    assert result.architecture == ARCHITECTURE_AMD64
    assert result.operating_system == OPERATING_SYSTEM_LINUX
    assert result.zones == []
    assert result.instance_types == []
    assert result.labels == {}


def test_pod_selector_overrides_labels():
    constraints = Constraints(labels={"team": "a", "keep": "yes"})
    pod = Pod(node_selector={"team": "b"})
    result = constraints.with_overrides(pod)
    assert result.labels == {"team": "b", "keep": "yes"}
    assert constraints.labels == {"team": "a", "keep": "yes"}


def test_pod_overrides_zone_and_instance_type():
    constraints = Constraints(zones=["zone-a", "zone-b"], instance_types=["m5.large"])
    pod = Pod(node_selector={ZONE_LABEL_KEY: "zone-c", INSTANCE_TYPE_LABEL_KEY: "c6g.large"})
    result = constraints.with_overrides(pod)
    assert result.zones == ["zone-c"]
    assert result.instance_types == ["c6g.large"]


def test_provisioner_zones_and_types_used_without_selector():
    constraints = Constraints(zones=["zone-a"], instance_types=["m5.large"])
    result = constraints.with_overrides(Pod())
    assert result.zones == ["zone-a"]
    assert result.instance_types == ["m5.large"]


def test_architecture_and_os_precedence():
    constraints = Constraints(architecture=ARCHITECTURE_ARM64, operating_system="windows")
    assert constraints.with_overrides(Pod()).architecture == ARCHITECTURE_ARM64
    assert constraints.with_overrides(Pod()).operating_system == "windows"
    pod = Pod(node_selector={ARCHITECTURE_LABEL_KEY: "amd64", OPERATING_SYSTEM_LABEL_KEY: "linux"})
    result = constraints.with_overrides(pod)
    assert result.architecture == "amd64"
    assert result.operating_system == "linux"


def test_taints_carry_over():
    taint = Taint(key="a", value="b", effect="NoSchedule")
    result = Constraints(taints=[taint]).with_overrides(Pod())
    assert result.taints == [taint]


def test_spec_has_inline_constraints():
    spec = ProvisionerSpec(labels={"a": "b"}, cluster=Cluster(endpoint="https://test-cluster"))
    result = spec.with_overrides(Pod(node_selector={"c": "d"}))
    assert result.labels == {"a": "b", "c": "d"}
    assert spec.cluster.endpoint == "https://test-cluster"
    assert spec.ttl_seconds_after_empty is None


def test_deep_copy_is_independent():
    provisioner = Provisioner(
        name="default",
        spec=ProvisionerSpec(
            labels={"a": "b"},
            cluster=Cluster(name="test-cluster", endpoint="https://test-cluster"),
        ),
    )
    copied = provisioner.deep_copy()
    assert copied == provisioner
    copied.spec.labels["x"] = "y"
    copied.spec.cluster.name = "other"
    copied.status.conditions.append(Condition(type="Active", status="True"))
    assert provisioner.spec.labels == {"a": "b"}
    assert provisioner.spec.cluster.name == "test-cluster"
    assert provisioner.status.conditions == []


def test_provisioner_list_items():
    first, second = Provisioner(name="one"), Provisioner(name="two")
    listing = ProvisionerList(items=[first, second])
    assert [p.name for p in listing.items] == ["one", "two"]