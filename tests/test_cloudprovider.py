import pytest

from nodeprov.cloudprovider import (
    CloudProvider,
    InstanceType,
    Node,
    Packing,
    PackedNode,
    Pod,
    Quantity,
)


def test_parse_plain_integer():
    assert Quantity.parse("96").value() == 96


def test_binary_suffixes_scale_by_1024():
    assert Quantity.parse("1Ki").value() == 1024
    assert Quantity.parse("1Gi").value() == 1024 * Quantity.parse("1Mi").value()
    assert Quantity.parse("384Gi") == Quantity.parse("393216Mi")


def test_decimal_suffix_matches_plain_number():
    assert Quantity.parse("1k") == Quantity.parse("1000")
    assert Quantity.parse("2M") == Quantity.parse("2000k")


def test_exponent_notation():
    assert Quantity.parse("1e3") == Quantity.parse("1k")
    assert Quantity.parse("1E") == Quantity.parse("1000P")


def test_milli_quantity():
    q = Quantity.parse("100m")
    assert q.milli_value() == 100
    assert q.value() == 1


def test_fractional_addition():
    assert Quantity.parse("1.5") + Quantity.parse("500m") == Quantity.parse("2")
    assert Quantity.parse("2") - Quantity.parse("500m") == Quantity.parse("1.5")


def test_is_zero():
    assert Quantity.parse("0").is_zero()
    assert Quantity().is_zero()
    assert not Quantity.parse("1m").is_zero()


def test_ordering():
    assert Quantity.parse("1Gi") > Quantity.parse("1G")
    assert Quantity.parse("4") < Quantity.parse("4Gi")


@pytest.mark.parametrize("text", ["", "abc", "1Xi", "1.2.3", "e3", " 4", "4 "])
def test_invalid_quantities_raise(text):
    with pytest.raises(ValueError):
        Quantity.parse(text)


@pytest.mark.parametrize("text", ["4", "100m", "384Gi", "1.5", "0"])
def test_string_round_trip(text):
    q = Quantity.parse(text)
    assert Quantity.parse(str(q)) == q


def test_interfaces_are_abstract():
    with pytest.raises(TypeError):
        InstanceType()
    with pytest.raises(TypeError):
        CloudProvider()


def test_defaults_are_not_shared():
    first, second = Node(), Node()
    first.labels["a"] = "b"
    assert second.labels == {}
    pod_a, pod_b = Pod(), Pod()
    pod_a.node_selector["x"] = "y"
    assert pod_b.node_selector == {}


def test_packing_and_packed_node_hold_pods():
    pod = Pod(name="p")
    packing = Packing(pods=[pod])
    packed = PackedNode(node=Node(name="n"), pods=packing.pods)
    assert packed.pods == [pod]
    assert packing.instance_type_options == []
    assert packing.constraints is None