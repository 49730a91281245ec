# nodeprov

`nodeprov` models the provisioning of cluster nodes. It has three main parts:

- a **provisioner** specification (`nodeprov.provisioner`). It holds the cluster endpoint, the node constraints and the TTLs.
- **validation** of that specification (`nodeprov.validation`). It reports problems field by field.
- **cloud providers** (`nodeprov.cloudprovider`). A provider turns a packing of pods into new nodes.

Two providers are included:

- `FakeCloudProvider`, which keeps everything in memory.
- `AWSCloudProvider`, an AWS-style provider. It works through small EC2 and SSM client interfaces, defined in `nodeprov.ec2`.

## Installation

```
pip install nodeprov
```

The only runtime dependency is `cachetools`.

## Describing a provisioner

`ProvisionerSpec` extends `Constraints`. This means taints, labels, zones, instance types, architecture and operating system are passed to it directly.

```python
from nodeprov.provisioner import Cluster, Provisioner, ProvisionerSpec

provisioner = Provisioner(
    name="default",
    spec=ProvisionerSpec(
        cluster=Cluster(endpoint="https://test-cluster", name="test-cluster"),
        labels={"team": "platform"},
        zones=["test-zone-1"],
    ),
)
```

A pod's node selector can override constraints. `Constraints.with_overrides(pod)` returns new constraints where the pod's selector takes precedence. The zone and instance-type labels replace the zone and instance-type lists. If neither side sets an architecture, it defaults to `amd64`. If neither side sets an operating system, it defaults to `linux`.

Resource amounts are exact `Quantity` values, created with `Quantity.parse("4Gi")`, `Quantity.parse("100m")` and so on.

## Validation

Validation checks a provisioner against a `ValidationRegistry`. The registry holds:

- the supported zones, instance types, architectures and operating systems;
- optional hooks that a cloud provider contributes.

`nodeprov.registry.register` fills a registry from a provider.

```python
from nodeprov.fake_provider import FakeCloudProvider
from nodeprov.registry import register
from nodeprov.validation import ValidationError, ValidationRegistry, provisioner_errors, validate_provisioner

registry = ValidationRegistry()
register(FakeCloudProvider(), registry)

errors = provisioner_errors(provisioner, registry)  # a FieldError, or None
try:
    validate_provisioner(provisioner, registry)
except ValidationError as exc:
    print(exc.error)  # the FieldError; iterate it for each problem
```

The checks cover the following:

- **Metadata and cluster:** the provisioner name and the cluster endpoint.
- **TTLs:** they must not be negative.
- **Labels:** restricted labels, label keys and values, and taints.
- **Supported values:** zones, instance types, architectures and operating systems must be in the registry's lists.

`register` also installs the provider's `validate_spec` and `validate_constraints` as hooks. `new_cloud_provider(options, registry)` builds a `FakeCloudProvider` and registers it.

## Cloud providers

Every provider implements the `CloudProvider` interface:

- `create(provisioner, packing, bind)` returns a `concurrent.futures.Future`. The future completes once `bind` has been called with the new `Node`, or it holds the error.
- `get_instance_types()`
- `validate_spec(spec)` and `validate_constraints(constraints)` return a `FieldError` or `None`.
- `terminate(node)`

A `Packing` groups pods with the instance types that could hold them and the constraints that apply to them.

### FakeCloudProvider

- `create` names a node at random and places it in the first allowed zone of the first instance-type option. It then calls `bind` on a background thread.
- `get_instance_types` returns six `FakeInstanceType`s: a default type, GPU and accelerator types, a Windows type and an arm64 type.

### AWSCloudProvider

`create` runs in the background, rate limited to 2 requests per second with a burst of 100. It works in these steps:

1. It resolves the subnets.
2. It resolves the launch template. This is the requested one, or a generated one that uses the discovered image id, security groups and base64 user data.
3. It requests a single-instance fleet.
4. It builds the node and calls `bind`.

Lookups are cached for 60 seconds.

The provider needs three things:

- an EC2 client;
- an SSM client;
- a callable that returns the API server's `ServerVersion`.

`nodeprov.aws_fake` provides in-memory stand-ins for the two clients:

```python
from nodeprov.ami import ServerVersion
from nodeprov.aws_fake import FakeEC2API, FakeSSMAPI
from nodeprov.aws_provider import AWSCloudProvider
from nodeprov.cloudprovider import Packing, Pod
from nodeprov.provisioner import Cluster, Constraints, Provisioner, ProvisionerSpec

ec2 = FakeEC2API()
provider = AWSCloudProvider(ec2, FakeSSMAPI(), lambda: ServerVersion("1", "20+"))

aws_provisioner = Provisioner(
    name="default",
    spec=ProvisionerSpec(cluster=Cluster(endpoint="https://test-cluster", name="test-cluster")),
)
packing = Packing(
    instance_type_options=provider.get_instance_types()[:1],
    constraints=Constraints().with_overrides(Pod()),
)
nodes = []
provider.create(aws_provisioner, packing, nodes.append).result()
print(nodes[0].provider_id, ec2.called_with_create_fleet_input[0].overrides)
```

`AWSConstraints` reads the provider-specific labels under the `node.k8s.aws/` prefix:

| Label | Meaning |
| --- | --- |
| `capacity-type` | `spot` or `on-demand`; the default is `on-demand` |
| `launch-template-id` | id of the launch template to use |
| `launch-template-version` | its version; the default is `$Default` |
| `subnet-name` | subnet name |
| `subnet-tag-key` | subnet tag key |
| `security-group-name` | security group name |
| `security-group-tag-key` | security group tag key |

Its `errors()` method reports several problems:

- unknown labels with this prefix;
- a bad capacity type;
- a version given without an id;
- a subnet name and subnet tag key set together.

## Dynamic defaults

`nodeprov.defaults.with_dynamic_defaults(provisioner, ca_bundle_path)` returns a copy of the provisioner. If the cluster has no CA bundle, the copy gets one, read from the given file and base64-encoded. If the file does not exist, the bundle stays `None`. The provisioner you pass in is never changed.

## What this package does not do

This package is a library only. It does not include:

- a command-line program;
- a controller loop that watches for pending pods;
- a bin-packer;
- an admission webhook server;
- a Kubernetes API client.

It also does not include real EC2 or SSM clients. `AWSCloudProvider` takes any objects that provide the methods described by `nodeprov.ec2.EC2API` and `nodeprov.ec2.SSMAPI`, and you supply those clients yourself.

## Running the tests

```
pip install -e ".[test]"
pytest
```