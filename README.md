# fluxkube

A library for working with Kubernetes resource manifests kept in a
repository, and for applying resource definitions to a cluster.

## Modules

- `fluxkube.resource` reads `.yaml`/`.yml` files (`load`) or a
  multi-document YAML blob (`parse_multidoc`) into typed objects:
  `Deployment`, `KubeService`, `Namespace`, or `BaseObject` for any other
  kind. The result is a dict keyed by resource ID, for example
  `Deployment default/helloworld` or `Namespace kube-system`. A resource
  ID defined twice across the loaded files raises `ValueError`.
  `split_yaml_documents` splits a YAML stream on `---` lines.
  `KubeService.matches(labels)` tests a selector against pod labels, and
  `Deployment.service_ids(all_resources)` lists the services in the same
  namespace whose selectors match the deployment's pod template.
- `fluxkube.policies` rewrites the `metadata.annotations` block of a
  manifest in place, leaving the rest of the text untouched.
  `update_policies(definition, add, remove)` sets `flux.weave.works/<policy>`
  annotations from `add` and then removes those named in `remove`, so a
  policy in both ends up removed. `parse_manifest` reads a manifest's name,
  annotations and containers into a `Manifest`.
- `fluxkube.kubernetes` holds `KubeCluster`, whose `sync(spec)` runs each
  `SyncAction` of a `SyncDef` in order, deleting and then applying through
  an applier. Failures are collected per resource ID and raised together as
  a `SyncError`; after a failure the next action still runs. It also has
  `is_addon`, `PodController` (containers, label matching and rollout
  status of a deployment or replication controller given as API object
  dicts) and `match_controller`.
- `fluxkube.kubectl` provides `Kubectl`, an applier that runs a `kubectl`
  executable with `--namespace <ns> apply -f -` or `delete -f -`, feeding
  the definition on standard input. Connection flags come from a
  `KubectlConfig`. A non-zero exit raises `KubectlError` carrying kubectl's
  standard error.
- `fluxkube.save` turns exported configuration into files fit for version
  control. `save_export(config, path="-")` splits the YAML stream, keeps
  only `apiVersion`, `kind`, selected metadata and `spec`, drops
  cluster-state annotations, `spec.template.metadata.creationTimestamp`
  and empty values, and writes each object to standard output or under a
  directory as `<namespace>/<name>-<kind>.yaml` (`svc`, `dep`, `rc` for the
  common kinds) and `<name>-ns.yaml` for namespaces.
- `fluxkube.cluster` holds the shared data types (`Service`, `Container`,
  `ContainersOrExcuse`, `SyncAction`, `SyncDef`, `SyncError`,
  `ClusterError`) and `update_manifest`, which rewrites the single file
  defining a service, given any object with a `find_defined_services(path)`
  method.
- `fluxkube.cliutil` has `UsageError`, `check_exactly_one` and
  `make_example` for building command-line front ends.

## Examples

Load manifests and list the services each deployment serves:

```python
from fluxkube.resource import Deployment, load

objects = load("deploy/")
for resource_id, obj in objects.items():
    if isinstance(obj, Deployment):
        print(resource_id, obj.service_ids(objects))
```

Mark a deployment as automated and unlocked:

```python
from fluxkube.policies import update_policies

with open("deploy/helloworld-deploy.yaml", "rb") as fh:
    definition = fh.read()
new_definition = update_policies(definition, {"automated": "true"}, ["locked"])
```

Apply definitions through kubectl:

```python
from fluxkube.cluster import SyncAction, SyncDef, SyncError
from fluxkube.kubectl import Kubectl, KubectlConfig
from fluxkube.kubernetes import KubeCluster

cluster = KubeCluster(Kubectl("kubectl", KubectlConfig(host="https://localhost:6443")))
try:
    cluster.sync(SyncDef([SyncAction("Deployment default/helloworld", apply=definition)]))
except SyncError as err:
    for resource_id in err:
        print(resource_id, err[resource_id])
```

Save an export into a directory tree:

```python
from fluxkube.save import save_export

save_export(exported_yaml, "config/")
```

## What it does not do

- It does not change container images in manifests; only policy
  annotations are rewritten.
- It does not work out which files define which services from a directory;
  `update_manifest` needs that lookup supplied by the caller.
- It does not talk to the Kubernetes API server to list services,
  namespaces or controllers; `PodController` and `is_addon` work on API
  objects you already have, and `KubeCluster` only syncs and reports SSH
  keys from a key ring you provide.
- It has no command-line program, and no job submission or polling.

## Installing

```
pip install .
```

## Running the tests

```
pip install .[test]
pytest
```