import io
import os

import pytest
import yaml

from fluxkube.save import (
    abbreviate_kind,
    delete_empty_map_values,
    delete_nested,
    filter_object,
    output_file,
    save_export,
    save_yaml,
)

EXPORT = """---
apiVersion: v1
kind: Namespace
metadata:
  name: demo
  uid: abc
---
apiVersion: extensions/v1beta1
kind: Deployment
metadata:
  annotations:
    deployment.kubernetes.io/revision: "3"
    team: core
  name: web
  namespace: demo
  uid: abc
spec:
  replicas: 2
  template:
    metadata:
      creationTimestamp: null
      labels:
        name: web
    spec:
      containers:
      - image: nginx
        name: web
status:
  replicas: 2
"""


def _obj(kind, name, namespace="", spec=None, annotations=None):
    return {
        "apiVersion": "v1",
        "kind": kind,
        "metadata": {
            "annotations": dict(annotations or {}),
            "labels": {},
            "name": name,
            "namespace": namespace,
        },
        "spec": spec,
    }


@pytest.mark.parametrize(
    "kind, short",
    [
        ("Service", "svc"),
        ("ReplicationController", "rc"),
        ("Deployment", "dep"),
        ("DaemonSet", "DaemonSet"),
    ],
)
def test_abbreviate_kind(kind, short):
    assert abbreviate_kind(kind) == short


def test_delete_nested_removes_deep_key():
    spec = {"template": {"metadata": {"creationTimestamp": None, "labels": {"a": "b"}}}}
    delete_nested(spec, "template", "metadata", "creationTimestamp")
    assert spec == {"template": {"metadata": {"labels": {"a": "b"}}}}


def test_delete_nested_ignores_non_mapping_and_no_keys():
    spec = {"template": "scalar", "x": 1}
    delete_nested(spec, "template", "metadata")
    delete_nested(spec)
    delete_nested(None, "x")
    assert spec == {"template": "scalar", "x": 1}


def test_delete_empty_map_values():
    value = {"a": {}, "b": None, "c": [], "d": "x", "e": {"f": None}, "g": [{"h": {}}]}
    assert delete_empty_map_values(value) is False
    assert value == {"d": "x", "e": {}, "g": [{}]}


@pytest.mark.parametrize("value, empty", [({}, True), (None, True), ([], True), ("", False), (0, False)])
def test_delete_empty_map_values_reports_emptiness(value, empty):
    assert delete_empty_map_values(value) is empty


def test_filter_object_removes_unsaved_data():
    obj = _obj(
        "Deployment",
        "web",
        "demo",
        spec={"template": {"metadata": {"creationTimestamp": None, "labels": {"n": "w"}}}, "x": None},
        annotations={
            "deployment.kubernetes.io/revision": "3",
            "kubectl.kubernetes.io/last-applied-configuration": "{}",
            "kubernetes.io/change-cause": "why",
            "team": "core",
        },
    )
    filter_object(obj)
    assert obj["metadata"]["annotations"] == {"team": "core"}
    assert obj["spec"] == {"template": {"metadata": {"labels": {"n": "w"}}}}


def test_output_file_namespace(tmp_path):
    out = io.StringIO()
    path = output_file(out, _obj("Namespace", "demo"), str(tmp_path))
    assert path == os.path.join(str(tmp_path), "demo-ns.yaml")
    assert out.getvalue() == f"Saving Namespace 'demo' to {path}\n"


def test_output_file_creates_namespace_directory(tmp_path):
    out = io.StringIO()
    path = output_file(out, _obj("Service", "web", "demo"), str(tmp_path))
    assert path == os.path.join(str(tmp_path), "demo", "web-svc.yaml")
    assert (tmp_path / "demo").is_dir()


def test_save_yaml_to_stdout_round_trips():
    out = io.StringIO()
    obj = _obj("Service", "web", "demo", spec={"type": "ClusterIP"})
    save_yaml(out, obj, "-")
    text = out.getvalue()
    assert text.startswith("---\n")
    loaded = yaml.safe_load(text)
    assert loaded == {
        "apiVersion": "v1",
        "kind": "Service",
        "metadata": {"name": "web", "namespace": "demo"},
        "spec": {"type": "ClusterIP"},
    }


def test_save_yaml_to_directory(tmp_path):
    out = io.StringIO()
    save_yaml(out, _obj("Deployment", "web", "demo", spec={"replicas": 2}), str(tmp_path))
    content = (tmp_path / "demo" / "web-dep.yaml").read_text()
    assert content.startswith("---\n")
    assert yaml.safe_load(content)["spec"] == {"replicas": 2}


def test_save_export_to_directory(tmp_path):
    out = io.StringIO()
    save_export(EXPORT, str(tmp_path), out)
    ns = yaml.safe_load((tmp_path / "demo-ns.yaml").read_text())
    assert ns == {"apiVersion": "v1", "kind": "Namespace", "metadata": {"name": "demo"}}
    dep = yaml.safe_load((tmp_path / "demo" / "web-dep.yaml").read_text())
    assert dep == {
        "apiVersion": "extensions/v1beta1",
        "kind": "Deployment",
        "metadata": {"annotations": {"team": "core"}, "name": "web", "namespace": "demo"},
        "spec": {
            "replicas": 2,
            "template": {
                "metadata": {"labels": {"name": "web"}},
                "spec": {"containers": [{"image": "nginx", "name": "web"}]},
            },
        },
    }
    dep_path = os.path.normpath(os.path.join(str(tmp_path), "demo", "web-dep.yaml"))
    assert f"Saving Deployment 'web' to {dep_path}\n" in out.getvalue()


def test_save_export_to_stdout():
    out = io.StringIO()
    save_export(EXPORT.encode(), "-", out)
    docs = [d for d in yaml.safe_load_all(out.getvalue()) if d is not None]
    assert [d["kind"] for d in docs] == ["Namespace", "Deployment"]
    assert "status" not in docs[1]


def test_save_export_rejects_file_path(tmp_path):
    target = tmp_path / "file.txt"
    target.write_text("x")
    with pytest.raises(NotADirectoryError, match="is not a directory"):
        save_export(EXPORT, str(target), io.StringIO())


def test_save_export_missing_path(tmp_path):
    with pytest.raises(FileNotFoundError):
        save_export(EXPORT, str(tmp_path / "missing"), io.StringIO())


def test_save_export_malformed_yaml():
    with pytest.raises(ValueError, match="unmarshalling exported yaml"):
        save_export("kind: [unclosed\n", "-", io.StringIO())