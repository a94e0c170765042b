"""Saving exported cluster configuration as version-controllable YAML files."""

from __future__ import annotations

import os
import stat
import sys
from collections.abc import Mapping
from typing import Any, TextIO

import yaml

from fluxkube.resource import split_yaml_documents

# Annotations that record cluster state rather than intent.
_UNSAVED_ANNOTATIONS = (
    "deployment.kubernetes.io/revision",
    "kubectl.kubernetes.io/last-applied-configuration",
    "kubernetes.io/change-cause",
)

_KIND_ABBREVIATIONS = {
    "Service": "svc",
    "ReplicationController": "rc",
    "Deployment": "dep",
}


def _text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (dict, list)):
        raise ValueError("expected a scalar value")
    return str(value)


def _string_map(value: Any, what: str) -> dict[str, str]:
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise ValueError(f"cannot unmarshal {what}: expected a mapping")
    return {_text(k): _text(v) for k, v in value.items()}


def _save_object(doc: Any) -> dict[str, Any]:
    """Keep only the fields worth saving from an exported object."""
    if doc is None:
        doc = {}
    if not isinstance(doc, dict):
        raise ValueError(f"cannot unmarshal {type(doc).__name__} into an object")
    meta = doc.get("metadata")
    if meta is None:
        meta = {}
    if not isinstance(meta, dict):
        raise ValueError("cannot unmarshal metadata: expected a mapping")
    spec = doc.get("spec")
    if spec is not None and not isinstance(spec, dict):
        raise ValueError("cannot unmarshal spec: expected a mapping")
    return {
        "apiVersion": _text(doc.get("apiVersion")),
        "kind": _text(doc.get("kind")),
        "metadata": {
            "annotations": _string_map(meta.get("annotations"), "annotations"),
            "labels": _string_map(meta.get("labels"), "labels"),
            "name": _text(meta.get("name")),
            "namespace": _text(meta.get("namespace")),
        },
        "spec": spec,
    }


def _sorted(value: Any) -> Any:
    if isinstance(value, dict):
        return {k: _sorted(value[k]) for k in sorted(value, key=str)}
    if isinstance(value, list):
        return [_sorted(v) for v in value]
    return value


def _marshal(obj: Mapping[str, Any]) -> str:
    out: dict[str, Any] = {}
    for key in ("apiVersion", "kind"):
        if obj.get(key):
            out[key] = obj[key]
    meta = obj.get("metadata") or {}
    metadata: dict[str, Any] = {}
    for key in ("annotations", "labels"):
        if meta.get(key):
            metadata[key] = _sorted(meta[key])
    for key in ("name", "namespace"):
        if meta.get(key):
            metadata[key] = meta[key]
    if metadata:
        out["metadata"] = metadata
    if obj.get("spec"):
        out["spec"] = _sorted(obj["spec"])
    try:
        return yaml.safe_dump(out, default_flow_style=False, sort_keys=False)
    except yaml.YAMLError as exc:
        raise ValueError(f"marshalling yaml: {exc}") from exc


def delete_nested(mapping: Any, *keys: str) -> None:
    """Remove the value found by following keys through nested mappings."""
    if not keys or not isinstance(mapping, dict):
        return
    first, *rest = keys
    if not rest:
        mapping.pop(first, None)
        return
    delete_nested(mapping.get(first), *rest)


def delete_empty_map_values(value: Any) -> bool:
    """Drop mapping entries whose values are empty; report whether value is empty."""
    if value is None:
        return True
    if isinstance(value, dict):
        if not value:
            return True
        for key in [k for k, v in value.items() if delete_empty_map_values(v)]:
            del value[key]
        return False
    if isinstance(value, list):
        if not value:
            return True
        for element in value:
            delete_empty_map_values(element)
    return False


def filter_object(obj: dict[str, Any]) -> dict[str, Any]:
    """Remove data that should not be version controlled, in place."""
    meta = obj.get("metadata")
    if isinstance(meta, dict) and isinstance(meta.get("annotations"), dict):
        for key in _UNSAVED_ANNOTATIONS:
            meta["annotations"].pop(key, None)
    delete_nested(obj.get("spec"), "template", "metadata", "creationTimestamp")
    delete_empty_map_values(obj.get("spec"))
    return obj


def abbreviate_kind(kind: str) -> str:
    """The short form of a resource kind used in file names."""
    return _KIND_ABBREVIATIONS.get(kind, kind)


def output_file(stdout: TextIO, obj: Mapping[str, Any], out: str) -> str:
    """Choose (and prepare the directory for) the file an object is saved to."""
    meta = obj.get("metadata") or {}
    kind = obj.get("kind", "")
    name = meta.get("name", "")
    if kind == "Namespace":
        path = f"{name}-ns.yaml"
    else:
        directory = meta.get("namespace", "")
        try:
            os.makedirs(os.path.join(out, directory), exist_ok=True)
        except OSError as exc:
            raise OSError(f"making directory for namespace: {exc}") from exc
        path = os.path.join(directory, f"{name}-{abbreviate_kind(kind)}.yaml")
    path = os.path.normpath(os.path.join(out, path))
    stdout.write(f"Saving {kind} '{name}' to {path}\n")
    return path


def save_yaml(stdout: TextIO, obj: Mapping[str, Any], out: str) -> None:
    """Write an object as YAML to stdout ('-') or to a file under a directory."""
    text = _marshal(obj)
    if out == "-":
        stdout.write("---\n")
        stdout.write(text)
        return
    path = output_file(stdout, obj, out)
    # A leading separator helps when files are concatenated.
    with open(path, "w", encoding="utf-8") as fh:
        fh.write("---\n")
        fh.write(text)


def save_export(config: bytes | str, path: str = "-", stdout: TextIO | None = None) -> None:
    """Split an exported multidoc and save each object, filtered, to path."""
    stdout = sys.stdout if stdout is None else stdout
    if path != "-":
        info = os.stat(path)
        if not stat.S_ISDIR(info.st_mode):
            raise NotADirectoryError(f"path {path} is not a directory")
    for chunk in split_yaml_documents(config):
        try:
            obj = _save_object(yaml.safe_load(chunk.decode("utf-8")))
        except (yaml.YAMLError, UnicodeDecodeError, ValueError) as exc:
            raise ValueError(f"unmarshalling exported yaml: {exc}") from exc
        filter_object(obj)
        save_yaml(stdout, obj, path)