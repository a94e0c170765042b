"""Reading manifests and rewriting their policy annotations in place."""

from __future__ import annotations

import json
import re
from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass, field
from typing import Any

import yaml

from fluxkube.cluster import Container
from fluxkube.resource import POLICY_PREFIX

_PLAIN_SCALAR = re.compile(r"[A-Za-z0-9_./][A-Za-z0-9_./ -]*")
_ANNOTATIONS_RE = re.compile(r"\n  annotations:\s*(?:#.*)*(?:\n    .*)*$", re.M)
_METADATA_RE = re.compile(r"^(metadata:\s*(?:#.*)*)$", re.M)


@dataclass
class Manifest:
    """The parts of a manifest that annotation and image updates look at."""

    name: str = ""
    annotations: dict[str, str] = field(default_factory=dict)
    containers: list[Container] = field(default_factory=list)


def _text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def _as_text(definition: bytes | str) -> str:
    return definition.decode("utf-8") if isinstance(definition, bytes) else definition


def parse_manifest(definition: bytes | str) -> Manifest:
    """Decode the metadata and container list of a manifest."""
    try:
        doc = yaml.safe_load(_as_text(definition))
    except yaml.YAMLError as exc:
        raise ValueError(f"decoding annotations: {exc}") from exc
    if doc is None:
        return Manifest()
    if not isinstance(doc, dict):
        raise ValueError("decoding annotations: document is not a mapping")
    meta = doc.get("metadata") or {}
    spec = doc.get("spec") or {}
    template = spec.get("template") or {} if isinstance(spec, dict) else {}
    pod_spec = template.get("spec") or {} if isinstance(template, dict) else {}
    raw_containers = pod_spec.get("containers") or [] if isinstance(pod_spec, dict) else []
    if not isinstance(meta, dict) or not isinstance(raw_containers, list):
        raise ValueError("decoding annotations: unexpected manifest structure")
    annotations = meta.get("annotations") or {}
    if not isinstance(annotations, dict):
        raise ValueError("decoding annotations: annotations is not a mapping")
    containers = [
        Container(name=_text(c.get("name")), image=_text(c.get("image")))
        for c in raw_containers
        if isinstance(c, dict)
    ]
    return Manifest(
        name=_text(meta.get("name")),
        annotations={_text(k): _text(v) for k, v in annotations.items()},
        containers=containers,
    )


def _scalar(value: str) -> str:
    if value and _PLAIN_SCALAR.fullmatch(value) and not value.endswith(" "):
        try:
            if yaml.safe_load(value) == value:
                return value
        except yaml.YAMLError:
            pass
    return json.dumps(value)


def _annotations_fragment(annotations: Mapping[str, str]) -> str:
    if not annotations:
        return ""
    lines = ["annotations:"]
    lines += [f"  {_scalar(k)}: {_scalar(v)}" for k, v in sorted(annotations.items())]
    indented = "\n".join("  " + line for line in lines)
    return "\n" + indented


def update_annotations(
    definition: bytes | str,
    f: Callable[[dict[str, str]], dict[str, str]],
) -> bytes:
    """Rewrite the metadata annotations of a manifest with f(annotations)."""
    manifest = parse_manifest(definition)
    fragment = _annotations_fragment(f(dict(manifest.annotations)))
    text = _as_text(definition)

    new_text, count = _ANNOTATIONS_RE.subn(lambda _m: fragment, text, count=1)
    if not count:
        new_text, count = _METADATA_RE.subn(lambda m: m.group(0) + fragment, text, count=1)
    if not count:
        raise ValueError("Could not update resource annotations")
    return new_text.encode("utf-8")


def update_policies(
    definition: bytes | str,
    add: Mapping[str, str] | None = None,
    remove: Iterable[str] | None = None,
) -> bytes:
    """Add and then remove policy annotations; removal wins for the same policy."""

    def apply(annotations: dict[str, str]) -> dict[str, str]:
        for policy, value in (add or {}).items():
            annotations[POLICY_PREFIX + policy] = value
        for policy in remove or ():
            annotations.pop(POLICY_PREFIX + policy, None)
        return annotations

    return update_annotations(definition, apply)