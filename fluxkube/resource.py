"""Minimal Kubernetes object model, loaded from YAML files and multidocs."""

from __future__ import annotations

import os
import stat
from collections.abc import Iterator, Mapping
from dataclasses import dataclass, field
from typing import Any

import yaml

POLICY_PREFIX = "flux.weave.works/"

_YAML_SEPARATOR = b"\n---"


def _text(value: Any, what: str) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (dict, list)):
        raise ValueError(f"cannot unmarshal {what}: expected a scalar")
    return str(value)


def _mapping(value: Any, what: str) -> dict:
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise ValueError(f"cannot unmarshal {what}: expected a mapping")
    return value


def _sequence(value: Any, what: str) -> list:
    if value is None:
        return []
    if not isinstance(value, list):
        raise ValueError(f"cannot unmarshal {what}: expected a sequence")
    return value


def _int(value: Any, what: str) -> int:
    if value is None:
        return 0
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValueError(f"cannot unmarshal {what}: expected an integer")
    return value


def _string_map(value: Any, what: str) -> dict[str, str] | None:
    if value is None:
        return None
    return {_text(k, what): _text(v, what) for k, v in _mapping(value, what).items()}


@dataclass
class BaseObject:
    """Fields common to every Kubernetes object we read."""

    source: str = ""
    kind: str = ""
    namespace: str = ""
    name: str = ""
    annotations: dict[str, str] = field(default_factory=dict)
    data: bytes = field(default=b"", repr=False, compare=False)

    def resource_id(self) -> str:
        return f"{self.kind} {self.namespace or 'default'}/{self.name}"

    def service_ids(self, all_resources: Mapping[str, BaseObject]) -> list[str]:
        """The services that depend on this resource."""
        return []

    def policy(self) -> dict[str, str]:
        """The boolean policies switched on by annotations."""
        return {
            key[len(POLICY_PREFIX):]: "true"
            for key, value in self.annotations.items()
            if key.startswith(POLICY_PREFIX) and value == "true"
        }


@dataclass
class Namespace(BaseObject):
    """A namespace; identified by kind and name alone."""

    def resource_id(self) -> str:
        return f"{self.kind} {self.name}"


@dataclass
class ContainerSpec:
    """A container in a pod template."""

    name: str = ""
    image: str = ""
    args: list[str] = field(default_factory=list)
    ports: list[tuple[int, str]] = field(default_factory=list)
    env: list[tuple[str, str]] = field(default_factory=list)


@dataclass
class PodTemplate:
    """The pod template of a controller such as a deployment."""

    labels: dict[str, str] = field(default_factory=dict)
    annotations: dict[str, str] = field(default_factory=dict)
    containers: list[ContainerSpec] = field(default_factory=list)
    volumes: list[tuple[str, str]] = field(default_factory=list)
    image_pull_secrets: list[str] = field(default_factory=list)


@dataclass
class KubeService(BaseObject):
    """A Kubernetes Service object."""

    service_type: str = ""
    ports: list[dict[str, Any]] = field(default_factory=list)
    selector: dict[str, str] | None = None

    def service_id(self) -> str:
        return f"{self.namespace or 'default'}/{self.name}"

    def service_ids(self, all_resources: Mapping[str, BaseObject]) -> list[str]:
        return [self.service_id()]

    def matches(self, labels: Mapping[str, str]) -> bool:
        """Whether the selector matches the labels; an empty selector matches all."""
        return all(k in labels and labels[k] == v for k, v in (self.selector or {}).items())


@dataclass
class Deployment(BaseObject):
    """A Kubernetes Deployment object."""

    replicas: int = 0
    template: PodTemplate = field(default_factory=PodTemplate)

    def service_ids(self, all_resources: Mapping[str, BaseObject]) -> list[str]:
        found: set[str] = set()
        for res in all_resources.values():
            if (
                isinstance(res, KubeService)
                and res.namespace == self.namespace
                and res.matches(self.template.labels)
            ):
                found.update(res.service_ids(all_resources))
        return sorted(found)


def _container(value: Any) -> ContainerSpec:
    c = _mapping(value, "container")
    return ContainerSpec(
        name=_text(c.get("name"), "container name"),
        image=_text(c.get("image"), "container image"),
        args=[_text(a, "container args") for a in _sequence(c.get("args"), "args")],
        ports=[
            (
                _int(_mapping(p, "port").get("containerPort"), "containerPort"),
                _text(_mapping(p, "port").get("name"), "port name"),
            )
            for p in _sequence(c.get("ports"), "ports")
        ],
        env=[
            (
                _text(_mapping(e, "env").get("name"), "env name"),
                _text(_mapping(e, "env").get("value"), "env value"),
            )
            for e in _sequence(c.get("env"), "env")
        ],
    )


def _pod_template(value: Any) -> PodTemplate:
    tmpl = _mapping(value, "template")
    meta = _mapping(tmpl.get("metadata"), "template metadata")
    spec = _mapping(tmpl.get("spec"), "pod spec")
    return PodTemplate(
        labels=_string_map(meta.get("labels"), "labels") or {},
        annotations=_string_map(meta.get("annotations"), "annotations") or {},
        containers=[_container(c) for c in _sequence(spec.get("containers"), "containers")],
        volumes=[
            (
                _text(_mapping(v, "volume").get("name"), "volume name"),
                _text(
                    _mapping(_mapping(v, "volume").get("secret"), "secret").get("secretName"),
                    "secretName",
                ),
            )
            for v in _sequence(spec.get("volumes"), "volumes")
        ],
        image_pull_secrets=[
            _text(_mapping(s, "imagePullSecret").get("name"), "imagePullSecret name")
            for s in _sequence(spec.get("imagePullSecrets"), "imagePullSecrets")
        ],
    )


def _as_bytes(data: bytes | str) -> bytes:
    return data.encode("utf-8") if isinstance(data, str) else bytes(data)


def split_yaml_documents(data: bytes | str) -> Iterator[bytes]:
    """Yield the documents of a YAML stream, split on lines starting '---'."""
    data = _as_bytes(data)
    while data:
        i = data.find(_YAML_SEPARATOR)
        if i < 0:
            yield data
            return
        end = i + len(_YAML_SEPARATOR)
        after = data[end:]
        if not after:
            yield data[:i]
            return
        j = after.find(b"\n")
        if j < 0:
            # An unterminated separator line at the end: nothing more to yield.
            return
        yield data[:i]
        data = data[end + j + 1:]


def unmarshal_object(source: str, data: bytes | str) -> BaseObject:
    """Decode one YAML document into the most specific object type known."""
    raw = _as_bytes(data)
    doc = yaml.safe_load(raw.decode("utf-8"))
    if doc is None:
        doc = {}
    if not isinstance(doc, dict):
        raise ValueError(f"cannot unmarshal {type(doc).__name__} into an object")
    meta = _mapping(doc.get("metadata"), "metadata")
    base: dict[str, Any] = {
        "source": source,
        "data": raw,
        "kind": _text(doc.get("kind"), "kind"),
        "namespace": _text(meta.get("namespace"), "namespace"),
        "name": _text(meta.get("name"), "name"),
        "annotations": _string_map(meta.get("annotations"), "annotations") or {},
    }
    kind = base["kind"]
    if kind == "Deployment":
        spec = _mapping(doc.get("spec"), "spec")
        return Deployment(
            **base,
            replicas=_int(spec.get("replicas"), "replicas"),
            template=_pod_template(spec.get("template")),
        )
    if kind == "Service":
        spec = _mapping(doc.get("spec"), "spec")
        return KubeService(
            **base,
            service_type=_text(spec.get("type"), "type"),
            ports=[dict(_mapping(p, "port")) for p in _sequence(spec.get("ports"), "ports")],
            selector=_string_map(spec.get("selector"), "selector"),
        )
    if kind == "Namespace":
        return Namespace(**base)
    return BaseObject(**base)


def parse_multidoc(multidoc: bytes | str, source: str) -> dict[str, BaseObject]:
    """Build the set of objects, keyed by resource ID, from a multidoc YAML."""
    objs: dict[str, BaseObject] = {}
    for chunk in split_yaml_documents(multidoc):
        try:
            obj = unmarshal_object(source, chunk)
        except (yaml.YAMLError, ValueError, UnicodeDecodeError) as exc:
            raise ValueError(f'parsing YAML doc from "{source}": {exc}') from exc
        objs[obj.resource_id()] = obj
    return objs


def _walk(root: str) -> Iterator[tuple[str, bool]]:
    try:
        is_dir = stat.S_ISDIR(os.lstat(root).st_mode)
    except OSError as exc:
        raise ValueError(f'walking "{root}" for yamels: {exc}') from exc
    yield root, is_dir
    if is_dir:
        try:
            names = sorted(os.listdir(root))
        except OSError as exc:
            raise ValueError(f'walking "{root}" for yamels: {exc}') from exc
        for name in names:
            yield from _walk(os.path.join(root, name))


def _ext(path: str) -> str:
    base = os.path.basename(path)
    dot = base.rfind(".")
    return base[dot:] if dot >= 0 else ""


def load(*roots: str | os.PathLike[str]) -> dict[str, BaseObject]:
    """Load every object in the YAML files under the given paths."""
    objs: dict[str, BaseObject] = {}
    for root in roots:
        for path, is_dir in _walk(os.fspath(root)):
            ext = _ext(path)
            if not ((not is_dir and ext == ".yaml") or ext == ".yml"):
                continue
            try:
                with open(path, "rb") as fh:
                    content = fh.read()
            except OSError as exc:
                raise ValueError(f'reading file at "{path}": {exc}') from exc
            try:
                docs = parse_multidoc(content, path)
            except ValueError as exc:
                raise ValueError(f'parsing file at "{path}": {exc}') from exc
            for rid, obj in docs.items():
                if rid in objs:
                    raise ValueError(
                        f"resource '{rid}' defined more than once "
                        f"(in {objs[rid].source} and {path})"
                    )
                objs[rid] = obj
    return objs