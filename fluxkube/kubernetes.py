"""Kubernetes cluster handle: add-on detection, pod controllers and sync."""

from __future__ import annotations

import logging
import threading
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from typing import Any, Protocol

import yaml

from fluxkube.cluster import (
    EMPTY_SELECTOR,
    MULTIPLE_MATCHING,
    NO_MATCHING,
    ClusterError,
    Container,
    SyncDef,
    SyncError,
)

STATUS_UNKNOWN = "unknown"
STATUS_READY = "ready"
STATUS_UPDATING = "updating"

_log = logging.getLogger(__name__)


def _get(obj: Mapping[str, Any] | None, *keys: str) -> Any:
    """Follow nested keys through mappings, giving None where a step is missing."""
    value: Any = obj
    for key in keys:
        if not isinstance(value, Mapping):
            return None
        value = value.get(key)
    return value


def is_addon(obj: Mapping[str, Any]) -> bool:
    """Whether an API object is managed by the Kubernetes add-on manager."""
    if _get(obj, "metadata", "namespace") != "kube-system":
        return False
    labels = _get(obj, "metadata", "labels") or {}
    return (
        labels.get("kubernetes.io/cluster-service") == "true"
        or labels.get("addonmanager.kubernetes.io/mode") in ("EnsureExists", "Reconcile")
    )


@dataclass
class ApiObject:
    """A minimal view of a resource definition: its kind, name and namespace."""

    data: bytes = field(default=b"", repr=False)
    version: str = ""
    kind: str = ""
    name: str = ""
    namespace: str = ""

    def namespace_or_default(self) -> str:
        return self.namespace or "default"


def _scalar(value: Any, what: str) -> str:
    if value is None:
        return ""
    if isinstance(value, (dict, list)):
        raise ValueError(f"cannot unmarshal {what}: expected a scalar")
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def definition_obj(data: bytes | str) -> ApiObject:
    """Decode the minimal object from a resource definition."""
    raw = data.encode("utf-8") if isinstance(data, str) else bytes(data)
    try:
        doc = yaml.safe_load(raw.decode("utf-8"))
    except (yaml.YAMLError, UnicodeDecodeError) as exc:
        raise ValueError(f"parsing definition: {exc}") from exc
    if doc is None:
        doc = {}
    if not isinstance(doc, dict):
        raise ValueError(f"cannot unmarshal {type(doc).__name__} into an API object")
    meta = doc.get("metadata")
    if meta is None:
        meta = {}
    if not isinstance(meta, dict):
        raise ValueError("cannot unmarshal metadata: expected a mapping")
    return ApiObject(
        data=raw,
        version=_scalar(doc.get("apiVersion"), "apiVersion"),
        kind=_scalar(doc.get("kind"), "kind"),
        name=_scalar(meta.get("name"), "name"),
        namespace=_scalar(meta.get("namespace"), "namespace"),
    )


@dataclass
class PodController:
    """A deployment, a replication controller, or neither, as API objects."""

    deployment: Mapping[str, Any] | None = None
    replication_controller: Mapping[str, Any] | None = None

    def _controller(self) -> Mapping[str, Any] | None:
        if self.deployment is not None:
            return self.deployment
        return self.replication_controller

    def template_containers(self) -> list[Container]:
        """The containers named in the pod template."""
        containers = _get(self._controller(), "spec", "template", "spec", "containers") or []
        return [Container(name=c.get("name", ""), image=c.get("image", "")) for c in containers]

    def template_labels(self) -> dict[str, str]:
        return dict(_get(self._controller(), "spec", "template", "metadata", "labels") or {})

    def matched_by(self, selector: Mapping[str, str]) -> bool:
        """Whether every key=value of the selector labels the template's pods."""
        labels = self.template_labels()
        return all(labels.get(k, "") == v for k, v in selector.items())

    def status(self) -> str:
        """A summary of the rollout state of the controller."""
        if self.deployment is not None:
            dep = self.deployment
            observed = _get(dep, "status", "observedGeneration") or 0
            if observed >= (_get(dep, "metadata", "generation") or 0):
                updated = _get(dep, "status", "updatedReplicas") or 0
                wanted = _get(dep, "spec", "replicas")
                if wanted is None:
                    wanted = 1
                if updated == wanted:
                    return STATUS_READY
                return f"{updated} out of {wanted} updated"
            return STATUS_UPDATING
        if self.replication_controller is not None:
            rc = self.replication_controller
            # Updating an RC means replacing it, so this is an approximation.
            observed = _get(rc, "status", "observedGeneration") or 0
            if observed >= (_get(rc, "metadata", "generation") or 0):
                ready = _get(rc, "status", "readyReplicas") or 0
                total = _get(rc, "status", "replicas") or 0
                if ready == total:
                    return STATUS_READY
                return f"{ready} out of {total} ready"
            return STATUS_UPDATING
        return STATUS_UNKNOWN


def match_controller(
    service: Mapping[str, Any], controllers: Iterable[PodController]
) -> PodController:
    """Find the single pod controller selected by a service."""
    selector = _get(service, "spec", "selector") or {}
    if not selector:
        raise ClusterError(EMPTY_SELECTOR)
    matching = [c for c in controllers if c.matched_by(selector)]
    if not matching:
        raise ClusterError(NO_MATCHING)
    if len(matching) > 1:
        raise ClusterError(MULTIPLE_MATCHING)
    return matching[0]


class Applier(Protocol):
    def delete(self, logger: Any, obj: ApiObject) -> None: ...

    def apply(self, logger: Any, obj: ApiObject) -> None: ...


class SSHKeyRing(Protocol):
    def regenerate(self) -> None: ...

    def key_pair(self) -> tuple[Any, str]: ...


class KubeCluster:
    """A handle on a Kubernetes cluster that applies definitions serially."""

    def __init__(
        self,
        applier: Applier,
        ssh_key_ring: SSHKeyRing | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        self.applier = applier
        self.ssh_key_ring = ssh_key_ring
        self.logger = logger or _log
        self._lock = threading.Lock()
        self._stopped = False

    def stop(self) -> None:
        """Stop accepting requests; a stopped cluster cannot be restarted."""
        with self._lock:
            self._stopped = True

    def sync(self, spec: SyncDef) -> None:
        """Delete then apply each action's definitions; raise SyncError on failures."""
        with self._lock:
            if self._stopped:
                raise RuntimeError("cluster has been stopped")
            errors: dict[str, BaseException] = {}
            for action in spec.actions:
                logger = logging.LoggerAdapter(
                    self.logger, {"method": "Sync", "resource": action.resource_id}
                )
                try:
                    if action.delete:
                        self.applier.delete(logger, definition_obj(action.delete))
                    if action.apply:
                        self.applier.apply(logger, definition_obj(action.apply))
                except Exception as exc:  # each failure is recorded per resource
                    errors[action.resource_id] = exc
            if errors:
                raise SyncError(errors)

    def public_ssh_key(self, regenerate: bool = False) -> Any:
        """Return the current public key, regenerating the pair first if asked."""
        if self.ssh_key_ring is None:
            raise ClusterError("no SSH key ring configured")
        if regenerate:
            self.ssh_key_ring.regenerate()
        public_key, _ = self.ssh_key_ring.key_pair()
        return public_key