"""Cluster-facing data types: services, containers and sync definitions."""

from __future__ import annotations

from collections.abc import Callable, Iterator, Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import Protocol

NO_RESOURCE_FILES_FOUND = "no resource file found for service"
MULTIPLE_RESOURCE_FILES_FOUND = "multiple resource files found for service"

# Logical problems with cluster configuration; these may be recoverable.
EMPTY_SELECTOR = "empty selector"
WRONG_RESOURCE_KIND = "new definition does not match existing resource"
NO_MATCHING_SERVICE = "no matching service"
SERVICE_HAS_NO_SELECTOR = "service has no selector"
NO_MATCHING = "no matching replication controllers or deployments"
MULTIPLE_MATCHING = "multiple matching replication controllers or deployments"
NO_MATCHING_IMAGES = "no matching images"


class ClusterError(Exception):
    """A logical problem with cluster configuration or manifests."""


@dataclass
class Container:
    """A container specification in a pod: its name and configured image."""

    name: str
    image: str


@dataclass
class ContainersOrExcuse:
    """The containers of a service, or the reason they could not be found."""

    excuse: str = ""
    containers: list[Container] = field(default_factory=list)


@dataclass
class Service:
    """A platform service as seen in the running cluster."""

    id: str
    ip: str = ""
    metadata: dict[str, str] = field(default_factory=dict)
    status: str = ""
    containers: ContainersOrExcuse = field(default_factory=ContainersOrExcuse)

    def containers_or_none(self) -> list[Container]:
        """Return whatever containers are known, ignoring any excuse."""
        return self.containers.containers

    def containers_or_error(self) -> list[Container]:
        """Return the containers, raising ClusterError if there is an excuse."""
        if self.containers.excuse:
            raise ClusterError(self.containers.excuse)
        return self.containers.containers


@dataclass
class SyncAction:
    """Actions on one resource: delete first if given, then apply if given."""

    resource_id: str
    delete: bytes = b""
    apply: bytes = b""


@dataclass
class SyncDef:
    """The actions to undertake when synchronising a cluster."""

    actions: list[SyncAction] = field(default_factory=list)


class SyncError(Exception):
    """Errors raised by individual resources during a sync, by resource ID."""

    def __init__(self, errors: Mapping[str, BaseException] | None = None) -> None:
        self.errors: dict[str, BaseException] = dict(errors or {})
        super().__init__(self.errors)

    def __str__(self) -> str:
        return "; ".join(f"{rid}: {err}" for rid, err in self.errors.items())

    def __contains__(self, resource_id: object) -> bool:
        return resource_id in self.errors

    def __getitem__(self, resource_id: str) -> BaseException:
        return self.errors[resource_id]

    def __iter__(self) -> Iterator[str]:
        return iter(self.errors)

    def __len__(self) -> int:
        return len(self.errors)


class _ServiceFinder(Protocol):
    def find_defined_services(self, path: str) -> Mapping[str, list[str]]: ...


def update_manifest(
    manifests: _ServiceFinder,
    root: str,
    service_id: str,
    f: Callable[[bytes], bytes],
) -> None:
    """Rewrite the single manifest file defining a service with f(contents)."""
    services = manifests.find_defined_services(root)
    paths = services.get(service_id) or []
    if not paths:
        raise ClusterError(NO_RESOURCE_FILES_FOUND)
    if len(paths) > 1:
        raise ClusterError(MULTIPLE_RESOURCE_FILES_FOUND)
    path = Path(paths[0])
    path.write_bytes(f(path.read_bytes()))