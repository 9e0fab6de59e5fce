"""
errors.py - Build failures

Every error here is fatal: the pipeline aborts before any output file is
written, so the last good catalogs stay on disk.
"""
from __future__ import annotations

from pathlib import Path


class HostlistsError(Exception):
    """Base class for all registry build failures."""


class CompileFailure(HostlistsError):
    """The compile collaborator failed for one hostlist."""

    def __init__(self, list_id: object, cause: object) -> None:
        self.list_id = list_id
        super().__init__(f"Failed to compile {list_id}: {cause}")


class MissingTagReference(HostlistsError):
    """A hostlist references a tag keyword that is not in the tag registry."""

    def __init__(self, keyword: str, list_id: object = None, tags_file: str | Path | None = None) -> None:
        self.keyword = keyword
        self.list_id = list_id
        message = f"Cannot find tag metadata {keyword}"
        if list_id is not None:
            message += f" (referenced by hostlist {list_id})"
        if tags_file is not None:
            message += f", fix it in {tags_file}"
        super().__init__(message)


class MissingServiceId(HostlistsError):
    """A service that receives dynamic rules is absent from the distribution."""

    def __init__(self, service_id: str) -> None:
        self.service_id = service_id
        super().__init__(f"Service {service_id!r} not found in distribution")


class InvalidAsset(HostlistsError):
    """A service icon failed structural validation."""

    def __init__(self, entity_id: object, reason: str) -> None:
        self.entity_id = entity_id
        self.reason = reason
        super().__init__(f"Invalid icon for service {entity_id!r}: {reason}")


class BuildIOError(HostlistsError):
    """Reading or writing a build file failed."""

    def __init__(self, path: str | Path, cause: object) -> None:
        self.path = Path(path)
        super().__init__(f"{path}: {cause}")


class DuplicateServiceId(HostlistsError):
    """Two service definitions on the same side share an id."""

    def __init__(self, service_id: object, first: object, second: object) -> None:
        self.service_id = service_id
        self.locations = (first, second)
        super().__init__(f"Service {service_id!r} is defined twice: in {first} and in {second}")


class InvalidServiceId(HostlistsError):
    """A service id cannot be used as a source fragment file name."""

    def __init__(self, service_id: object) -> None:
        self.service_id = service_id
        super().__init__(f"Service id {service_id!r} is not a valid fragment file name")
