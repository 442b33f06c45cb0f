"""
Evidence object storage abstraction.

v0: file:// support (local filesystem)
v1: s3:// support (add an S3 handler without changing the evidence store)

Storage is addressed by URI, not by a backend flag. Object paths are relative
keys such as ``org-1/evidence/ISO27001/A.5.1/20260101T000000000000Z_ab12cd34_policy.pdf``.
"""
from __future__ import annotations

import logging
import os
from abc import ABC, abstractmethod
from pathlib import Path, PurePosixPath
from typing import List
from urllib.parse import urlparse

from .errors import ConflictError, ExternalServiceError, ValidationError

logger = logging.getLogger(__name__)


class ObjectExistsError(ConflictError):
    """Raised when a create-only write targets an occupied path."""

    def __init__(self, path: str):
        super().__init__(
            "OBJECT_EXISTS",
            f"An object already exists at '{path}'",
            storage_path=path,
        )


class ObjectStore(ABC):
    """Abstract base class for evidence binary storage."""

    @abstractmethod
    def write(self, path: str, data: bytes, overwrite: bool = False) -> None:
        """Write bytes to ``path``.

        Raises:
            ObjectExistsError: if the path is occupied and overwrite is False
        """

    @abstractmethod
    def read(self, path: str) -> bytes:
        """Read the object stored at ``path``."""

    @abstractmethod
    def exists(self, path: str) -> bool:
        """Whether an object is stored at ``path``."""

    @abstractmethod
    def list(self, prefix: str = "") -> List[str]:
        """List object paths starting with ``prefix``, sorted."""

    @abstractmethod
    def delete(self, path: str) -> bool:
        """Delete the object at ``path``.

        Returns False when nothing was stored there; that is not an error.
        """

    @abstractmethod
    def uri_for(self, path: str) -> str:
        """Full URI of the object at ``path``."""


def _validate_key(path: str) -> PurePosixPath:
    key = PurePosixPath(path)
    if not path or key.is_absolute() or ".." in key.parts:
        raise ValidationError("INVALID_STORAGE_PATH", f"Invalid storage path '{path}'")
    return key


class FileObjectStore(ObjectStore):
    """Local filesystem object store (file:// URIs).

    Structure:
        {root}/{organization_id}/evidence/{framework_key}/{control_ref}/{file}
    """

    def __init__(self, root: Path):
        """Initialize with the root folder holding all objects.

        Args:
            root: Absolute or relative path of the storage root
        """
        self.root = Path(root)
        self.root.mkdir(parents=True, exist_ok=True)

    def _full_path(self, path: str) -> Path:
        return self.root.joinpath(*_validate_key(path).parts)

    def write(self, path: str, data: bytes, overwrite: bool = False) -> None:
        full_path = self._full_path(path)
        try:
            full_path.parent.mkdir(parents=True, exist_ok=True)
            # "x" mode fails atomically if the file exists
            with open(full_path, "wb" if overwrite else "xb") as f:
                f.write(data)
        except FileExistsError:
            raise ObjectExistsError(path)
        except OSError as e:
            logger.error(f"Failed to write object {path}: {e}")
            raise ExternalServiceError("STORAGE_WRITE_FAILED", str(e), storage_path=path)

    def read(self, path: str) -> bytes:
        full_path = self._full_path(path)
        try:
            return full_path.read_bytes()
        except OSError as e:
            raise ExternalServiceError("STORAGE_READ_FAILED", str(e), storage_path=path)

    def exists(self, path: str) -> bool:
        return self._full_path(path).is_file()

    def list(self, prefix: str = "") -> List[str]:
        if not self.root.exists():
            return []
        paths = []
        for dirpath, _dirnames, filenames in os.walk(self.root):
            for filename in filenames:
                rel = Path(dirpath, filename).relative_to(self.root).as_posix()
                if rel.startswith(prefix):
                    paths.append(rel)
        return sorted(paths)

    def delete(self, path: str) -> bool:
        full_path = self._full_path(path)
        try:
            full_path.unlink()
            return True
        except FileNotFoundError:
            return False
        except OSError as e:
            logger.error(f"Failed to delete object {path}: {e}")
            raise ExternalServiceError("STORAGE_DELETE_FAILED", str(e), storage_path=path)

    def uri_for(self, path: str) -> str:
        return f"file://{self._full_path(path).resolve()}"


def create_object_store(uri: str) -> ObjectStore:
    """Factory function to create the appropriate ObjectStore from a URI.

    Args:
        uri: Base URI (e.g., "file:///var/lib/evidence" or "s3://bucket/prefix")

    Raises:
        ValueError: If URI scheme is not supported
    """
    parsed = urlparse(uri)

    if parsed.scheme == "file":
        # file://./relative keeps the dot segment in netloc
        raw_path = f"{parsed.netloc}{parsed.path}" if parsed.netloc else parsed.path
        return FileObjectStore(Path(raw_path))

    elif parsed.scheme == "s3":
        raise NotImplementedError(f"S3 storage not yet implemented. URI: {uri}")

    else:
        raise ValueError(
            f"Unsupported storage scheme: {parsed.scheme}. "
            f"Supported: file://, s3:// (v1)"
        )
