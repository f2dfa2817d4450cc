"""
Blob Storage.

Opaque byte storage for serialized session histories. A write returns the
location the blob can later be read back from; the metadata table only ever
stores that location.
"""

import logging
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Dict, Optional

from ...services.exceptions import PersistenceError

logger = logging.getLogger(__name__)


class BlobStore(ABC):
    @abstractmethod
    def write(self, key: str, data: bytes) -> str:
        """Stores (or overwrites) the blob under `key` and returns its location."""
        pass

    @abstractmethod
    def read(self, location: str) -> Optional[bytes]:
        """Returns the blob at `location`, or None if nothing is stored there."""
        pass


class InMemoryBlobStore(BlobStore):
    """
    Dictionary-backed blobs for testing/dev purposes.
    """

    def __init__(self):
        self._blobs: Dict[str, bytes] = {}

    def write(self, key: str, data: bytes) -> str:
        location = f"memory://{key}"
        self._blobs[location] = data
        return location

    def read(self, location: str) -> Optional[bytes]:
        return self._blobs.get(location)


class FileSystemBlobStore(BlobStore):
    """
    Stores blobs as files under a root directory. Locations are absolute paths.
    """

    def __init__(self, root_dir: str):
        self.root = Path(root_dir).resolve()

    def write(self, key: str, data: bytes) -> str:
        path = self._path_for(key)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            # Write-then-rename so readers never see a half-written history
            tmp_path = path.with_suffix(path.suffix + ".tmp")
            tmp_path.write_bytes(data)
            tmp_path.replace(path)
        except OSError as e:
            raise PersistenceError(f"Failed to write blob '{key}': {e}") from e
        logger.debug(f"Wrote blob {path} ({len(data)} bytes)")
        return str(path)

    def read(self, location: str) -> Optional[bytes]:
        path = Path(location)
        try:
            return path.read_bytes()
        except FileNotFoundError:
            return None
        except OSError as e:
            raise PersistenceError(f"Failed to read blob '{location}': {e}") from e

    def _path_for(self, key: str) -> Path:
        path = (self.root / key).resolve()
        if self.root not in path.parents:
            raise PersistenceError(f"Blob key escapes storage root: {key}")
        return path
