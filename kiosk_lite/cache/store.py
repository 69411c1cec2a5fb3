"""Filesystem-backed durable store: one JSON blob and one lock marker per resource.

Blobs live at ``<data_dir>/<resource>.json`` and are replaced atomically
(temporary file in the same directory, then ``os.replace``). Each blob file's
mtime is stamped to its ``stored_at`` so freshness can be judged from a stat
call alone. Lock markers live at ``<data_dir>/<resource>.lock`` and are
created with ``O_CREAT | O_EXCL``.

Nothing is cached in memory: every call goes back to the filesystem so that
separate processes sharing ``data_dir`` observe each other's state.
"""

from __future__ import annotations

import contextlib
import json
import logging
import os
import socket
import tempfile
from pathlib import Path
from typing import Any, Callable, Optional, Union

from pydantic import ValidationError

from ..core.timezone_utils import epoch_seconds
from .exceptions import StorageFault
from .models import CachedBlob, LockMarker, ResourceName

logger = logging.getLogger(__name__)

BLOB_SUFFIX = ".json"
LOCK_SUFFIX = ".lock"


def _ms_to_ns(ms: int) -> int:
    return ms * 1_000_000


class PersistentStore:
    """Durable key -> blob storage keyed by resource name."""

    def __init__(
        self,
        data_dir: Union[str, Path],
        clock: Optional[Callable[[], float]] = None,
    ) -> None:
        """Create a store rooted at ``data_dir``.

        Args:
            data_dir: Directory holding blobs and lock markers
            clock: Callable returning epoch seconds (defaults to epoch_seconds)
        """
        self._data_dir = Path(data_dir)
        self._clock = clock or epoch_seconds

    @property
    def data_dir(self) -> Path:
        return self._data_dir

    def now_ms(self) -> int:
        return int(self._clock() * 1000)

    def ensure_data_dir(self) -> None:
        """Create the data directory if it does not exist."""
        try:
            self._data_dir.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise StorageFault(f"Cannot create data directory {self._data_dir}: {exc}") from exc

    def blob_path(self, resource: ResourceName) -> Path:
        return self._data_dir / f"{ResourceName(resource).value}{BLOB_SUFFIX}"

    def lock_path(self, resource: ResourceName) -> Path:
        return self._data_dir / f"{ResourceName(resource).value}{LOCK_SUFFIX}"

    # ------------------------------------------------------------------ blobs

    def read(self, resource: ResourceName) -> Optional[CachedBlob]:
        """Return the stored blob, or None if the resource was never written.

        Raises:
            StorageFault: if the file exists but cannot be read or parsed.
        """
        path = self.blob_path(resource)
        try:
            with path.open("r", encoding="utf-8") as fh:
                data = json.load(fh)
        except FileNotFoundError:
            return None
        except (OSError, ValueError) as exc:
            raise StorageFault(f"Failed to read {path}: {exc}") from exc

        try:
            return CachedBlob.model_validate(data)
        except ValidationError as exc:
            raise StorageFault(f"Corrupt cache blob {path}: {exc}") from exc

    def write(self, resource: ResourceName, items: list[dict[str, Any]]) -> CachedBlob:
        """Replace the blob for ``resource`` and stamp the current time as stored_at.

        Readers see either the previous blob or the complete new one.

        Raises:
            StorageFault: if the blob cannot be persisted.
        """
        resource = ResourceName(resource)
        path = self.blob_path(resource)
        try:
            blob = CachedBlob(resource=resource, stored_at=self.now_ms(), items=list(items))
            payload = json.dumps(blob.model_dump(mode="json"), ensure_ascii=False)
        except (ValueError, TypeError) as exc:
            raise StorageFault(f"Cannot serialize {resource.value} items for {path}: {exc}") from exc

        tmp_path: Optional[Path] = None
        try:
            with tempfile.NamedTemporaryFile(
                "w",
                dir=self._data_dir,
                prefix=f".{resource.value}.",
                suffix=".tmp",
                delete=False,
                encoding="utf-8",
            ) as tf:
                tmp_path = Path(tf.name)
                tf.write(payload)
                tf.flush()
                os.fsync(tf.fileno())

            stamp = _ms_to_ns(blob.stored_at)
            os.utime(tmp_path, ns=(stamp, stamp))
            tmp_path.replace(path)
        except OSError as exc:
            if tmp_path is not None:
                with contextlib.suppress(OSError):
                    tmp_path.unlink()
            raise StorageFault(f"Failed to write {path}: {exc}") from exc

        logger.debug("Stored %d %s items at %d", len(blob.items), resource.value, blob.stored_at)
        return blob

    def touch(self, resource: ResourceName) -> Optional[int]:
        """Re-stamp an existing blob as just stored, keeping its items.

        Returns:
            The new stored_at, or None when there is no blob to touch.
        """
        blob = self.read(resource)
        if blob is None:
            return None
        return self.write(resource, blob.items).stored_at

    def modification_time(self, resource: ResourceName) -> Optional[int]:
        """Return the blob's stored_at (epoch ms) from its mtime, without parsing it."""
        path = self.blob_path(resource)
        try:
            return path.stat().st_mtime_ns // 1_000_000
        except FileNotFoundError:
            return None
        except OSError as exc:
            raise StorageFault(f"Failed to stat {path}: {exc}") from exc

    # ----------------------------------------------------------- lock markers

    def put_lock_marker(self, resource: ResourceName) -> bool:
        """Create the lock marker if absent.

        Returns:
            True if this call created the marker, False if it already existed.
        """
        resource = ResourceName(resource)
        path = self.lock_path(resource)
        now = self.now_ms()

        try:
            fd = os.open(path, os.O_CREAT | os.O_EXCL | os.O_WRONLY, 0o644)
        except FileExistsError:
            return False
        except OSError as exc:
            raise StorageFault(f"Failed to create lock marker {path}: {exc}") from exc

        marker = LockMarker(
            resource=resource, acquired_at=now, pid=os.getpid(), host=socket.gethostname()
        )
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                fh.write(marker.model_dump_json())
            stamp = _ms_to_ns(now)
            os.utime(path, ns=(stamp, stamp))
        except OSError as exc:
            # The marker exists even if its body is incomplete; its age still governs reclaim.
            logger.warning("Failed to write lock marker body %s: %s", path, exc)

        return True

    def remove_lock_marker(self, resource: ResourceName) -> None:
        """Delete the lock marker. Absence is not an error."""
        path = self.lock_path(resource)
        try:
            path.unlink()
        except FileNotFoundError:
            return
        except OSError as exc:
            raise StorageFault(f"Failed to remove lock marker {path}: {exc}") from exc

    def lock_marker_age(self, resource: ResourceName) -> Optional[int]:
        """Return the marker's age in milliseconds, or None if there is no marker."""
        path = self.lock_path(resource)
        try:
            mtime_ms = path.stat().st_mtime_ns // 1_000_000
        except FileNotFoundError:
            return None
        except OSError as exc:
            raise StorageFault(f"Failed to stat lock marker {path}: {exc}") from exc
        return max(0, self.now_ms() - mtime_ms)
