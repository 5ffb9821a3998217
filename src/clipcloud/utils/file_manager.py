import asyncio
import datetime
import logging
import os
import shutil
import string
from pathlib import Path
from typing import BinaryIO, List, Optional, Union

from clipcloud.database.base import BlobInfo, BlobNotFoundError, ClipboardPayloadStore, StoreError

logger = logging.getLogger(__name__)

PARTIAL_SUFFIX = ".part"
CASE_MARK = "^"


def encode_path_name(blob_name: str) -> str:
    """
    Map a case-sensitive blob name to a name that is safe on case-insensitive
    filesystems: "Dev-42/a.bin" becomes "^dev-42/a.bin".

    The encoding keeps prefixes, so an owner prefix still names one directory.
    """
    encoded = []
    for char in blob_name:
        if char == CASE_MARK:
            encoded.append(CASE_MARK * 2)
        elif char in string.ascii_uppercase:
            encoded.append(CASE_MARK + char.lower())
        else:
            encoded.append(char)
    return "".join(encoded)


def decode_path_name(path_name: str) -> str:
    decoded = []
    chars = iter(path_name)
    for char in chars:
        if char == CASE_MARK:
            marked = next(chars, "")
            decoded.append(CASE_MARK if marked == CASE_MARK else marked.upper())
        else:
            decoded.append(char)
    return "".join(decoded)


class FilePayloadStore(ClipboardPayloadStore):
    """Payload blobs as files under a base directory; blob names map to relative paths."""

    def __init__(self, base_dir: Optional[Union[str, Path]] = None):
        if base_dir is None:
            base_dir = Path.home() / ".clipscape" / "payloads"
        self.base_dir = Path(base_dir).expanduser().resolve()
        self.base_dir.mkdir(parents=True, exist_ok=True)

    def _path_for(self, blob_name: str) -> Path:
        path = (self.base_dir / encode_path_name(blob_name)).resolve()
        if self.base_dir not in path.parents:
            raise StoreError(f"Blob name escapes payload directory: {blob_name!r}")
        return path

    async def upload(self, blob_name: str, stream: BinaryIO, content_type: str) -> None:
        await asyncio.to_thread(self._write, blob_name, stream)
        logger.debug(f"Stored blob {blob_name} ({content_type})")

    def _write(self, blob_name: str, stream: BinaryIO) -> None:
        path = self._path_for(blob_name)
        partial = path.with_name(path.name + PARTIAL_SUFFIX)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            with partial.open("wb") as handle:
                shutil.copyfileobj(stream, handle)
            # readers never observe a half-written blob
            os.replace(partial, path)
        except OSError as e:
            try:
                partial.unlink(missing_ok=True)
            except OSError:
                logger.warning(f"Could not remove partial upload {partial}")
            raise StoreError(f"Failed to write blob {blob_name}: {e}") from e

    async def open_read(self, blob_name: str) -> BinaryIO:
        return await asyncio.to_thread(self._open, blob_name)

    def _open(self, blob_name: str) -> BinaryIO:
        path = self._path_for(blob_name)
        try:
            return path.open("rb")
        except FileNotFoundError:
            raise BlobNotFoundError(blob_name) from None
        except OSError as e:
            raise StoreError(f"Failed to open blob {blob_name}: {e}") from e

    async def delete(self, blob_name: str) -> None:
        await asyncio.to_thread(self._delete, blob_name)

    def _delete(self, blob_name: str) -> None:
        path = self._path_for(blob_name)
        try:
            path.unlink(missing_ok=True)
        except OSError as e:
            raise StoreError(f"Failed to delete blob {blob_name}: {e}") from e

    async def list_blobs(self, prefix: str) -> List[BlobInfo]:
        return await asyncio.to_thread(self._list, prefix)

    def _list(self, prefix: str) -> List[BlobInfo]:
        directory, _, _ = prefix.rpartition("/")
        root = self._path_for(directory) if directory else self.base_dir
        if not root.is_dir():
            return []

        blobs = []
        try:
            for file_path in root.rglob("*"):
                # partial uploads (*.part) are listed under their own names as well
                if not file_path.is_file():
                    continue
                name = decode_path_name(file_path.relative_to(self.base_dir).as_posix())
                if not name.startswith(prefix):
                    continue
                modified_at = datetime.datetime.fromtimestamp(
                    file_path.stat().st_mtime, tz=datetime.timezone.utc)
                blobs.append(BlobInfo(name=name, modified_at=modified_at))
        except OSError as e:
            raise StoreError(f"Failed to list blobs under {prefix!r}: {e}") from e
        return sorted(blobs, key=lambda blob: blob.name)
