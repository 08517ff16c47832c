"""Filesystem blob store for uploaded attachments.

Blobs live under a single root directory. Keys are namespaced by owner id
(``<owner>/<uuid>-<name>`` or ``<owner>/<conversation>/<uuid>-<name>``) and are
never allowed to resolve outside the root. Each blob has a JSON sidecar holding
its declared name, content type, size and entity tag. Blobs are never mutated
after upload.
"""

import hashlib
import json
import logging
import re
import shutil
import uuid
from dataclasses import dataclass
from pathlib import Path

logger = logging.getLogger(__name__)

_META_SUFFIX = ".meta.json"


class BlobKeyError(Exception):
    pass


@dataclass
class BlobInfo:
    key: str
    name: str
    size: int
    content_type: str
    etag: str


def safe_file_name(name: str) -> str:
    cleaned = re.sub(r"[^a-zA-Z0-9_.-]", "_", name.strip()) or "file"
    return cleaned.lstrip(".") or "file"


def owned_by(key: str, owner_id: str) -> bool:
    """True if ``key`` sits inside ``owner_id``'s namespace."""
    return bool(owner_id) and key.startswith(f"{owner_id}/")


class BlobStore:
    def __init__(self, root: Path):
        self.root = root

    def _resolve(self, key: str) -> Path:
        """Resolve a key within the store root. Raises BlobKeyError if it escapes."""
        root = self.root.resolve()
        resolved = (root / key).resolve()
        if resolved == root or not resolved.is_relative_to(root):
            raise BlobKeyError(f"Key '{key}' escapes the blob store")
        return resolved

    def put(
        self,
        owner_id: str,
        name: str,
        data: bytes,
        content_type: str,
        namespace: str | None = None,
    ) -> BlobInfo:
        prefix = f"{owner_id}/{namespace}" if namespace else owner_id
        key = f"{prefix}/{uuid.uuid4()}-{safe_file_name(name)}"
        path = self._resolve(key)
        path.parent.mkdir(parents=True, exist_ok=True)

        info = BlobInfo(
            key=key,
            name=name,
            size=len(data),
            content_type=content_type or "application/octet-stream",
            etag=hashlib.md5(data).hexdigest(),
        )
        path.write_bytes(data)
        path.with_name(path.name + _META_SUFFIX).write_text(json.dumps({
            "name": info.name,
            "size": info.size,
            "content_type": info.content_type,
            "etag": info.etag,
        }))
        logger.debug(f"Stored blob {key} ({info.size} bytes)")
        return info

    def info(self, key: str) -> BlobInfo | None:
        try:
            path = self._resolve(key)
        except BlobKeyError:
            return None
        meta_path = path.with_name(path.name + _META_SUFFIX)
        if not path.is_file() or not meta_path.is_file():
            return None
        meta = json.loads(meta_path.read_text())
        return BlobInfo(
            key=key,
            name=meta.get("name") or key.rsplit("/", 1)[-1],
            size=meta.get("size", path.stat().st_size),
            content_type=meta.get("content_type") or "application/octet-stream",
            etag=meta.get("etag", ""),
        )

    def path_for(self, key: str) -> Path:
        return self._resolve(key)

    def read(self, key: str) -> bytes | None:
        if self.info(key) is None:
            return None
        return self._resolve(key).read_bytes()

    def delete(self, key: str) -> None:
        try:
            path = self._resolve(key)
        except BlobKeyError:
            return
        path.unlink(missing_ok=True)
        path.with_name(path.name + _META_SUFFIX).unlink(missing_ok=True)

    def delete_prefix(self, prefix: str) -> None:
        """Remove a whole namespace directory, e.g. ``<owner>/<conversation>/``."""
        try:
            target = self._resolve(prefix.rstrip("/"))
        except BlobKeyError:
            return
        if target.is_dir():
            shutil.rmtree(target)
            logger.debug(f"Deleted blob namespace {prefix}")
