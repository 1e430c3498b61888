"""Filesystem access for package and install trees, using fsspec."""

from __future__ import annotations

import hashlib
import logging
import os
import stat
from collections.abc import Iterator
from pathlib import Path

import fsspec

logger = logging.getLogger(__name__)

# Read size used when hashing files.
_HASH_BLOCK_SIZE = 1024 * 1024


class StorageBackend:
    """Filesystem abstraction over the local forum installation.

    Uses fsspec internally so every read, write, listing and copy goes
    through one API.  Paths are resolved to absolute POSIX strings before
    they reach the filesystem.
    """

    def __init__(self) -> None:
        self.fs: fsspec.AbstractFileSystem = fsspec.filesystem("file")

    @staticmethod
    def _norm(path: str | Path) -> str:
        """Resolve *path* to an absolute POSIX path string."""
        return Path(path).resolve().as_posix()

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def exists(self, path: str | Path) -> bool:
        """Return ``True`` if *path* exists."""
        return self.fs.exists(self._norm(path))

    def isdir(self, path: str | Path) -> bool:
        """Return ``True`` if *path* is a directory."""
        return self.fs.isdir(self._norm(path))

    def isfile(self, path: str | Path) -> bool:
        """Return ``True`` if *path* is a regular file."""
        return self.fs.isfile(self._norm(path))

    def size(self, path: str | Path) -> int:
        """Return the size of *path* in bytes."""
        return self.fs.size(self._norm(path))

    def list_dir_detail(self, path: str | Path) -> list[dict]:
        """List entries in *path* with ``name`` (basename) and ``type`` keys."""
        entries = self.fs.ls(self._norm(path), detail=True)
        return [
            {
                "name": Path(e["name"]).name,
                "type": e["type"],
                "size": e.get("size"),
            }
            for e in entries
        ]

    def walk(self, path: str | Path) -> Iterator[tuple[str, list[str], list[str]]]:
        """Walk *path* top-down, yielding ``(dirpath, dirnames, filenames)``.

        Callers may prune ``dirnames`` in place to skip sub-trees.
        """
        yield from self.fs.walk(self._norm(path), topdown=True)

    def find_files(self, path: str | Path) -> list[str]:
        """Return every file below *path* as a sorted list of POSIX relative paths."""
        root = self._norm(path)
        return sorted(
            Path(f).relative_to(root).as_posix()
            for f in self.fs.find(root, withdirs=False)
        )

    # ------------------------------------------------------------------
    # Content
    # ------------------------------------------------------------------

    def read_bytes(self, path: str | Path) -> bytes:
        """Read the entire contents of *path* as bytes."""
        return self.fs.cat_file(self._norm(path))

    def open(self, path: str | Path, mode: str = "rb"):
        """Return an open file-like object for *path*."""
        return self.fs.open(self._norm(path), mode)

    def file_hash(self, path: str | Path) -> str:
        """Compute the SHA-256 hex digest of the file at *path*."""
        digest = hashlib.sha256()
        with self.open(path, "rb") as fh:
            for block in iter(lambda: fh.read(_HASH_BLOCK_SIZE), b""):
                digest.update(block)
        return digest.hexdigest()

    # ------------------------------------------------------------------
    # Mutation
    # ------------------------------------------------------------------

    def write_bytes(self, path: str | Path, data: bytes) -> bool:
        """Write *data* to *path*, creating parent directories.

        Returns ``False`` instead of raising when the write fails so the
        caller can verify the destination itself.
        """
        target = self._norm(path)
        try:
            self.fs.makedirs(Path(target).parent.as_posix(), exist_ok=True)
            self.fs.pipe_file(target, data)
        except OSError:
            logger.warning("Failed to write %s", target, exc_info=True)
            return False
        return True

    def copy_tree(self, src: str | Path, dst: str | Path) -> bool:
        """Recursively copy the directory *src* into *dst*.

        Existing files in *dst* are overwritten, extra files are left in
        place.  Returns ``True`` only if every file was copied.
        """
        src_root = self._norm(src)
        dst_root = self._norm(dst)
        ok = True
        for dirpath, dirnames, filenames in self.walk(src_root):
            rel_dir = Path(dirpath).relative_to(src_root)
            target_dir = Path(dst_root) / rel_dir
            try:
                self.fs.makedirs(target_dir.as_posix(), exist_ok=True)
            except OSError:
                logger.warning("Failed to create %s", target_dir, exc_info=True)
                ok = False
                continue
            for name in filenames:
                try:
                    self.fs.cp_file(
                        f"{dirpath}/{name}", (target_dir / name).as_posix()
                    )
                except OSError:
                    logger.warning(
                        "Failed to copy %s/%s", dirpath, name, exc_info=True
                    )
                    ok = False
        return ok

    def make_writable(self, path: str | Path) -> bool:
        """Try to make *path* writable and report whether it is.

        A path that does not exist yet is writable when its closest
        existing ancestor directory is.
        """
        target = Path(self._norm(path))
        if target.exists():
            if not os.access(target, os.W_OK):
                try:
                    target.chmod(target.stat().st_mode | stat.S_IWUSR)
                except OSError:
                    logger.warning("Could not chmod %s", target, exc_info=True)
            return os.access(target, os.W_OK)

        parent = target.parent
        while not parent.exists() and parent != parent.parent:
            parent = parent.parent
        return os.access(parent, os.W_OK)

    def delete(self, path: str | Path) -> None:
        """Delete the file at *path*."""
        self.fs.rm_file(self._norm(path))
