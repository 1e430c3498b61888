"""Bidirectional file sync between package directories and the live install.

A forward sync copies package -> install ("sync out"), a reverse sync
copies install -> package ("sync in").  Write results are not trusted on
their own: directories are verified by comparing content fingerprints,
and a failed file write is accepted when the destination already holds
the same bytes.
"""

from __future__ import annotations

import hashlib
import json
import logging
from pathlib import Path

from devpanel.models.package import FileOperation
from devpanel.models.sync import SyncOperationResult, SyncStatus
from devpanel.repositories.storage import StorageBackend

logger = logging.getLogger(__name__)


class FileSyncEngine:
    """Copies file operations in either direction and verifies the result."""

    def __init__(self, storage: StorageBackend) -> None:
        self.storage = storage

    # ------------------------------------------------------------------
    # Sync
    # ------------------------------------------------------------------

    def sync(
        self, operations: list[FileOperation], reverse: bool = False
    ) -> list[SyncOperationResult]:
        """Run every operation and return one result per operation.

        Nothing is rolled back when an operation fails; the caller reports
        the failures so the operator can retry.
        """
        results: list[SyncOperationResult] = []
        for op in operations:
            if reverse:
                src, dst = op.install_path, op.package_path
            else:
                src, dst = op.package_path, op.install_path

            writable = self.storage.make_writable(dst)

            if self.storage.isdir(src):
                copied = self.storage.copy_tree(src, dst)
                status = SyncStatus.SUCCEEDED if copied else SyncStatus.FAILED
            elif self.storage.isfile(src):
                status = self._copy_file(src, dst)
            else:
                status = SyncStatus.UNKNOWN

            status = self._verify(src, dst, status)
            if status is not SyncStatus.SUCCEEDED:
                logger.warning("Sync of %s -> %s ended as %s", src, dst, status.value)

            results.append(
                SyncOperationResult(
                    package_path=op.package_path,
                    install_path=op.install_path,
                    source=src,
                    destination=dst,
                    writable=writable,
                    result=status,
                )
            )

        logger.info(
            "Synced %d operation(s) %s, %d failed",
            len(results),
            "install -> package" if reverse else "package -> install",
            sum(1 for r in results if r.result is not SyncStatus.SUCCEEDED),
        )
        return results

    def _copy_file(self, src: str, dst: str) -> SyncStatus:
        try:
            data = self.storage.read_bytes(src)
        except OSError:
            logger.warning("Failed to read %s", src, exc_info=True)
            return SyncStatus.FAILED
        if self.storage.write_bytes(dst, data):
            return SyncStatus.SUCCEEDED
        return SyncStatus.FAILED

    def _verify(self, src: str, dst: str, status: SyncStatus) -> SyncStatus:
        """Confirm or correct the naive copy result by inspecting *dst*.

        A missing source stays ``UNKNOWN``: there is nothing to compare.
        """
        if status is SyncStatus.UNKNOWN:
            return status

        if self.storage.isdir(src):
            if not self.storage.isdir(dst):
                return SyncStatus.FAILED
            if self.directories_equal(src, dst):
                return SyncStatus.SUCCEEDED
            return SyncStatus.FAILED

        if (
            status is SyncStatus.FAILED
            and self.storage.isfile(dst)
            and self.files_equal(src, dst)
        ):
            return SyncStatus.SUCCEEDED
        return status

    # ------------------------------------------------------------------
    # Equivalence
    # ------------------------------------------------------------------

    def files_equal(self, left: str | Path, right: str | Path) -> bool:
        """Return ``True`` if both files hold identical bytes."""
        try:
            return self.storage.read_bytes(left) == self.storage.read_bytes(right)
        except OSError:
            return False

    def tree_manifest(self, root: str | Path) -> dict[str, str]:
        """Map every file below *root* (relative POSIX path) to its SHA-256."""
        root = Path(root)
        return {
            rel: self.storage.file_hash(root / rel)
            for rel in self.storage.find_files(root)
        }

    def tree_fingerprint(self, root: str | Path) -> str:
        """Hash the deterministic JSON form of :meth:`tree_manifest`."""
        serialized = json.dumps(self.tree_manifest(root), sort_keys=True)
        return hashlib.sha256(serialized.encode("utf-8")).hexdigest()

    def directories_equal(self, left: str | Path, right: str | Path) -> bool:
        """Return ``True`` if both trees hold the same paths with the same content.

        The full tree is always walked on both sides.
        """
        return self.tree_fingerprint(left) == self.tree_fingerprint(right)


def sync_succeeded(results: list[SyncOperationResult]) -> bool:
    """A sync succeeds only when every operation is confirmed."""
    return all(r.result is SyncStatus.SUCCEEDED for r in results)
