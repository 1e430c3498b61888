"""Builds downloadable archives of package directories.

The directory walk and exclusion rules live in :func:`collect_files`;
writing the container is delegated to an :class:`ArchiveBackend` so the
library and external-process implementations share the same file list.
Each build writes to its own temporary file, which is deleted once the
download has been streamed or the build has failed.
"""

from __future__ import annotations

import logging
import os
import re
import shutil
import subprocess
import tarfile
import tempfile
import time
import uuid
import zipfile
from abc import ABC, abstractmethod
from collections.abc import Iterator
from dataclasses import dataclass, field
from fnmatch import fnmatchcase
from pathlib import Path

from devpanel.config import Settings
from devpanel.repositories.storage import StorageBackend

logger = logging.getLogger(__name__)

# Requested extension -> suffix of the file written to disk.
ARCHIVE_SUFFIXES: dict[str, str] = {
    "tgz": "tar.gz",
    "tar": "tar",
    "zip": "zip",
}

_URL_UNSAFE_RE = re.compile(r"[^A-Za-z0-9$\-_.+!*'(),{}|\\^~\[\]`<>#%/?:@&=]")
_HEADER_UNSAFE_RE = re.compile(r"[\";\r\n]")


class ArchiveRestrictionError(PermissionError):
    """The working file would live outside the sandbox allow-list."""


class ArchiveGenerationError(RuntimeError):
    """The archive could not be produced."""


# ------------------------------------------------------------------
# Naming
# ------------------------------------------------------------------


def default_package_name(package: str) -> str:
    """Strip characters that are not allowed in a URL."""
    return _URL_UNSAFE_RE.sub("", package)


def archive_file_name(
    template: str | None,
    package: str,
    manifest_name: str,
    manifest_version: str,
    extension: str,
) -> str:
    """Return the download file name for a package archive.

    *template* may use ``{VERSION}``, ``{VERSION-}``, ``{VERSION_}``,
    ``{CUSTOMIZATION NAME}``, ``{CUSTOMIZATION-NAME}`` and
    ``{CUSTOMIZATION_NAME}``.  Without a template the sanitized package
    directory name is used.  Quotes, semicolons and line breaks are dropped.
    """
    name = template or default_package_name(package)
    replacements = {
        "{VERSION}": manifest_version,
        "{VERSION-}": manifest_version.replace(".", "-"),
        "{VERSION_}": manifest_version.replace(".", "_"),
        "{CUSTOMIZATION NAME}": manifest_name,
        "{CUSTOMIZATION-NAME}": re.sub(r"\s", "-", manifest_name),
        "{CUSTOMIZATION_NAME}": re.sub(r"\s", "_", manifest_name),
    }
    for token, value in replacements.items():
        name = name.replace(token, value)
    return f"{_HEADER_UNSAFE_RE.sub('', name)}.{extension}"


# ------------------------------------------------------------------
# Directory walk
# ------------------------------------------------------------------


def _matches_any(rel_path: str, patterns: list[str]) -> bool:
    return any(fnmatchcase(rel_path, pattern) for pattern in patterns)


def collect_files(
    storage: StorageBackend, source_dir: str | Path, exclusions: list[str]
) -> list[str]:
    """Return the files of *source_dir* to archive, as sorted relative paths.

    A directory is pruned with its whole sub-tree when its name equals an
    exclusion or its relative path matches one as a glob.  A file is
    skipped when its relative path matches an exclusion glob.
    """
    root = Path(source_dir).resolve()
    files: list[str] = []

    for dirpath, dirnames, filenames in storage.walk(root):
        rel_dir = Path(dirpath).relative_to(root)

        kept: list[str] = []
        for name in sorted(dirnames):
            rel = (rel_dir / name).as_posix()
            if name in exclusions or _matches_any(rel, exclusions):
                continue
            kept.append(name)
        dirnames[:] = kept

        for name in sorted(filenames):
            rel = (rel_dir / name).as_posix()
            if _matches_any(rel, exclusions):
                continue
            files.append(rel)

    return sorted(files)


# ------------------------------------------------------------------
# Jobs and backends
# ------------------------------------------------------------------


@dataclass
class ArchiveJob:
    """State for one archive request."""

    source_directory: Path
    exclusions: list[str]
    target_file_name: str
    extension: str
    working_file_path: Path
    files: list[str] = field(default_factory=list)

    def cleanup(self) -> None:
        """Delete this job's working file if it exists."""
        try:
            self.working_file_path.unlink(missing_ok=True)
        except OSError:
            logger.warning(
                "Failed to remove %s", self.working_file_path, exc_info=True
            )


class ArchiveBackend(ABC):
    """Writes a list of files from a job's source directory into its working file."""

    name: str = ""

    @classmethod
    def is_supported(cls) -> bool:
        return True

    @abstractmethod
    def write(self, job: ArchiveJob, files: list[str]) -> None:
        """Create ``job.working_file_path`` containing *files*."""
        ...


class LibraryArchiveBackend(ArchiveBackend):
    """Archives with the standard tarfile / zipfile modules."""

    name = "library"

    def write(self, job: ArchiveJob, files: list[str]) -> None:
        if job.extension == "zip":
            with zipfile.ZipFile(
                job.working_file_path, "w", compression=zipfile.ZIP_DEFLATED
            ) as zf:
                for rel in files:
                    zf.write(job.source_directory / rel, arcname=rel)
            return

        mode = "w:gz" if job.extension == "tgz" else "w"
        with tarfile.open(job.working_file_path, mode) as tf:
            for rel in files:
                tf.add(job.source_directory / rel, arcname=rel, recursive=False)


class ProcessArchiveBackend(ArchiveBackend):
    """Archives by running the system ``tar`` and ``zip`` executables."""

    name = "process"

    @classmethod
    def is_supported(cls) -> bool:
        return shutil.which("tar") is not None and shutil.which("zip") is not None

    def write(self, job: ArchiveJob, files: list[str]) -> None:
        target = str(job.working_file_path)
        if job.extension == "zip":
            command = ["zip", "-q", "-X", target, "-@"]
        else:
            flags = "-czf" if job.extension == "tgz" else "-cf"
            command = ["tar", flags, target, "-T", "-"]

        subprocess.run(
            command,
            input="\n".join(files) + "\n",
            cwd=job.source_directory,
            text=True,
            capture_output=True,
            check=True,
        )


BACKENDS: dict[str, type[ArchiveBackend]] = {
    LibraryArchiveBackend.name: LibraryArchiveBackend,
    ProcessArchiveBackend.name: ProcessArchiveBackend,
}


# ------------------------------------------------------------------
# Builder
# ------------------------------------------------------------------


class ArchiveBuilder:
    """Creates archive jobs, runs them, streams and cleans up their files."""

    def __init__(self, storage: StorageBackend, settings: Settings) -> None:
        self.storage = storage
        self.temp_prefix = settings.temp_prefix
        self.allowed_paths = [Path(p).resolve() for p in settings.allowed_paths]
        self.chunk_size = settings.stream_chunk_size
        self._temp_candidates = [
            Path(tempfile.gettempdir()),
            settings.upload_tmp_dir,
            settings.cache_dir,
        ]
        self._temp_dir: Path | None = None

    # ------------------------------------------------------------------
    # Temporary directory
    # ------------------------------------------------------------------

    def is_allowed(self, path: str | Path) -> bool:
        """Return ``True`` if *path* lies inside the sandbox allow-list."""
        if not self.allowed_paths:
            return True
        resolved = Path(path).resolve()
        return any(resolved.is_relative_to(allowed) for allowed in self.allowed_paths)

    def temp_directory(self) -> Path:
        """Return the first writable (and allowed) temporary directory.

        Falls back to the system temporary directory, even if it is not
        usable, so callers always get a path.
        """
        if self._temp_dir is not None:
            return self._temp_dir

        for candidate in self._temp_candidates:
            if candidate is None:
                continue
            candidate = Path(candidate)
            if not candidate.is_dir() or not os.access(candidate, os.W_OK):
                continue
            if self.is_allowed(candidate):
                self._temp_dir = candidate
                break

        if self._temp_dir is None:
            self._temp_dir = Path(tempfile.gettempdir())
        return self._temp_dir

    # ------------------------------------------------------------------
    # Jobs
    # ------------------------------------------------------------------

    def create_job(
        self,
        source_dir: str | Path,
        exclusions: list[str],
        target_file_name: str,
        extension: str,
    ) -> ArchiveJob:
        """Prepare a job with a unique working file in the temp directory."""
        if extension not in ARCHIVE_SUFFIXES:
            raise ValueError(f"Unsupported archive extension: {extension}")
        working = self.temp_directory() / (
            f"{self.temp_prefix}-{uuid.uuid4().hex}.{ARCHIVE_SUFFIXES[extension]}"
        )
        return ArchiveJob(
            source_directory=Path(source_dir).resolve(),
            exclusions=list(exclusions),
            target_file_name=target_file_name,
            extension=extension,
            working_file_path=working,
        )

    def build(self, job: ArchiveJob, provider: str = "library") -> ArchiveJob | None:
        """Write the archive for *job*.

        Returns ``None`` when the sandbox forbids the working location.
        Every other failure deletes the working file and raises
        :class:`ArchiveGenerationError`.
        """
        backend_cls = BACKENDS.get(provider)
        if backend_cls is None or not backend_cls.is_supported():
            raise ArchiveGenerationError(f"Archive provider {provider!r} is not available")

        try:
            if not self.is_allowed(job.working_file_path.parent):
                raise ArchiveRestrictionError(
                    f"{job.working_file_path.parent} is outside the allowed paths"
                )

            job.files = collect_files(self.storage, job.source_directory, job.exclusions)
            if not job.files:
                raise ArchiveGenerationError(
                    f"No files to archive in {job.source_directory}"
                )

            backend_cls().write(job, job.files)
        except ArchiveRestrictionError:
            logger.warning("Archive for %s denied by path restrictions", job.source_directory)
            job.cleanup()
            return None
        except ArchiveGenerationError:
            job.cleanup()
            raise
        except subprocess.CalledProcessError as e:
            job.cleanup()
            raise ArchiveGenerationError(
                f"{e.cmd[0]} exited with {e.returncode}: {e.stderr.strip()}"
            ) from e
        except (OSError, tarfile.TarError, zipfile.BadZipFile) as e:
            job.cleanup()
            raise ArchiveGenerationError(str(e)) from e

        logger.info(
            "Built %s (%d files) from %s using %s",
            job.target_file_name,
            len(job.files),
            job.source_directory,
            provider,
        )
        return job

    # ------------------------------------------------------------------
    # Download and cleanup
    # ------------------------------------------------------------------

    def iter_chunks(self, job: ArchiveJob) -> Iterator[bytes]:
        """Yield the archive in fixed-size chunks, then delete it."""
        try:
            with open(job.working_file_path, "rb") as fh:
                while chunk := fh.read(self.chunk_size):
                    yield chunk
        finally:
            job.cleanup()

    def sweep_stale(self, max_age: float = 0) -> int:
        """Delete leftover working files older than *max_age* seconds.

        Returns the number of files removed.
        """
        temp_dir = self.temp_directory()
        cutoff = time.time() - max_age
        removed = 0
        for entry in self.storage.list_dir_detail(temp_dir):
            if entry["type"] != "file" or not entry["name"].startswith(self.temp_prefix):
                continue
            path = temp_dir / entry["name"]
            try:
                if path.stat().st_mtime > cutoff:
                    continue
                path.unlink()
                removed += 1
            except OSError:
                logger.warning("Failed to remove stale archive %s", path, exc_info=True)
        if removed:
            logger.info("Removed %d stale archive(s) from %s", removed, temp_dir)
        return removed
