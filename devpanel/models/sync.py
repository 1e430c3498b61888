"""Pydantic models for file synchronization reports."""

from enum import Enum

from pydantic import BaseModel


class SyncStatus(str, Enum):
    """Result of a single file-level sync."""

    SUCCEEDED = "succeeded"
    FAILED = "failed"
    UNKNOWN = "unknown"


class SyncOperationResult(BaseModel):
    """One synced file or directory."""

    package_path: str
    install_path: str
    source: str
    destination: str
    writable: bool
    result: SyncStatus


class SyncReportRow(BaseModel):
    """Failure row shown to the operator, with paths collapsed to tokens."""

    file: str
    source_dir: str
    destination: str
    writable: bool
    result: SyncStatus


class SyncReport(BaseModel):
    """Itemized report returned when any operation did not succeed."""

    package: str
    direction: str
    success: bool
    failures: list[SyncReportRow]
    retry_url: str
