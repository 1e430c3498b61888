"""Pydantic models for package manifests and listings."""

from pydantic import BaseModel


class HookDirective(BaseModel):
    """A ``<hook>`` action declared in a manifest install block."""

    hook_name: str
    callable: str = ""
    source_file: str = ""
    reverse: bool = False
    is_method: bool = False


class FileOperation(BaseModel):
    """A ``<require-file>`` / ``<require-dir>`` action resolved to absolute paths."""

    package_path: str
    install_path: str


class PackageSummary(BaseModel):
    """Single package directory returned by the listing endpoints."""

    filename: str
    """Directory name inside the packages directory (the package identifier)."""

    id: str
    name: str
    version: str
    type: str = "modification"


class ArchiveOption(BaseModel):
    """One downloadable archive flavour for a package."""

    extension: str
    provider: str
    url: str


class PackageArchiveSummary(PackageSummary):
    """Package listing row with its archive download options."""

    downloads: list[ArchiveOption]


class PackageListResponse(BaseModel):
    """List of workable packages plus an optional success message."""

    packages: list[PackageSummary]
    message: str | None = None


class PackageArchiveListResponse(BaseModel):
    """List of packages that can be downloaded as archives."""

    packages: list[PackageArchiveSummary]
