"""Files API router.

Endpoints:
- GET    /files                         -- packages with their archive download options
- GET    /files/{package}/archive       -- build and download a package archive
- DELETE /files/archives                -- remove stale temporary archives

Unsupported ``extension``/``provider`` values fall back to the first
configured one.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi.responses import Response, StreamingResponse

from devpanel.config import Settings
from devpanel.dependencies import get_app_settings, get_archive_builder, get_package_service
from devpanel.models.package import (
    ArchiveOption,
    PackageArchiveListResponse,
    PackageArchiveSummary,
)
from devpanel.services.archive_builder import (
    BACKENDS,
    ArchiveBuilder,
    ArchiveGenerationError,
    archive_file_name,
)
from devpanel.services.manifest_reader import ManifestCorruptError, PackageNotFoundError
from devpanel.services.package_service import PackageService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/files", tags=["files"])


def _available_providers(settings: Settings) -> list[str]:
    return [
        p for p in settings.archive_providers
        if p in BACKENDS and BACKENDS[p].is_supported()
    ]


def _pick(value: str | None, allowed: list[str]) -> str:
    """Return *value* if allowed, otherwise the first allowed value."""
    if value in allowed:
        return value
    return allowed[0]


@router.get("", response_model=PackageArchiveListResponse)
def list_archivable_packages(
    service: PackageService = Depends(get_package_service),
    settings: Settings = Depends(get_app_settings),
) -> PackageArchiveListResponse:
    """List packages together with one download option per extension/provider."""
    providers = _available_providers(settings)
    packages = [
        PackageArchiveSummary(
            **summary.model_dump(),
            downloads=[
                ArchiveOption(
                    extension=ext,
                    provider=provider,
                    url=f"/files/{summary.filename}/archive?extension={ext}&provider={provider}",
                )
                for provider in providers
                for ext in settings.archive_extensions
            ],
        )
        for summary in service.list_packages()
    ]
    return PackageArchiveListResponse(packages=packages)


@router.get("/{package}/archive", response_model=None)
def download_archive(
    package: str,
    extension: str | None = Query(None, description="tgz, zip or tar"),
    provider: str | None = Query(None, description="library or process"),
    service: PackageService = Depends(get_package_service),
    builder: ArchiveBuilder = Depends(get_archive_builder),
    settings: Settings = Depends(get_app_settings),
) -> Response:
    """Build the archive of a package and send it as an attachment.

    Archives larger than ``stream_threshold`` are streamed in chunks.  The
    working file is deleted once the body has been sent.
    """
    extension = _pick(extension, settings.archive_extensions)
    providers = _available_providers(settings)
    if not providers:
        raise HTTPException(status_code=503, detail="No archive provider is available")
    provider = _pick(provider, providers)

    try:
        package_dir = service.resolve_package(package)
        manifest = service.load_manifest(package)
    except PackageNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except ManifestCorruptError as e:
        raise HTTPException(status_code=422, detail=str(e))

    file_name = archive_file_name(
        manifest.archive_name_template(),
        package_dir.name,
        manifest.name,
        manifest.version,
        extension,
    )
    job = builder.create_job(manifest.base_dir, manifest.exclusions(), file_name, extension)

    try:
        result = builder.build(job, provider)
    except ArchiveGenerationError as e:
        logger.exception("Archive generation failed for %s", package)
        raise HTTPException(status_code=500, detail=f"Archive generation failed: {e}")

    if result is None:
        raise HTTPException(
            status_code=503,
            detail=f"Archive of {package} is not permitted by the configured allowed paths",
        )

    size = job.working_file_path.stat().st_size
    headers = {
        "Content-Disposition": f'attachment; filename="{job.target_file_name}"',
        "Cache-Control": "max-age=60, private",
        "Content-Length": str(size),
        "Accept-Ranges": "bytes",
    }

    if size > settings.stream_threshold:
        return StreamingResponse(
            builder.iter_chunks(job),
            media_type="application/octet-stream",
            headers=headers,
        )

    try:
        body = job.working_file_path.read_bytes()
    finally:
        job.cleanup()
    return Response(content=body, media_type="application/octet-stream", headers=headers)


@router.delete("/archives")
def sweep_archives(
    max_age: int | None = Query(None, ge=0, description="Minimum age in seconds"),
    builder: ArchiveBuilder = Depends(get_archive_builder),
    settings: Settings = Depends(get_app_settings),
) -> dict[str, int]:
    """Remove leftover temporary archives older than *max_age*."""
    removed = builder.sweep_stale(
        settings.stale_archive_age if max_age is None else max_age
    )
    return {"removed": removed}
