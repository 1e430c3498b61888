"""Packages API router.

Endpoints:
- GET  /packages                              -- packages available for hook/sync actions
- POST /packages/{package}/hooks/reinstall    -- uninstall then install the package's hooks
- POST /packages/{package}/hooks/uninstall    -- remove the package's hooks
- POST /packages/{package}/sync/in            -- copy the live files into the package
- POST /packages/{package}/sync/out           -- copy the package files to the live forum

Successful actions redirect to ``/packages?success=<action>``.  A sync
with any unconfirmed operation returns a report of those operations
instead.
"""

from __future__ import annotations

import logging
from typing import Literal

from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi.responses import RedirectResponse

from devpanel.dependencies import get_package_service
from devpanel.models.package import PackageListResponse
from devpanel.models.sync import SyncReport
from devpanel.services.file_sync import sync_succeeded
from devpanel.services.manifest_reader import ManifestCorruptError, PackageNotFoundError
from devpanel.services.package_service import PackageService, success_message

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/packages", tags=["packages"])


def _success_redirect(action: str) -> RedirectResponse:
    return RedirectResponse(url=f"/packages?success={action}", status_code=303)


@router.get("", response_model=PackageListResponse)
def list_packages(
    success: str | None = Query(None, description="Action that just completed"),
    service: PackageService = Depends(get_package_service),
) -> PackageListResponse:
    """List packages with a readable manifest."""
    return PackageListResponse(
        packages=service.list_packages(),
        message=success_message(success),
    )


@router.post("/{package}/hooks/{action}", response_model=None)
def package_hooks(
    package: str,
    action: Literal["reinstall", "uninstall"],
    service: PackageService = Depends(get_package_service),
) -> RedirectResponse:
    """Reinstall or uninstall the hooks declared by the package."""
    try:
        if action == "reinstall":
            service.reinstall_hooks(package)
        else:
            service.uninstall_hooks(package)
    except PackageNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except ManifestCorruptError as e:
        raise HTTPException(status_code=422, detail=str(e))
    return _success_redirect(action)


@router.post("/{package}/sync/{direction}", response_model=None)
def sync_package(
    package: str,
    direction: Literal["in", "out"],
    service: PackageService = Depends(get_package_service),
) -> RedirectResponse | SyncReport:
    """Sync files between the package and the live forum.

    ``in`` pulls live files into the package, ``out`` pushes package files
    to the forum.
    """
    try:
        results = service.sync_files(package, reverse=direction == "in")
    except PackageNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except ManifestCorruptError as e:
        raise HTTPException(status_code=422, detail=str(e))

    if sync_succeeded(results):
        return _success_redirect(f"sync{direction}")

    report = service.build_report(package, direction, results)
    logger.warning(
        "Sync %s of %s left %d operation(s) unconfirmed",
        direction,
        package,
        len(report.failures),
    )
    return report
