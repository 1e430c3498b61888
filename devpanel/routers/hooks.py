"""Hooks API router.

Endpoints:
- GET    /hooks                       -- filtered, sorted, paginated hook listing
- GET    /hooks/{identity}            -- a single hook record
- POST   /hooks                       -- register a new hook reference
- POST   /hooks/{identity}/toggle     -- enable/disable a hook reference
- PUT    /hooks/{identity}            -- replace a hook reference
- DELETE /hooks/{identity}            -- remove a hook reference

Mutations that match zero or several records return ``modified: false``
instead of an error.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Query

from devpanel.config import Settings
from devpanel.dependencies import get_app_settings, get_hook_registry
from devpanel.models.hook import (
    HookCreate,
    HookListResponse,
    HookMutationResult,
    HookRecord,
    HookSearch,
)
from devpanel.services.hook_registry import DEFAULT_SORT, HookRegistry

router = APIRouter(prefix="/hooks", tags=["hooks"])


@router.get("", response_model=HookListResponse)
def list_hooks(
    offset: int = Query(0, ge=0, description="Pagination offset"),
    limit: int | None = Query(None, ge=1, le=500, description="Page size"),
    sort: str = Query(DEFAULT_SORT, description="Sort key, optionally suffixed with ' DESC'"),
    hook_name: str = Query("", description="Substring of the hook name"),
    source_file: str = Query("", description="Substring of the source file"),
    callable: str = Query("", description="Substring of the callable"),
    registry: HookRegistry = Depends(get_hook_registry),
    settings: Settings = Depends(get_app_settings),
) -> HookListResponse:
    """Return one page of hook records."""
    limit = limit or settings.hooks_per_page
    filters = HookSearch(hook_name=hook_name, source_file=source_file, callable=callable)
    items, total, applied_sort = registry.list_hooks(
        offset=offset, limit=limit, sort=sort, filters=filters
    )
    return HookListResponse(
        items=items, total=total, offset=offset, limit=limit, sort=applied_sort
    )


@router.get("/{identity}", response_model=HookRecord)
def get_hook(
    identity: str,
    registry: HookRegistry = Depends(get_hook_registry),
) -> HookRecord:
    """Return the record with *identity*, or 404 if missing or ambiguous."""
    record = registry.get(identity)
    if record is None:
        raise HTTPException(status_code=404, detail="Hook not found")
    return record


@router.post("", response_model=HookMutationResult)
def add_hook(
    body: HookCreate,
    registry: HookRegistry = Depends(get_hook_registry),
) -> HookMutationResult:
    return registry.add(body.hook_name, body.callable, body.source_file, body.is_method)


@router.post("/{identity}/toggle", response_model=HookMutationResult)
def toggle_hook(
    identity: str,
    registry: HookRegistry = Depends(get_hook_registry),
) -> HookMutationResult:
    return registry.toggle(identity)


@router.put("/{identity}", response_model=HookMutationResult)
def modify_hook(
    identity: str,
    body: HookCreate,
    registry: HookRegistry = Depends(get_hook_registry),
) -> HookMutationResult:
    """Replace the record with *identity*; the result carries the new identity."""
    return registry.modify(
        identity, body.hook_name, body.callable, body.source_file, body.is_method
    )


@router.delete("/{identity}", response_model=HookMutationResult)
def delete_hook(
    identity: str,
    registry: HookRegistry = Depends(get_hook_registry),
) -> HookMutationResult:
    return registry.delete(identity)
