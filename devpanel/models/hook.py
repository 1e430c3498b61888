"""Pydantic models for integration hook records and mutations."""

from pydantic import BaseModel, Field, computed_field


class HookRecord(BaseModel):
    """One registered reference under a hook name.

    ``identity`` is a fingerprint of ``raw_reference``, not a stable primary
    key: editing a reference produces a record with a new identity.
    """

    identity: str
    hook_name: str
    raw_reference: str
    callable: str
    source_file: str = ""
    is_method: bool = False
    enabled: bool = True

    @computed_field
    @property
    def can_disable(self) -> bool:
        """Only references with a callable can be toggled."""
        return self.callable != ""

    @computed_field
    @property
    def status(self) -> str:
        return "valid" if self.enabled else "error"


class HookCreate(BaseModel):
    """Request body for adding or modifying a hook reference."""

    hook_name: str = Field(..., min_length=1)
    callable: str = Field(..., min_length=1)
    source_file: str = ""
    is_method: bool = False


class HookSearch(BaseModel):
    """Substring filters applied together (AND) to the hook listing."""

    hook_name: str = ""
    source_file: str = ""
    callable: str = ""


class HookListResponse(BaseModel):
    """Paginated hook listing."""

    items: list[HookRecord]
    total: int
    offset: int
    limit: int
    sort: str


class HookMutationResult(BaseModel):
    """Outcome of toggle/add/modify/delete.

    ``modified`` is ``False`` when the identity matched zero or several
    records, or when the write would not have changed the hook list.
    """

    action: str
    modified: bool
    message: str
    record: HookRecord | None = None
