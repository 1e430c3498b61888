"""Integration hook registry backed by the host configuration store.

Hooks are stored as ``integrate_*`` variables whose value is a
comma-separated list of references::

    integrate_actions = "$sourcedir/Foo.php|Foo::bar#,!baz_action"

Each reference reads ``[file|][!]callable[#]``.  A ``!`` marks the entry
as registered but disabled, ``#`` asks the host to call the method on a
fresh object instance.  Records are rebuilt from the store on demand and
keyed by a fingerprint of their raw text, so every mutation rewrites the
whole list for one hook name.
"""

from __future__ import annotations

import hashlib
import logging
import re
from collections.abc import Iterable

from devpanel.models.hook import HookMutationResult, HookRecord, HookSearch
from devpanel.repositories.settings_store import ConfigStore

logger = logging.getLogger(__name__)

DELIMITER = ","
DISABLED_MARKER = "!"
INSTANCE_MARKER = "#"
FILE_SEPARATOR = "|"

# Sort key -> (record attribute, descending)
SORT_TYPES: dict[str, tuple[str, bool]] = {
    "hook_name": ("hook_name", False),
    "hook_name DESC": ("hook_name", True),
    "callable": ("callable", False),
    "callable DESC": ("callable", True),
    "source_file": ("source_file", False),
    "source_file DESC": ("source_file", True),
    "status": ("status", False),
    "status DESC": ("status", True),
}
DEFAULT_SORT = "hook_name"

SUCCESS_MESSAGES: dict[str, str] = {
    "toggle": "Successfully toggled hook",
    "add": "Successfully added hook",
    "modify": "Successfully modified hook",
    "delete": "Successfully deleted hook",
}
NOT_FOUND_MESSAGE = "Hook not found or not unique"
UNCHANGED_MESSAGE = "Hook list unchanged"

_TAG_RE = re.compile(r"<[^>]*>")
_UNSAFE_CHARS_RE = re.compile(r"[\s\x00]")


# ------------------------------------------------------------------
# Reference grammar
# ------------------------------------------------------------------


def hook_identity(raw_reference: str) -> str:
    """Return the fingerprint used to address a reference from the UI."""
    return hashlib.md5(raw_reference.encode("utf-8")).hexdigest()


def split_references(value: str | None) -> list[str]:
    """Split a stored hook value into its raw references."""
    if not value:
        return []
    return value.split(DELIMITER)


def join_references(references: Iterable[str]) -> str:
    """Inverse of :func:`split_references`."""
    return DELIMITER.join(references)


def parse_reference(hook_name: str, raw_reference: str) -> HookRecord:
    """Parse one raw reference into a :class:`HookRecord`.

    The disabled marker is accepted in front of the whole reference as
    well as in front of the callable part. Markers are only recognised
    outside the file path, which is kept verbatim.
    """
    body = raw_reference.strip()

    enabled = True
    if body.startswith(DISABLED_MARKER):
        enabled = False
        body = body[len(DISABLED_MARKER):]

    source_file = ""
    if FILE_SEPARATOR in body:
        source_file, body = body.split(FILE_SEPARATOR, 1)

    is_method = INSTANCE_MARKER in body
    body = body.replace(INSTANCE_MARKER, "")

    if DISABLED_MARKER in body:
        enabled = False
        body = body.replace(DISABLED_MARKER, "")

    return HookRecord(
        identity=hook_identity(raw_reference),
        hook_name=hook_name,
        raw_reference=raw_reference,
        callable=body.strip(),
        source_file=source_file.strip(),
        is_method=is_method,
        enabled=enabled,
    )


def parse_hook_value(hook_name: str, value: str | None) -> list[HookRecord]:
    """Parse every non-blank reference stored under *hook_name*."""
    return [
        parse_reference(hook_name, raw)
        for raw in split_references(value)
        if raw.strip()
    ]


def serialize_records(records: Iterable[HookRecord]) -> str:
    """Join the raw form of *records* back into a stored hook value."""
    return join_references(record.raw_reference for record in records)


def compose_reference(
    callable_name: str,
    source_file: str = "",
    is_method: bool = False,
    enabled: bool = True,
) -> str:
    """Build the canonical reference string for the given parts."""
    reference = callable_name
    if is_method:
        reference += INSTANCE_MARKER
    if not enabled:
        reference = DISABLED_MARKER + reference
    if source_file:
        reference = source_file + (FILE_SEPARATOR + reference if reference else "")
    return reference


def flip_disabled_marker(raw_reference: str) -> str:
    """Return *raw_reference* with its enabled state inverted.

    Everything other than the marker is kept verbatim.
    """
    reference = raw_reference.strip()
    if reference.startswith(DISABLED_MARKER):
        return reference[len(DISABLED_MARKER):]

    source_file, separator, callable_part = "", "", reference
    if FILE_SEPARATOR in reference:
        source_file, callable_part = reference.split(FILE_SEPARATOR, 1)
        separator = FILE_SEPARATOR

    if DISABLED_MARKER in callable_part:
        callable_part = callable_part.replace(DISABLED_MARKER, "")
    else:
        callable_part = DISABLED_MARKER + callable_part
    return f"{source_file}{separator}{callable_part}"


def sanitize_field(value: str) -> str:
    """Strip markup and replace whitespace and null bytes with underscores."""
    return _UNSAFE_CHARS_RE.sub("_", _TAG_RE.sub("", value))


# ------------------------------------------------------------------
# Registry
# ------------------------------------------------------------------


class HookRegistry:
    """Lists and mutates hook references held in a :class:`ConfigStore`.

    One instance serves one request.  Parsed records are kept until a
    mutation asks for a rebuild, so reads after a write in the same
    request see the new state.

    Lookups by identity must match exactly one record.  Zero or several
    matches turn toggle/delete/modify into a no-op reported through
    ``HookMutationResult.modified``.
    """

    def __init__(
        self,
        store: ConfigStore,
        *,
        prefix: str = "integrate_",
        self_marker: str = "",
        show_all: bool = False,
    ) -> None:
        self.store = store
        self.prefix = prefix
        self.self_marker = self_marker
        self.show_all = show_all
        self._records: list[HookRecord] | None = None

    # ------------------------------------------------------------------
    # Reading
    # ------------------------------------------------------------------

    def records(self, rebuild: bool = False) -> list[HookRecord]:
        """Return every visible hook record, re-reading the store if asked."""
        if self._records is None or rebuild:
            self._records = self._load()
        return self._records

    def _load(self) -> list[HookRecord]:
        records: list[HookRecord] = []
        for hook_name, value in self.store.all().items():
            if not hook_name.startswith(self.prefix) or not value:
                continue
            for record in parse_hook_value(hook_name, value):
                if self._is_hidden(record):
                    continue
                records.append(record)
        return records

    def _is_hidden(self, record: HookRecord) -> bool:
        """Entries registered by this tool stay hidden unless show_all is set."""
        if self.show_all or not self.self_marker:
            return False
        return self.self_marker in record.raw_reference

    def search(self, filters: HookSearch | None = None) -> list[HookRecord]:
        """Return records matching every non-empty filter (case-insensitive)."""
        records = self.records()
        if filters is None:
            return list(records)

        for field, term in filters.model_dump().items():
            if not term:
                continue
            needle = term.lower()
            records = [r for r in records if needle in getattr(r, field).lower()]
        return list(records)

    def list_hooks(
        self,
        offset: int = 0,
        limit: int = 20,
        sort: str = DEFAULT_SORT,
        filters: HookSearch | None = None,
    ) -> tuple[list[HookRecord], int, str]:
        """Filter, sort and paginate the records.

        Unknown sort keys fall back to :data:`DEFAULT_SORT`.  Returns the
        page, the filtered total and the sort key that was applied.
        """
        if sort not in SORT_TYPES:
            sort = DEFAULT_SORT
        field, descending = SORT_TYPES[sort]

        matched = self.search(filters)
        ordered = sorted(
            matched,
            key=lambda r: str(getattr(r, field)).lower(),
            reverse=descending,
        )
        return ordered[offset : offset + limit], len(matched), sort

    def get(self, identity: str) -> HookRecord | None:
        """Return the single record with *identity*, or ``None``."""
        identity = identity.strip().lower()
        matches = [r for r in self.records() if r.identity == identity]
        if len(matches) != 1:
            return None
        return matches[0]

    # ------------------------------------------------------------------
    # Low-level list edits
    # ------------------------------------------------------------------

    def add_integration_function(
        self,
        hook_name: str,
        callable_name: str,
        source_file: str = "",
        is_method: bool = False,
        enabled: bool = True,
    ) -> bool:
        """Register a reference under *hook_name*; ``False`` if already present."""
        reference = compose_reference(callable_name, source_file, is_method, enabled)
        return self._add_reference(hook_name, reference)

    def remove_integration_function(
        self,
        hook_name: str,
        callable_name: str,
        source_file: str = "",
        is_method: bool = False,
        enabled: bool = True,
    ) -> bool:
        """Unregister a reference from *hook_name*; ``False`` if it was absent."""
        reference = compose_reference(callable_name, source_file, is_method, enabled)
        return self._remove_reference(hook_name, reference)

    def _add_reference(self, hook_name: str, reference: str) -> bool:
        current = split_references(self.store.get(hook_name))
        if reference in current:
            return False
        current.append(reference)
        self.store.set(hook_name, join_references(current))
        logger.info("Added %s to %s", reference, hook_name)
        return True

    def _remove_reference(self, hook_name: str, reference: str) -> bool:
        current = split_references(self.store.get(hook_name))
        if reference not in current:
            return False
        remaining = [r for r in current if r != reference]
        self.store.set(hook_name, join_references(remaining))
        logger.info("Removed %s from %s", reference, hook_name)
        return True

    def _has_reference(self, hook_name: str, reference: str) -> bool:
        return reference in split_references(self.store.get(hook_name))

    def _compose_fields(
        self, hook_name: str, callable_name: str, source_file: str, is_method: bool
    ) -> tuple[str, str | None]:
        """Sanitize the fields; the reference is None when no callable is left."""
        hook_name = sanitize_field(hook_name)
        callable_name = sanitize_field(callable_name)
        source_file = sanitize_field(source_file)
        if not hook_name.startswith(self.prefix):
            hook_name = self.prefix + hook_name
        if not callable_name:
            return hook_name, None
        return hook_name, compose_reference(callable_name, source_file, is_method)

    # ------------------------------------------------------------------
    # Mutations addressed by identity
    # ------------------------------------------------------------------

    def toggle(self, identity: str) -> HookMutationResult:
        """Flip the enabled state of the record with *identity*.

        Nothing changes when the flipped reference is already registered.
        """
        record = self.get(identity)
        if record is None or not record.can_disable:
            return self._not_modified("toggle")

        new_reference = flip_disabled_marker(record.raw_reference)
        if self._has_reference(record.hook_name, new_reference):
            return self._not_modified("toggle", UNCHANGED_MESSAGE)

        self._remove_reference(record.hook_name, record.raw_reference)
        self._add_reference(record.hook_name, new_reference)
        self.records(rebuild=True)

        return HookMutationResult(
            action="toggle",
            modified=True,
            message=SUCCESS_MESSAGES["toggle"],
            record=parse_reference(record.hook_name, new_reference),
        )

    def add(
        self,
        hook_name: str,
        callable_name: str,
        source_file: str = "",
        is_method: bool = False,
        *,
        rebuild: bool = True,
    ) -> HookMutationResult:
        """Sanitize the fields and register a new enabled reference.

        *hook_name* gets the registry prefix if it does not carry it yet.
        """
        hook_name, reference = self._compose_fields(
            hook_name, callable_name, source_file, is_method
        )
        if reference is None:
            return self._not_modified("add", UNCHANGED_MESSAGE)

        modified = self._add_reference(hook_name, reference)
        if rebuild:
            self.records(rebuild=True)

        return HookMutationResult(
            action="add",
            modified=modified,
            message=SUCCESS_MESSAGES["add"] if modified else UNCHANGED_MESSAGE,
            record=parse_reference(hook_name, reference),
        )

    def delete(self, identity: str, *, rebuild: bool = True) -> HookMutationResult:
        """Remove the record with *identity* from its hook list."""
        record = self.get(identity)
        if record is None:
            return self._not_modified("delete")

        modified = self._remove_reference(record.hook_name, record.raw_reference)
        if rebuild:
            self.records(rebuild=True)

        return HookMutationResult(
            action="delete",
            modified=modified,
            message=SUCCESS_MESSAGES["delete"] if modified else UNCHANGED_MESSAGE,
            record=record,
        )

    def modify(
        self,
        identity: str,
        hook_name: str,
        callable_name: str,
        source_file: str = "",
        is_method: bool = False,
    ) -> HookMutationResult:
        """Replace a record with the new fields.

        The old entry is only removed once the replacement is known to be
        valid and not already registered. The replacement gets a new
        identity whenever its reference text differs from the old one.
        """
        record = self.get(identity)
        if record is None:
            return self._not_modified("modify")

        hook_name, reference = self._compose_fields(
            hook_name, callable_name, source_file, is_method
        )
        if reference is None or self._has_reference(hook_name, reference):
            return self._not_modified("modify", UNCHANGED_MESSAGE)

        self._remove_reference(record.hook_name, record.raw_reference)
        modified = self._add_reference(hook_name, reference)
        self.records(rebuild=True)

        return HookMutationResult(
            action="modify",
            modified=modified,
            message=SUCCESS_MESSAGES["modify"] if modified else UNCHANGED_MESSAGE,
            record=parse_reference(hook_name, reference),
        )

    @staticmethod
    def _not_modified(action: str, message: str = NOT_FOUND_MESSAGE) -> HookMutationResult:
        logger.info("Hook %s skipped: %s", action, message)
        return HookMutationResult(action=action, modified=False, message=message)
