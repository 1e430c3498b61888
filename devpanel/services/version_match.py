"""Host version-constraint matching for manifest ``<install for="...">`` blocks.

Constraints are comma-separated.  Each entry is ``all``, an exact version,
an inclusive ``lower-upper`` range, or a wildcard such as ``2.1.*`` (read
as ``2.1.0dev0-2.1.999``).  Product names in front of the numbers
(``SMF 2.1.*``) are ignored.
"""

from __future__ import annotations

import re
from collections.abc import Callable

VersionMatcher = Callable[[str, str], bool]

_VERSION_RE = re.compile(
    r"(\d+)(?:\.(\d+))?(?:\.(\d+))?(?:(alpha|beta|rc)(\d+)?(?:\.(\d+))?)?(dev)?(\d+)?"
)
_STABILITY = {"alpha": 0, "beta": 1, "rc": 2, "stable": 3}


def _clean(value: str) -> str:
    return value.replace(" ", "").lower()


def version_key(version: str) -> tuple[int, ...]:
    """Return a sortable key for *version*; unparseable input sorts lowest."""
    match = _VERSION_RE.search(_clean(version))
    if match is None:
        return (0, 0, 0, 0, 0, 0, 0)
    major, minor, patch, stage, stage_major, stage_minor, dev, _ = match.groups()
    # A dev build of a stable release sorts below its alpha, beta and rc stages.
    stability = -1 if dev and stage is None else _STABILITY[stage or "stable"]
    return (
        int(major),
        int(minor or 0),
        int(patch or 0),
        stability,
        int(stage_major or 0),
        int(stage_minor or 0),
        0 if dev else 1,
    )


def compare_versions(left: str, right: str) -> int:
    """Return -1, 0 or 1 as *left* is older than, equal to or newer than *right*."""
    a, b = version_key(left), version_key(right)
    return (a > b) - (a < b)


def match_package_version(version: str, constraint: str) -> bool:
    """Return ``True`` if *version* satisfies *constraint*."""
    version = _clean(version)
    entries = [e for e in _clean(constraint).split(",") if e]
    if "all" in entries:
        return True

    for entry in entries:
        if "*" in entry:
            entry = entry.replace("*", "0dev0") + "-" + entry.replace("*", "999")

        if "-" in entry:
            lower, upper = entry.split("-", 1)
            if compare_versions(version, lower) >= 0 and compare_versions(version, upper) <= 0:
                return True
        elif compare_versions(version, entry) == 0:
            return True

    return False
