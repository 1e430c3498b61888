"""Package manifest (``package-info.xml``) discovery and parsing.

Only the parts DevPanel acts on are read: package identity, the install
block that applies to the running host version, its ``<hook>`` and
``<require-file>``/``<require-dir>`` actions, and the optional
``<devtools>`` block that configures archive downloads.
"""

from __future__ import annotations

import logging
import xml.etree.ElementTree as ET
from pathlib import Path, PurePosixPath

from devpanel.models.package import FileOperation, HookDirective
from devpanel.repositories.storage import StorageBackend
from devpanel.services.path_tokens import PathTokens
from devpanel.services.version_match import VersionMatcher, match_package_version

logger = logging.getLogger(__name__)

MANIFEST_NAME = "package-info.xml"
ROOT_TAG = "package-info"
FILE_ACTIONS = ("require-file", "require-dir")


class PackageNotFoundError(LookupError):
    """The requested package, or a manifest inside it, does not exist."""


class ManifestCorruptError(ValueError):
    """The manifest cannot be parsed or lacks a required node."""


def locate_manifest(storage: StorageBackend, package_dir: str | Path) -> Path | None:
    """Return the directory holding the manifest inside *package_dir*.

    The package root is checked first, then the whole tree is searched in
    sorted order.  Returns ``None`` when no manifest exists anywhere.
    """
    package_dir = Path(package_dir)
    if storage.isfile(package_dir / MANIFEST_NAME):
        return package_dir

    for dirpath, dirnames, filenames in storage.walk(package_dir):
        dirnames.sort()
        if MANIFEST_NAME in filenames:
            return Path(dirpath)
    return None


def _strip_namespaces(root: ET.Element) -> None:
    """Drop ``{namespace}`` prefixes so lookups can use bare tag names."""
    for element in root.iter():
        if isinstance(element.tag, str) and element.tag.startswith("{"):
            element.tag = element.tag.split("}", 1)[1]


def _flag(element: ET.Element, name: str) -> bool:
    return element.get(name, "").strip().lower() == "true"


class PackageManifest:
    """Read-only view of one parsed manifest.

    ``base_dir`` is the directory the manifest was found in; package-side
    paths of file actions are resolved against it.
    """

    def __init__(self, root: ET.Element, base_dir: str | Path) -> None:
        if root.tag != ROOT_TAG:
            raise ManifestCorruptError(
                f"Expected <{ROOT_TAG}> root element, found <{root.tag}>"
            )
        self.root = root
        self.base_dir = Path(base_dir)

    @classmethod
    def parse(cls, text: str | bytes, base_dir: str | Path) -> PackageManifest:
        """Parse manifest XML *text*."""
        try:
            root = ET.fromstring(text)
        except ET.ParseError as e:
            raise ManifestCorruptError(f"Manifest is not valid XML: {e}") from e
        _strip_namespaces(root)
        return cls(root, base_dir)

    @classmethod
    def load(cls, storage: StorageBackend, base_dir: str | Path) -> PackageManifest:
        """Read and parse the manifest stored in *base_dir*."""
        manifest_path = Path(base_dir) / MANIFEST_NAME
        if not storage.isfile(manifest_path):
            raise PackageNotFoundError(f"No {MANIFEST_NAME} in {base_dir}")
        return cls.parse(storage.read_bytes(manifest_path), base_dir)

    # ------------------------------------------------------------------
    # Identity
    # ------------------------------------------------------------------

    def _text(self, tag: str) -> str:
        return (self.root.findtext(tag) or "").strip()

    @property
    def id(self) -> str:
        return self._text("id")

    @property
    def name(self) -> str:
        return self._text("name")

    @property
    def version(self) -> str:
        return self._text("version")

    @property
    def type(self) -> str:
        return self._text("type") or "modification"

    # ------------------------------------------------------------------
    # Install blocks
    # ------------------------------------------------------------------

    def install_blocks(self) -> list[ET.Element]:
        """Return every ``<install>`` block in document order."""
        return self.root.findall("install")

    def select_install_block(
        self,
        platform_version: str,
        matcher: VersionMatcher = match_package_version,
    ) -> ET.Element:
        """Return the first install block applicable to *platform_version*.

        Blocks without a ``for`` constraint always apply.  Raises
        :class:`ManifestCorruptError` when nothing applies.
        """
        for block in self.install_blocks():
            constraint = block.get("for")
            if constraint is not None and not matcher(platform_version, constraint):
                continue
            return block
        raise ManifestCorruptError(
            f"No install block matches host version {platform_version}"
        )

    # ------------------------------------------------------------------
    # <devtools> block
    # ------------------------------------------------------------------

    def devtools_block(self) -> ET.Element | None:
        return self.root.find("devtools")

    def archive_name_template(self) -> str | None:
        """Return the declared download name template, if any."""
        block = self.devtools_block()
        if block is None:
            return None
        return (block.findtext("packagename") or "").strip() or None

    def exclusions(self) -> list[str]:
        """Return the archive exclusion patterns declared in ``<devtools>``."""
        block = self.devtools_block()
        if block is None:
            return []
        return [
            (e.text or "").strip()
            for e in block.findall("exclusion")
            if (e.text or "").strip()
        ]


def extract_hooks(install_block: ET.Element) -> list[HookDirective]:
    """Collect the ``<hook>`` actions of an install block."""
    hooks: list[HookDirective] = []
    for action in install_block:
        if action.tag != "hook":
            continue
        hooks.append(
            HookDirective(
                hook_name=action.get("hook") or (action.text or "").strip(),
                callable=action.get("function", ""),
                source_file=action.get("file", ""),
                reverse=_flag(action, "reverse"),
                is_method=_flag(action, "object"),
            )
        )
    return hooks


def extract_file_operations(
    install_block: ET.Element,
    base_dir: str | Path,
    tokens: PathTokens,
) -> list[FileOperation]:
    """Resolve the ``<require-file>``/``<require-dir>`` actions to absolute paths.

    Every other action kind is ignored.
    """
    base_dir = Path(base_dir)
    operations: list[FileOperation] = []
    for action in install_block:
        if action.tag not in FILE_ACTIONS:
            continue

        name = action.get("name", "")
        destination = action.get("destination", "")
        if not name or not destination:
            raise ManifestCorruptError(
                f"<{action.tag}> requires both name and destination attributes"
            )

        source = action.get("from")
        if source:
            package_path = tokens.expand(source, package_dir=base_dir)
        else:
            package_path = (base_dir / name).as_posix()

        install_dir = tokens.expand(destination, package_dir=base_dir)
        install_path = f"{install_dir.rstrip('/')}/{PurePosixPath(name).name}"

        operations.append(
            FileOperation(package_path=package_path, install_path=install_path)
        )
    return operations
