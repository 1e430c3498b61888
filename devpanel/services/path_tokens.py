"""Expansion and collapsing of the host's ``$token`` path placeholders."""

from __future__ import annotations

import re
from pathlib import Path

from devpanel.config import Settings


class PathTokens:
    """Maps placeholders such as ``$sourcedir`` to absolute directories.

    Longer tokens are matched first so ``$themes_dir`` never resolves as
    ``$themedir`` followed by ``s_dir``.
    """

    def __init__(self, directories: dict[str, str]) -> None:
        self.directories = {
            token: Path(path).as_posix() for token, path in directories.items()
        }

    @classmethod
    def from_settings(cls, settings: Settings) -> "PathTokens":
        board = Path(settings.board_dir).resolve()
        theme = Path(settings.theme_dir).resolve()
        return cls(
            {
                "$boarddir": board,
                "$sourcedir": Path(settings.source_dir).resolve(),
                "$packagesdir": Path(settings.packages_dir).resolve(),
                "$themedir": theme,
                "$themes_dir": board / "Themes",
                "$languagedir": theme / "languages",
                "$languages_dir": theme / "languages",
                "$imagesdir": theme / "images",
                "$avatardir": Path(settings.avatar_dir).resolve(),
                "$avatars_dir": Path(settings.avatar_dir).resolve(),
                "$smileysdir": Path(settings.smileys_dir).resolve(),
                "$smileys_dir": Path(settings.smileys_dir).resolve(),
            }
        )

    def expand(self, path: str, package_dir: str | Path | None = None) -> str:
        """Replace every placeholder in *path* with its directory.

        ``$package`` resolves to *package_dir* when one is given.
        Raises :class:`ValueError` for an empty path.
        """
        if not path:
            raise ValueError("An empty path cannot be expanded")

        mapping = dict(self.directories)
        if package_dir is not None:
            mapping["$package"] = Path(package_dir).as_posix()

        pattern = re.compile(
            "|".join(re.escape(t) for t in sorted(mapping, key=len, reverse=True))
        )
        return pattern.sub(lambda m: mapping[m.group(0)], path.replace("\\", "/"))

    def collapse(self, path: str | Path) -> str:
        """Replace known directory prefixes in *path* with their placeholder.

        Used for display only.  The most specific directory wins.
        """
        text = Path(path).as_posix()
        ordered = sorted(
            self.directories.items(), key=lambda item: len(item[1]), reverse=True
        )
        for token, directory in ordered:
            if text == directory or text.startswith(directory + "/"):
                return token + text[len(directory):]
        return text
