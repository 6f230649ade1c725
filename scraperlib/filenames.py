import os
import posixpath
import re
import threading
from typing import Dict, Optional, Sequence, Set
from urllib.parse import unquote, urlparse

from .config import SubdirectoryRule


INVALID_FILENAME_CHARS_RE = re.compile(r'[<>:"/\\|?*\x00-\x1f]')
MAX_FILENAME_LENGTH = 200


def sanitize_filename(name: str) -> str:
    name = INVALID_FILENAME_CHARS_RE.sub("_", name.strip())
    if name.startswith("."):
        name = "_" + name[1:]
    if len(name) > MAX_FILENAME_LENGTH:
        base, ext = os.path.splitext(name)
        name = base[: MAX_FILENAME_LENGTH - len(ext)] + ext
    return name


def filename_from_url(url: str) -> Optional[str]:
    """Last path segment of ``url``, or None when the path names a directory."""
    path = unquote(urlparse(url).path)
    if not path or path.endswith("/"):
        return None
    name = sanitize_filename(posixpath.basename(path))
    return name or None


class FilenameAssigner:
    """Hands out collision-free local paths in call order.

    Calls must follow discovery order for the names to be reproducible; the
    first caller wins the bare name, later ones get ``name_1.ext``,
    ``name_2.ext`` and so on within the same directory.
    """

    def __init__(self, default_filename: str, subdirectories: Optional[Sequence[SubdirectoryRule]]):
        self.default_filename = default_filename
        self.subdirectories = None if subdirectories is None else tuple(subdirectories)
        self._taken: Dict[str, Set[str]] = {}
        self._lock = threading.Lock()

    def subdirectory_for(self, filename: str) -> Optional[str]:
        if self.subdirectories is None:
            return None
        for rule in self.subdirectories:
            if rule.matches(filename):
                return rule.directory
        return None

    def _base_name(self, url: str, use_url: bool) -> str:
        name = filename_from_url(url) if use_url else None
        if not name:
            return self.default_filename
        if not os.path.splitext(name)[1]:
            name += os.path.splitext(self.default_filename)[1]
        return name

    def assign(self, url: str, filename: Optional[str] = None, use_url: bool = True) -> str:
        """Return the local path for ``url``.

        An explicit ``filename`` is used as given; otherwise the name comes
        from the URL path (when ``use_url``) or falls back to the default
        filename. Derived names are routed into subdirectories by extension.
        """
        if filename:
            directory, name = posixpath.split(filename.replace("\\", "/"))
        else:
            name = self._base_name(url, use_url)
            directory = self.subdirectory_for(name) or ""
        with self._lock:
            taken = self._taken.setdefault(directory, set())
            base, ext = os.path.splitext(name)
            candidate = name
            counter = 0
            while candidate.lower() in taken:
                counter += 1
                candidate = f"{base}_{counter}{ext}"
            taken.add(candidate.lower())
        return posixpath.join(directory, candidate) if directory else candidate

    def assigned(self, directory: str = "") -> Set[str]:
        with self._lock:
            return set(self._taken.get(directory, set()))
