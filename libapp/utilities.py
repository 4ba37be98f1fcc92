"""Small path helpers shared by the packager and the server."""

import re
from typing import Optional

_SAFE_REFERENCE_STRIP = re.compile(r"[^A-Za-z0-9\-]")


def safe_append_slash(path: str) -> str:
    """Return ``path`` with exactly one trailing slash."""
    if not path:
        return "/"
    return path if path.endswith("/") else path + "/"


def safe_add_with_slash(root: Optional[str], addition: str) -> str:
    """Join ``root`` and ``addition`` with exactly one ``/`` between them.

    An empty root leaves ``addition`` untouched.
    """
    if not root:
        return addition
    return root.rstrip("/") + "/" + addition.lstrip("/")


def safe_add_path(root: Optional[str], addition: str) -> str:
    """Like ``safe_add_with_slash`` but tolerates Windows separators in ``addition``."""
    return safe_add_with_slash(root, addition.replace("\\", "/"))


def safe_reference(reference: str) -> str:
    """Normalize a package reference into something usable as a URL segment."""
    return _SAFE_REFERENCE_STRIP.sub("", reference.lower().replace("_", "-"))


def change_extension(file_name: str, extension: str) -> str:
    """Replace the extension of ``file_name`` (``app.js`` -> ``app.map``)."""
    stem, dot, _ = file_name.rpartition(".")
    if not dot:
        return f"{file_name}.{extension}"
    return f"{stem}.{extension}"
