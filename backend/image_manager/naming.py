"""Filename helpers shared by the upload endpoint and the staging client."""
import re
from urllib.parse import unquote, urlsplit

_EXTENSION_RE = re.compile(r"\.[^/.]+$")

# Leading upload-timestamp prefix, e.g. "1712345678_cat.png".
_TIMESTAMP_PREFIX_RE = re.compile(r"^\d+_(?=.)")

MAX_SHORT_NAME = 24
SHORT_NAME_KEEP = 20


def strip_extension(filename: str) -> str:
    """Return *filename* without its last extension ("a.b.png" -> "a.b")."""
    return _EXTENSION_RE.sub("", filename)


def extension_of(filename: str) -> str:
    """Return the last extension of *filename* without the dot, or ``""``."""
    match = _EXTENSION_RE.search(filename)
    return match.group(0)[1:] if match else ""


def join_extension(name: str, extension: str) -> str:
    """Reattach *extension* to *name*; no dot is added when it is empty."""
    return f"{name}.{extension}" if extension else name


def derived_name(url: str) -> str:
    """Last path segment of *url*."""
    path = urlsplit(url).path
    return unquote(path.rstrip("/").rsplit("/", 1)[-1])


def clean_display_name(name: str) -> str:
    """Drop a numeric timestamp prefix left by some uploaders."""
    return _TIMESTAMP_PREFIX_RE.sub("", name)


def short_name(name: str) -> str:
    """Truncate long names for compact display."""
    if len(name) > MAX_SHORT_NAME:
        return f"{name[:SHORT_NAME_KEEP]}..."
    return name


def resolve_url(url: str, base_url: str) -> str:
    """Make a backend-relative *url* absolute against *base_url*."""
    if url.startswith("http"):
        return url
    return f"{base_url.rstrip('/')}/{url.lstrip('/')}"
