"""
Content-type and cache-directive resolution for published files.

A fixed suffix table keeps the result deterministic across runtimes
(``mimetypes`` depends on the host's ``/etc/mime.types``).
"""
import posixpath
from typing import Tuple

DEFAULT_CONTENT_TYPE = "application/octet-stream"

# Short-lived: documents whose URL never changes when their content does
_SHORT = "short"
# Long-lived: static assets
_LONG = "long"

_TYPES = {
    # documents
    ".html": ("text/html; charset=utf-8", _SHORT),
    ".htm": ("text/html; charset=utf-8", _SHORT),
    ".xhtml": ("application/xhtml+xml; charset=utf-8", _SHORT),
    ".css": ("text/css; charset=utf-8", _SHORT),
    ".js": ("text/javascript; charset=utf-8", _SHORT),
    ".mjs": ("text/javascript; charset=utf-8", _SHORT),
    ".map": ("application/json; charset=utf-8", _SHORT),
    ".json": ("application/json; charset=utf-8", _SHORT),
    ".webmanifest": ("application/manifest+json; charset=utf-8", _SHORT),
    ".xml": ("application/xml; charset=utf-8", _SHORT),
    ".rss": ("application/rss+xml; charset=utf-8", _SHORT),
    ".atom": ("application/atom+xml; charset=utf-8", _SHORT),
    ".txt": ("text/plain; charset=utf-8", _SHORT),
    ".md": ("text/markdown; charset=utf-8", _SHORT),
    ".csv": ("text/csv; charset=utf-8", _SHORT),
    ".ics": ("text/calendar; charset=utf-8", _SHORT),
    # images
    ".svg": ("image/svg+xml", _LONG),
    ".png": ("image/png", _LONG),
    ".jpg": ("image/jpeg", _LONG),
    ".jpeg": ("image/jpeg", _LONG),
    ".gif": ("image/gif", _LONG),
    ".webp": ("image/webp", _LONG),
    ".avif": ("image/avif", _LONG),
    ".ico": ("image/x-icon", _LONG),
    ".bmp": ("image/bmp", _LONG),
    ".tif": ("image/tiff", _LONG),
    ".tiff": ("image/tiff", _LONG),
    # fonts
    ".woff": ("font/woff", _LONG),
    ".woff2": ("font/woff2", _LONG),
    ".ttf": ("font/ttf", _LONG),
    ".otf": ("font/otf", _LONG),
    ".eot": ("application/vnd.ms-fontobject", _LONG),
    # media and documents
    ".pdf": ("application/pdf", _LONG),
    ".mp4": ("video/mp4", _LONG),
    ".webm": ("video/webm", _LONG),
    ".ogg": ("audio/ogg", _LONG),
    ".mp3": ("audio/mpeg", _LONG),
    ".wav": ("audio/wav", _LONG),
    ".wasm": ("application/wasm", _LONG),
    ".zip": ("application/zip", _LONG),
    ".gz": ("application/gzip", _LONG),
}


class ContentTypeResolver:
    """
    Maps a file path to ``(mime_type, cache_directive)``.

    Pure and stateless apart from the two configured lifetimes; never fails.

    Args:
        short_cache_seconds: max-age for documents and unknown suffixes
        long_cache_seconds: max-age for static assets
    """

    def __init__(self, short_cache_seconds=30, long_cache_seconds=86400):
        self.short_directive = f"public, max-age={int(short_cache_seconds)}"
        self.long_directive = f"public, max-age={int(long_cache_seconds)}"

    @classmethod
    def from_config(cls, config):
        return cls(config.get("short_cache_seconds", 30), config.get("long_cache_seconds", 86400))

    def resolve(self, path: str) -> Tuple[str, str]:
        """
        Resolve content type and cache directive for a path.

        Args:
            path: Object key or file path

        Returns:
            Tuple of (mime_type, cache_directive)
        """
        suffix = posixpath.splitext(posixpath.basename(path or ""))[1].lower()
        mime_type, lifetime = _TYPES.get(suffix, (DEFAULT_CONTENT_TYPE, _SHORT))
        directive = self.long_directive if lifetime == _LONG else self.short_directive
        return mime_type, directive


_DEFAULT_RESOLVER = ContentTypeResolver()


def resolve_content_type(path: str) -> Tuple[str, str]:
    """Resolve with the default lifetimes."""
    return _DEFAULT_RESOLVER.resolve(path)
