"""
Response content type resolution.

Web-app resources get a content type from their name; requests forwarded to
annotators get whatever the caller said it would accept.
"""

import mimetypes
from typing import NamedTuple

UTF8 = "UTF-8"
DEFAULT_STATIC_TYPE = "application/octet-stream"
DEFAULT_DYNAMIC_TYPE = "text/plain"

# not every platform's mime.types knows these
_EXTRA_TYPES = {
    ".js": "text/javascript",
    ".mjs": "text/javascript",
    ".json": "application/json",
    ".css": "text/css",
    ".svg": "image/svg+xml",
    ".woff2": "font/woff2",
}


class ContentType(NamedTuple):
    """A MIME type, and the character encoding to declare with it, if any."""

    mimetype: str
    charset: str | None = None

    def __str__(self) -> str:
        if self.charset:
            return f"{self.mimetype};charset={self.charset}"
        return self.mimetype


def is_textual(mimetype: str) -> bool:
    """Whether a response of this type should declare a UTF-8 charset."""
    return mimetype.startswith("text") or mimetype == "application/json"


def with_charset(mimetype: str) -> ContentType:
    return ContentType(mimetype, UTF8 if is_textual(mimetype) else None)


def content_type_for_name(name: str) -> ContentType:
    """
    Infer the content type of a resource from its suffix.

    Args:
        name: Resource name, e.g. "index.html" or "getLayers"

    Returns:
        Content type, with a UTF-8 charset for textual types. Names without a
        suffix are assumed to be text; unknown suffixes are binary.
    """
    basename = name.rsplit("/", 1)[-1]
    if "." not in basename:
        return with_charset(DEFAULT_DYNAMIC_TYPE)

    suffix = "." + basename.rsplit(".", 1)[-1].lower()
    mimetype = _EXTRA_TYPES.get(suffix) or mimetypes.guess_type(basename)[0]
    return with_charset(mimetype or DEFAULT_STATIC_TYPE)


def negotiate_content_type(accept: str | None) -> ContentType | None:
    """
    Pick the response content type from an Accept header.

    Something like "*/*" or "text/html, application/xhtml+xml, */*;q=0.8" -
    the first entry is taken, and any parameters are stripped.

    Args:
        accept: Accept header value, if any

    Returns:
        The content type to respond with, or None if the caller will accept anything
    """
    if not accept:
        return None

    mimetype = accept.split(",")[0].split(";")[0].strip()
    if not mimetype or mimetype == "*/*":
        return None
    return with_charset(mimetype)
