"""
Media Envelopes
===============

Helpers for the canonical content-part shape used in every Message:

    {
      "type": "text" | "image" | "audio" | "video" | "document",   # required
      "text": "...",                                               # type == text
      "mime": "image/png",                                         # non-text
      "uri":  "https://..." | "file://..." | "gs://...",           # exactly one of
      "data": "<base64>",                                          #   uri / data
      "meta": {"width": 1024, "height": 768, "duration_s": 3.2,
               "sample_rate_hz": 16000, "channels": 1}             # optional
    }

The Context builds user messages with `parse_media_string`, which turns
each URI or inline-data string the caller passes into one envelope and
rejects anything that is neither.
"""

import base64
import binascii
import mimetypes
from typing import Any
from urllib.parse import urlparse

from agentloop.errors import InvalidMediaError

MEDIA_TYPES = ("text", "image", "audio", "video", "document")

URI_SCHEMES = ("http", "https", "file", "gs", "s3")

# Leading bytes of common formats, used to type raw base64 payloads
_MAGIC_NUMBERS: list[tuple[bytes, str]] = [
    (b"\x89PNG\r\n\x1a\n", "image/png"),
    (b"\xff\xd8\xff", "image/jpeg"),
    (b"GIF87a", "image/gif"),
    (b"GIF89a", "image/gif"),
    (b"%PDF-", "application/pdf"),
    (b"ID3", "audio/mpeg"),
    (b"OggS", "audio/ogg"),
    (b"fLaC", "audio/flac"),
]


# ==============================================================================
# Builders
# ==============================================================================

def text(value: str) -> dict[str, Any]:
    """Create a text envelope."""
    return {"type": "text", "text": value}


def _media(
    kind: str,
    mime: str,
    uri: str | None,
    data: str | None,
    meta: dict | None
) -> dict[str, Any]:
    if (uri is None) == (data is None):
        raise InvalidMediaError(f"{kind} envelope needs exactly one of uri or data")

    part: dict[str, Any] = {"type": kind, "mime": mime}
    if uri is not None:
        part["uri"] = uri
    else:
        part["data"] = data
    if meta:
        part["meta"] = dict(meta)
    return part


def image(mime: str, *, uri: str | None = None, data: str | None = None, meta: dict | None = None) -> dict:
    """Create an image envelope from a URI or base64 data."""
    return _media("image", mime, uri, data, meta)


def audio(mime: str, *, uri: str | None = None, data: str | None = None, meta: dict | None = None) -> dict:
    """Create an audio envelope from a URI or base64 data."""
    return _media("audio", mime, uri, data, meta)


def video(mime: str, *, uri: str | None = None, data: str | None = None, meta: dict | None = None) -> dict:
    """Create a video envelope from a URI or base64 data."""
    return _media("video", mime, uri, data, meta)


def document(mime: str, *, uri: str | None = None, data: str | None = None, meta: dict | None = None) -> dict:
    """Create a document envelope from a URI or base64 data."""
    return _media("document", mime, uri, data, meta)


# ==============================================================================
# Inspection
# ==============================================================================

def kind_from_mime(mime: str) -> str:
    """Map a MIME type to an envelope type; unknown families are documents."""
    family = mime.split("/", 1)[0].lower()
    if family in ("image", "audio", "video"):
        return family
    return "document"


def is_media_part(part: Any) -> bool:
    """Quick probe: does this look like an envelope of a known type?"""
    return isinstance(part, dict) and part.get("type") in MEDIA_TYPES


def has_uri(part: dict) -> bool:
    return isinstance(part.get("uri"), str)


def has_data(part: dict) -> bool:
    return isinstance(part.get("data"), str)


def normalize_media_part(part: dict) -> dict[str, Any]:
    """
    Validate an envelope and return a normalized copy.

    Accepts the legacy `url` key as an alias of `uri` and fills in a
    missing MIME type from the URI or data URL when possible.

    Raises:
        InvalidMediaError: If the envelope cannot be made valid
    """
    if not is_media_part(part):
        raise InvalidMediaError(f"Not a media envelope: {part!r}")

    result = dict(part)
    if "url" in result and "uri" not in result:
        result["uri"] = result.pop("url")

    if result["type"] == "text":
        if not isinstance(result.get("text"), str):
            raise InvalidMediaError("text envelope requires a string 'text' field")
        return result

    if has_uri(result) == has_data(result):
        raise InvalidMediaError(f"{result['type']} envelope needs exactly one of uri or data")

    if not result.get("mime"):
        mime = None
        if has_uri(result):
            mime = mime_from_data_url(result["uri"]) or mimetypes.guess_type(result["uri"])[0]
        if not mime:
            raise InvalidMediaError(f"{result['type']} envelope is missing a MIME type")
        result["mime"] = mime

    if "meta" in result and not isinstance(result["meta"], dict):
        raise InvalidMediaError("envelope 'meta' must be an object")

    return result


def mime_from_data_url(data_url: str) -> str | None:
    """Extract the MIME type from `data:<mime>;base64,...`, if present."""
    if not data_url.startswith("data:"):
        return None
    header = data_url[5:].split(",", 1)[0]
    mime = header.split(";", 1)[0]
    return mime or None


def _sniff_mime(raw: bytes) -> str | None:
    for magic, mime in _MAGIC_NUMBERS:
        if raw.startswith(magic):
            return mime
    if raw[:4] == b"RIFF" and raw[8:12] == b"WAVE":
        return "audio/wav"
    if raw[:4] == b"RIFF" and raw[8:12] == b"WEBP":
        return "image/webp"
    if raw[4:8] == b"ftyp":
        return "video/mp4"
    return None


def _decode_base64(payload: str) -> bytes:
    try:
        return base64.b64decode(payload, validate=True)
    except (binascii.Error, ValueError) as e:
        raise InvalidMediaError(f"Inline data is not valid base64: {e}") from e


# ==============================================================================
# Parsing
# ==============================================================================

def parse_media_string(value: str) -> dict[str, Any]:
    """
    Turn a URI or inline-data string into an envelope.

    Accepted forms:
        https://example.com/cat.png     -> image envelope with uri
        file:///tmp/report.pdf          -> document envelope with uri
        data:image/png;base64,iVBOR...  -> image envelope with data
        iVBORw0KGgo...                  -> raw base64, typed by magic bytes

    Raises:
        InvalidMediaError: If the string is neither a valid URI nor
            decodable inline data of a recognizable type
    """
    value = value.strip()
    if not value:
        raise InvalidMediaError("Empty media string")

    if value.startswith("data:"):
        header, sep, payload = value[5:].partition(",")
        if not sep or ";base64" not in header:
            raise InvalidMediaError("Only base64 data URLs are supported")
        mime = header.split(";", 1)[0] or "application/octet-stream"
        _decode_base64(payload)
        return _media(kind_from_mime(mime), mime, None, payload, None)

    parsed = urlparse(value)
    if parsed.scheme:
        if parsed.scheme.lower() not in URI_SCHEMES:
            raise InvalidMediaError(f"Unsupported URI scheme: {parsed.scheme}")
        if not (parsed.netloc or parsed.path):
            raise InvalidMediaError(f"URI has no location: {value}")
        mime = mimetypes.guess_type(parsed.path)[0] or "application/octet-stream"
        return _media(kind_from_mime(mime), mime, value, None, None)

    raw = _decode_base64(value)
    mime = _sniff_mime(raw)
    if mime is None:
        raise InvalidMediaError("Inline data does not match any known media format")
    return _media(kind_from_mime(mime), mime, None, value, None)


def build_parts(prompt: str, uris_or_data: list[str] | None = None) -> list[dict[str, Any]]:
    """
    Build the content parts of a user message: the prompt as text,
    followed by one envelope per media string, in order.
    """
    parts = [text(prompt)]
    for item in uris_or_data or []:
        parts.append(parse_media_string(item))
    return parts
