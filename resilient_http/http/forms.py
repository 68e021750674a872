"""Request body encoders for URL-encoded and multipart forms."""

import secrets
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from urllib.parse import urlencode

from resilient_http.http.constants import FORM_URLENCODED, MULTIPART_FORM_DATA
from resilient_http.http.errors import ConfigError
from resilient_http.http.models import FilePart


CRLF = b"\r\n"

FormData = str | Mapping[str, str | int | float | Sequence[str]]
MultipartField = str | bytes | FilePart | Mapping[str, str | bytes]


@dataclass(frozen=True)
class EncodedBody:
    """Encoded body with the headers describing it."""

    body: bytes
    content_type: str

    @property
    def headers(self) -> dict[str, str]:
        """Content-Type and Content-Length headers for the body."""
        return {
            "content-type": self.content_type,
            "content-length": str(len(self.body)),
        }


def encode_form(data: FormData) -> EncodedBody:
    """URL-encode form data.

    Args:
        data: Pre-encoded string or mapping of fields. Sequence values
            produce repeated keys.

    Returns:
        Encoded body with ``application/x-www-form-urlencoded`` type.
    """
    encoded = data if isinstance(data, str) else urlencode(data, doseq=True)
    return EncodedBody(body=encoded.encode("utf-8"), content_type=FORM_URLENCODED)


def generate_boundary() -> str:
    """Generate a random multipart boundary."""
    return f"----FormBoundary{secrets.token_hex(16)}"


def _as_file_part(value: MultipartField) -> FilePart | None:
    if isinstance(value, FilePart):
        return value
    if isinstance(value, Mapping):
        if "name" not in value or "data" not in value:
            msg = "File fields require 'name' and 'data'"
            raise ConfigError(msg)
        return FilePart(
            name=str(value["name"]),
            data=value["data"],
            type=str(value.get("type") or "application/octet-stream"),
        )
    return None


def _to_bytes(value: str | bytes) -> bytes:
    return value if isinstance(value, bytes) else str(value).encode("utf-8")


def _quote(value: str) -> str:
    return value.replace("\\", "\\\\").replace('"', '\\"').replace("\r", "").replace("\n", "")


def encode_multipart(
    fields: Mapping[str, MultipartField],
    boundary: str | None = None,
) -> EncodedBody:
    """Build a ``multipart/form-data`` body.

    Plain values become simple parts; ``FilePart`` values (or mappings with
    ``name``/``data``/``type``) become file parts. The body ends with the
    closing ``--boundary--`` line.

    Args:
        fields: Field name to value.
        boundary: Fixed boundary; a random one is generated when omitted.

    Returns:
        Encoded body with the boundary in its content type.
    """
    boundary = boundary or generate_boundary()
    delimiter = f"--{boundary}".encode("ascii")
    parts: list[bytes] = []

    for field_name, value in fields.items():
        file_part = _as_file_part(value)
        lines = [delimiter]
        if file_part is not None:
            lines.append(
                (
                    f'Content-Disposition: form-data; name="{_quote(field_name)}"; '
                    f'filename="{_quote(file_part.name)}"'
                ).encode()
            )
            lines.append(f"Content-Type: {file_part.type}".encode())
            payload = _to_bytes(file_part.data)
        else:
            lines.append(
                f'Content-Disposition: form-data; name="{_quote(field_name)}"'.encode()
            )
            payload = _to_bytes(value)  # type: ignore[arg-type]
        lines.append(b"")
        lines.append(payload)
        parts.append(CRLF.join(lines))

    parts.append(delimiter + b"--")
    body = CRLF.join(parts) + CRLF
    return EncodedBody(
        body=body,
        content_type=f"{MULTIPART_FORM_DATA}; boundary={boundary}",
    )
