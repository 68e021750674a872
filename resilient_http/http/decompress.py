"""Content-Encoding aware body decoding."""

import gzip
import zlib

import brotli

from resilient_http.http.errors import DecompressionError


def _gunzip(data: bytes) -> bytes:
    try:
        return gzip.decompress(data)
    except (OSError, EOFError, zlib.error) as e:
        raise DecompressionError("gzip", str(e) or type(e).__name__) from e


def _inflate(data: bytes) -> bytes:
    try:
        return zlib.decompress(data)
    except zlib.error:
        pass
    # Some servers send raw deflate streams without the zlib wrapper
    try:
        return zlib.decompress(data, -zlib.MAX_WBITS)
    except zlib.error as e:
        raise DecompressionError("deflate", str(e)) from e


def _unbrotli(data: bytes) -> bytes:
    try:
        return brotli.decompress(data)
    except brotli.error as e:
        raise DecompressionError("br", str(e) or "corrupt brotli stream") from e


_DECODERS = {
    "gzip": _gunzip,
    "x-gzip": _gunzip,
    "deflate": _inflate,
    "br": _unbrotli,
}


def decompress(data: bytes, encoding: str | None) -> bytes:
    """Decode a response body according to its Content-Encoding.

    Supports gzip, deflate and br. Absent, ``identity`` or unknown encodings
    pass the body through unchanged. When several codings are listed, they
    are undone in reverse order of application.

    Args:
        data: Body bytes as received on the wire.
        encoding: Value of the Content-Encoding header, if any.

    Returns:
        Decoded body bytes.

    Raises:
        DecompressionError: If the body is corrupt for a declared encoding.
    """
    if not data or not encoding:
        return data

    codings = [token.strip().lower() for token in encoding.split(",") if token.strip()]
    for coding in reversed(codings):
        decoder = _DECODERS.get(coding)
        if decoder is not None:
            data = decoder(data)
    return data
