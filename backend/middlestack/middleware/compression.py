"""
Middlestack — Gzip Compression
===============================

What:  Compresses response bodies for clients that accept gzip.

Compressed when all of these hold:
    - request Accept-Encoding lists gzip with a non-zero q-value
    - body is str or bytes, at least ``minimum_size`` bytes long
    - response has no Content-Encoding yet
    - content type is textual (text/*, json, xml, javascript, svg)

Headers set: Content-Encoding: gzip, Content-Length, Vary: Accept-Encoding.
"""

import gzip
import logging
from typing import Optional

from middlestack.config import GzipOptions
from middlestack.http.request import Request
from middlestack.http.response import Response
from middlestack.middleware.base import ResponseStage

logger = logging.getLogger(__name__)

COMPRESSIBLE_MARKERS = ("text/", "json", "xml", "javascript", "svg")


def accepts_gzip(accept_encoding: Optional[str]) -> bool:
    for part in (accept_encoding or "").split(","):
        token, _, params = part.strip().partition(";")
        if token.strip().lower() not in ("gzip", "*"):
            continue
        params = params.strip().replace(" ", "")
        if params.startswith("q="):
            try:
                return float(params[2:]) > 0
            except ValueError:
                return False
        return True
    return False


def is_compressible(content_type: Optional[str]) -> bool:
    lowered = (content_type or "").lower()
    return any(marker in lowered for marker in COMPRESSIBLE_MARKERS)


def _add_vary(response: Response) -> Response:
    vary = response.header("Vary")
    if not vary:
        return response.with_header("Vary", "Accept-Encoding")
    if "accept-encoding" in vary.lower():
        return response
    return response.with_header("Vary", f"{vary}, Accept-Encoding")


class GzipStage(ResponseStage):
    name = "gzip"
    options_model = GzipOptions

    def process(self, request: Request, response: Optional[Response]) -> Optional[Response]:
        if response is None or not accepts_gzip(request.header("accept-encoding")):
            return response
        body = response.body
        if isinstance(body, str):
            body = body.encode("utf-8")
        if not isinstance(body, bytes) or len(body) < self.options.minimum_size:
            return response
        if response.header("Content-Encoding") or not is_compressible(response.header("Content-Type")):
            return response

        compressed = gzip.compress(body, compresslevel=self.options.compresslevel)
        logger.debug(
            "Compressed %s %s: %d -> %d bytes",
            request.method,
            request.path,
            len(body),
            len(compressed),
        )
        response = (
            response.with_body(compressed)
            .with_header("Content-Encoding", "gzip")
            .with_header("Content-Length", str(len(compressed)))
        )
        return _add_vary(response)
