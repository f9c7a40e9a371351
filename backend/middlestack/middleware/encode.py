"""
Middlestack — Response Encoding Flag
=====================================

Marks every response from the route handler with ``encode=True`` so the
format stage negotiates a wire format and serializes the body. Status,
body and headers are left untouched; absence passes through as absence.
"""

from typing import Optional

from middlestack.http.request import Request
from middlestack.http.response import Response
from middlestack.middleware.base import ResponseStage


class EncodeResponseStage(ResponseStage):
    name = "encode_response"

    def process(self, request: Request, response: Optional[Response]) -> Optional[Response]:
        if response is None:
            return None
        return response.mark_encode()
