"""
Middlestack — Security Headers
===============================

Adds the browser hardening headers to every response that does not set
them itself:

    X-XSS-Protection        1; mode=block
    X-Frame-Options         SAMEORIGIN
    X-Content-Type-Options  nosniff

Setting an option to None drops that header. Anti-forgery tokens are
handled by an external collaborator, not here.
"""

from typing import Dict, Optional

from middlestack.config import SecurityOptions
from middlestack.http.request import Request
from middlestack.http.response import Response
from middlestack.middleware.base import ResponseStage


class SecurityHeadersStage(ResponseStage):
    name = "security"
    options_model = SecurityOptions

    def __init__(self, handler, options=None):
        super().__init__(handler, options)
        candidates = {
            "X-XSS-Protection": self.options.xss_protection,
            "X-Frame-Options": self.options.frame_options,
            "X-Content-Type-Options": self.options.content_type_options,
        }
        self.headers: Dict[str, str] = {k: v for k, v in candidates.items() if v}

    def process(self, request: Request, response: Optional[Response]) -> Optional[Response]:
        if response is None:
            return None
        for name, value in self.headers.items():
            if response.header(name) is None:
                response = response.with_header(name, value)
        return response
