"""
Middlestack — Response Defaults
================================

What:  Fills in response metadata handlers commonly leave out.

    content_types     guess Content-Type from the request path extension
                      when the response has none (``/app.js`` → application/javascript)
    default_charset   append ``; charset=<charset>`` to textual content
                      types that do not name one
"""

import mimetypes
from typing import Optional

from middlestack.config import ResponsesOptions
from middlestack.http.request import Request
from middlestack.http.response import Response
from middlestack.middleware.base import ResponseStage


def with_charset(content_type: str, charset: str) -> str:
    if "charset=" in content_type.lower() or not content_type.lower().startswith("text/"):
        return content_type
    return f"{content_type}; charset={charset}"


class ContentTypeStage(ResponseStage):
    name = "responses"
    options_model = ResponsesOptions

    def process(self, request: Request, response: Optional[Response]) -> Optional[Response]:
        if response is None:
            return None

        content_type = response.header("Content-Type")
        if content_type is None and self.options.content_types and not response.encode:
            guessed, _ = mimetypes.guess_type(request.path)
            if guessed:
                content_type = guessed
                response = response.with_content_type(guessed)

        if content_type and self.options.default_charset:
            charset_type = with_charset(content_type, self.options.default_charset)
            if charset_type != content_type:
                response = response.with_content_type(charset_type)
        return response
