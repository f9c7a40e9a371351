"""
Middlestack — Framework Stage Tests
====================================

What:  Gzip, security headers, response defaults, static resources, and the
       route-level format and coercion stages.
"""

import gzip
import json

import pytest
from pydantic import BaseModel

from middlestack.exceptions import CoercionError
from middlestack.http.handler import invoke_async
from middlestack.http.response import Response
from middlestack.middleware.coercion import CoerceRequestStage, coerce_request
from middlestack.middleware.compression import GzipStage, accepts_gzip
from middlestack.middleware.format import FormatStage, encode_response, negotiate
from middlestack.middleware.responses import ContentTypeStage, with_charset
from middlestack.middleware.security import SecurityHeadersStage
from middlestack.middleware.static import StaticResourceStage

LARGE_TEXT = "lorem ipsum dolor sit amet " * 100


def nothing(request):
    return None


def text_response(request):
    return Response(body=LARGE_TEXT, headers={"Content-Type": "text/plain"})


# ══════════════════════════════════════════════════════════════════════════
# Gzip
# ══════════════════════════════════════════════════════════════════════════

class TestGzip:
    """Tests for the gzip stage."""

    def test_accept_encoding_parsing(self):
        """Accept-Encoding q-values decide whether gzip is acceptable."""
        assert accepts_gzip("gzip, deflate")
        assert accepts_gzip("deflate, gzip;q=0.5")
        assert accepts_gzip("*")
        assert not accepts_gzip("gzip;q=0")
        assert not accepts_gzip("br")
        assert not accepts_gzip(None)

    def test_compresses_large_text(self, make_request):
        """Large text bodies are gzipped with Vary and Content-Length."""
        response = GzipStage(text_response)(make_request(headers={"accept-encoding": "gzip"}))
        assert response.header("Content-Encoding") == "gzip"
        assert response.header("Vary") == "Accept-Encoding"
        assert response.header("Content-Length") == str(len(response.body))
        assert gzip.decompress(response.body).decode() == LARGE_TEXT

    def test_client_without_gzip_gets_plain_body(self, make_request):
        """Clients that do not accept gzip get the plain body."""
        response = GzipStage(text_response)(make_request())
        assert response.body == LARGE_TEXT
        assert response.header("Content-Encoding") is None

    def test_small_body_not_compressed(self, make_request):
        """Bodies under the minimum size stay plain."""
        stage = GzipStage(lambda request: Response(body="tiny", headers={"Content-Type": "text/plain"}))
        assert stage(make_request(headers={"accept-encoding": "gzip"})).body == "tiny"

    def test_binary_content_type_not_compressed(self, make_request):
        """Already-compressed media types are skipped."""
        stage = GzipStage(
            lambda request: Response(body=b"\x89PNG" * 500, headers={"Content-Type": "image/png"})
        )
        response = stage(make_request(headers={"accept-encoding": "gzip"}))
        assert response.header("Content-Encoding") is None

    def test_minimum_size_option(self, make_request):
        """minimum_size lowers the threshold."""
        stage = GzipStage(
            lambda request: Response(body="tiny", headers={"Content-Type": "text/plain"}),
            {"minimum_size": 1},
        )
        response = stage(make_request(headers={"accept-encoding": "gzip"}))
        assert gzip.decompress(response.body) == b"tiny"

    def test_absence_passes_through(self, make_request, delivery):
        """None passes through untouched."""
        GzipStage(nothing).call_async(
            make_request(headers={"accept-encoding": "gzip"}), delivery.respond, delivery.raise_
        )
        assert delivery.response is None


# ══════════════════════════════════════════════════════════════════════════
# Security headers and response defaults
# ══════════════════════════════════════════════════════════════════════════

class TestSecurityHeaders:
    """Tests for the security header stage."""

    def test_defaults_added(self, make_request):
        """The default security headers are added."""
        response = SecurityHeadersStage(lambda request: Response())(make_request())
        assert response.header("X-Frame-Options") == "SAMEORIGIN"
        assert response.header("X-Content-Type-Options") == "nosniff"
        assert response.header("X-XSS-Protection") == "1; mode=block"

    def test_handler_headers_not_overwritten(self, make_request):
        """Headers set by the handler are kept."""
        stage = SecurityHeadersStage(lambda request: Response(headers={"x-frame-options": "DENY"}))
        assert stage(make_request()).header("X-Frame-Options") == "DENY"

    def test_option_none_drops_header(self, make_request):
        """Setting an option to None omits that header."""
        stage = SecurityHeadersStage(lambda request: Response(), {"frame_options": None})
        assert stage(make_request()).header("X-Frame-Options") is None


class TestContentTypeDefaults:
    """Tests for content type guessing and default charset."""

    def test_with_charset(self):
        """Only text types without a charset get the default."""
        assert with_charset("text/html", "utf-8") == "text/html; charset=utf-8"
        assert with_charset("text/html; charset=latin-1", "utf-8") == "text/html; charset=latin-1"
        assert with_charset("application/json", "utf-8") == "application/json"

    def test_guesses_from_path(self, make_request):
        """The content type is guessed from the path extension."""
        stage = ContentTypeStage(lambda request: Response(body="body { }"))
        response = stage(make_request(path="/styles/site.css"))
        assert response.header("Content-Type") == "text/css; charset=utf-8"

    def test_encode_marked_response_is_not_guessed(self, make_request):
        """Encode-marked responses are left to the codec."""
        stage = ContentTypeStage(lambda request: Response(body={"a": 1}, encode=True))
        assert stage(make_request(path="/data.css")).header("Content-Type") is None

    def test_charset_can_be_disabled(self, make_request):
        """default_charset None adds no charset."""
        stage = ContentTypeStage(
            lambda request: Response(headers={"Content-Type": "text/plain"}),
            {"default_charset": None},
        )
        assert stage(make_request()).header("Content-Type") == "text/plain"


# ══════════════════════════════════════════════════════════════════════════
# Static resources
# ══════════════════════════════════════════════════════════════════════════

class TestStaticResources:
    """Tests for serving files under the resources root."""

    def test_serves_existing_file(self, make_request, public_dir):
        """Existing files are served with their content type."""
        stage = StaticResourceStage(nothing, {"resources": str(public_dir)})
        response = stage(make_request(path="/app.css"))
        assert response.status == 200
        assert response.body == b"body { margin: 0; }"
        assert response.header("Content-Type") == "text/css"

    def test_non_get_falls_through(self, make_request, public_dir):
        """Only GET and HEAD are served."""
        stage = StaticResourceStage(nothing, {"resources": str(public_dir)})
        assert stage(make_request(method="POST", path="/app.css")) is None

    def test_traversal_falls_through(self, make_request, public_dir):
        """Paths escaping the root fall through."""
        stage = StaticResourceStage(nothing, {"resources": str(public_dir)})
        assert stage(make_request(path="/../secret.txt")) is None

    def test_null_byte_path_falls_through(self, make_request, public_dir):
        """Paths with a NUL byte fall through instead of failing."""
        stage = StaticResourceStage(nothing, {"resources": str(public_dir)})
        assert stage(make_request(path="/a\x00b")) is None
        assert stage(make_request(path="/app.css\x00.html")) is None

    def test_directory_path_falls_through(self, make_request, public_dir):
        """Directory paths reach the inner handler."""
        stage = StaticResourceStage(lambda request: Response(body="inner"), {"resources": str(public_dir)})
        assert stage(make_request(path="/")).body == "inner"

    @pytest.mark.asyncio
    async def test_serves_on_loop(self, make_request, public_dir):
        """Files are read with aiofiles on a running loop."""
        stage = StaticResourceStage(nothing, {"resources": str(public_dir)})
        response = await invoke_async(stage, make_request(path="/app.css"))
        assert response.body == b"body { margin: 0; }"

    @pytest.mark.asyncio
    async def test_missing_file_on_loop_falls_through(self, make_request, public_dir):
        """Missing files deliver the inner result on a loop."""
        stage = StaticResourceStage(nothing, {"resources": str(public_dir)})
        assert await invoke_async(stage, make_request(path="/missing.js")) is None

    @pytest.mark.asyncio
    async def test_null_byte_path_on_loop_falls_through(self, make_request, public_dir):
        """NUL-byte paths fall through on a running loop too."""
        stage = StaticResourceStage(nothing, {"resources": str(public_dir)})
        assert await invoke_async(stage, make_request(path="/a\x00b")) is None


# ══════════════════════════════════════════════════════════════════════════
# Format and coercion
# ══════════════════════════════════════════════════════════════════════════

class SearchQuery(BaseModel):
    """Query model used by the coercion tests."""

    q: str
    limit: int = 10


class TestFormat:
    """Tests for JSON decoding and encoding."""

    def test_negotiate_always_json(self):
        """Every Accept header negotiates JSON."""
        assert negotiate(None) == "application/json"
        assert negotiate("application/vnd.api+json") == "application/json"
        assert negotiate("text/html") == "application/json"

    def test_encode_response_serializes_marked_body(self, make_request):
        """Marked bodies become JSON bytes with a JSON content type."""
        encoded = encode_response(Response(status=201, body={"a": [1, 2]}, encode=True), make_request())
        assert encoded.status == 201
        assert encoded.encode is False
        assert json.loads(encoded.body) == {"a": [1, 2]}
        assert encoded.header("Content-Type") == "application/json"

    def test_unmarked_response_untouched(self, make_request):
        """Unmarked responses are returned as is."""
        response = Response(body="plain")
        assert encode_response(response, make_request()) is response

    def test_json_body_decoded_into_body_params(self, make_request):
        """JSON bodies are decoded into body_params."""
        stage = FormatStage(lambda request: Response(body=request["body_params"], encode=True))
        response = stage(
            make_request(
                method="POST",
                headers={"content-type": "application/json"},
                body=b'{"name": "widget"}',
            )
        )
        assert json.loads(response.body) == {"name": "widget"}

    def test_malformed_json_is_400(self, make_request):
        """Malformed JSON gives a 400."""
        stage = FormatStage(lambda request: Response())
        response = stage(
            make_request(method="POST", headers={"content-type": "application/json"}, body=b"{nope")
        )
        assert response.status == 400
        assert json.loads(response.body)["error"] == "malformed_body"

    def test_non_json_body_left_alone(self, make_request):
        """Non-JSON bodies are not decoded."""
        stage = FormatStage(lambda request: Response(body=str("body_params" in request)))
        response = stage(make_request(headers={"content-type": "text/plain"}, body=b"hello"))
        assert response.body == "False"


class TestCoercion:
    """Tests for coercing route parameters with pydantic models."""

    def test_declared_sources_are_coerced(self, make_request):
        """Declared sources are coerced into parameters; raw values stay."""
        request = make_request(
            route={"parameters": {"query": SearchQuery}},
            query_params={"q": "lamp", "limit": "5"},
        )
        coerced = coerce_request(request)
        assert coerced["parameters"]["query"] == {"q": "lamp", "limit": 5}
        assert coerced["query_params"] == {"q": "lamp", "limit": "5"}

    def test_no_route_schemas_is_a_no_op(self, make_request):
        """Requests without route schemas are returned as is."""
        request = make_request(query_params={"q": "x"})
        assert coerce_request(request) is request

    def test_invalid_data_raises(self, make_request):
        """Invalid data raises CoercionError naming the source."""
        request = make_request(
            route={"parameters": {"query": SearchQuery}},
            query_params={"q": "lamp", "limit": "many"},
        )
        with pytest.raises(CoercionError) as exc_info:
            coerce_request(request)
        assert exc_info.value.source == "query"
        assert exc_info.value.errors[0]["loc"] == ["limit"]

    def test_stage_renders_400(self, make_request, delivery):
        """The stage turns CoercionError into an encoded 400."""
        stage = CoerceRequestStage(lambda request: Response())
        stage.call_async(
            make_request(route={"parameters": {"query": SearchQuery}}, query_params={}),
            delivery.respond,
            delivery.raise_,
        )
        response = delivery.response
        assert response.status == 400
        assert response.encode is True
        assert response.body["error"] == "coercion_error"
        assert response.body["details"]["source"] == "query"
