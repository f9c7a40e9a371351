"""
Middlestack — Parameter Unifier and Encoding Flag Tests
========================================================

What:  ``all_params`` precedence and the encode marker stage.
"""

import pytest

from middlestack.http.handler import as_handler
from middlestack.http.request import Request
from middlestack.http.response import Response
from middlestack.middleware.encode import EncodeResponseStage
from middlestack.middleware.params import MergeParamsStage, merge_params, unify_params


def echo_all_params(request):
    return Response(body=request["all_params"])


class TestUnifyParams:
    """Tests for all_params precedence."""

    def test_disjoint_sources_are_unioned(self):
        """Keys from different sources all end up in all_params."""
        request = Request(
            params={"a": 1},
            body_params={"b": 2},
            query_params={"c": 3},
            form_params={"d": 4},
            multipart_params={"e": 5},
            parameters={"path": {"f": 6}},
        )
        assert unify_params(request) == {"a": 1, "b": 2, "c": 3, "d": 4, "e": 5, "f": 6}

    def test_path_params_win_over_query_params(self):
        """Path segments beat query values of the same name."""
        request = Request(path_params={"id": "from-path"}, query_params={"id": "from-query"})
        assert unify_params(request)["id"] == "from-path"

    def test_later_sources_overwrite_earlier_ones(self):
        """Later sources in the precedence list win."""
        request = Request(
            params={"k": "params"},
            body_params={"k": "body"},
            form_params={"k": "form"},
        )
        assert unify_params(request)["k"] == "form"

    def test_coerced_parameters_win_over_raw_sources(self):
        """Coerced parameters replace their raw strings."""
        request = Request(
            query_params={"limit": "5"},
            parameters={"query": {"limit": 5}},
        )
        assert unify_params(request) == {"limit": 5}

    def test_parameters_multipart_is_highest_precedence(self):
        """Coerced multipart parameters come last and win."""
        request = Request(
            multipart_params={"k": "raw"},
            parameters={"body": {"k": "body"}, "multipart": {"k": "multipart"}},
        )
        assert unify_params(request)["k"] == "multipart"

    def test_missing_sources_contribute_nothing(self):
        """Absent or None sources are skipped."""
        assert unify_params(Request(method="GET")) == {}
        assert unify_params(Request(parameters={"query": None}, body_params=None)) == {}

    def test_accepts_plain_mapping(self):
        """Plain dicts work as well as Request values."""
        assert unify_params({"query_params": {"q": "x"}}) == {"q": "x"}

    # ── merge_params ──────────────────────────────────────────────────────

    def test_other_keys_preserved_and_input_untouched(self):
        """merge_params only adds all_params to a copy."""
        original = Request(path="/x", query_params={"q": "1"})
        merged = merge_params(original)
        assert merged["path"] == "/x"
        assert merged["all_params"] == {"q": "1"}
        assert "all_params" not in original

    def test_idempotent(self):
        """Merging twice gives the same request."""
        request = Request(params={"a": 1}, path_params={"a": 2}, query_params={"b": 3})
        once_merged = merge_params(request)
        assert merge_params(once_merged) == once_merged


class TestMergeParamsStage:
    """Tests for the parameter unifier stage."""

    def test_direct_convention(self, make_request):
        """The stage merges before calling the handler directly."""
        stage = MergeParamsStage(echo_all_params)
        response = stage(make_request(query_params={"q": "x"}))
        assert response.body == {"q": "x"}

    def test_continuation_convention(self, make_request, delivery):
        """The stage merges before calling the handler in continuation mode."""
        stage = MergeParamsStage(echo_all_params)
        stage.call_async(make_request(path_params={"id": 7}), delivery.respond, delivery.raise_)
        assert delivery.response.body == {"id": 7}

    def test_inner_failure_propagates(self, make_request, delivery):
        """Inner failures propagate in both conventions."""
        def boom(request):
            raise RuntimeError("inner")

        with pytest.raises(RuntimeError):
            MergeParamsStage(boom)(make_request())

        MergeParamsStage(boom).call_async(make_request(), delivery.respond, delivery.raise_)
        assert isinstance(delivery.errors[0], RuntimeError)


class TestEncodeResponseStage:
    """Tests for the encode marker stage."""

    def test_marks_response_for_encoding(self, make_request):
        """Responses come back marked for encoding and otherwise unchanged."""
        stage = EncodeResponseStage(lambda request: Response(status=201, body={"ok": True}))
        response = stage(make_request())
        assert response.encode is True
        assert response.status == 201
        assert response.body == {"ok": True}

    def test_already_marked_response_stays_marked(self, make_request):
        """Marking is idempotent."""
        stage = EncodeResponseStage(lambda request: Response(body=[1], encode=True))
        assert stage(make_request()).encode is True

    def test_absent_response_stays_absent(self, make_request, delivery):
        """None is not turned into a response."""
        stage = EncodeResponseStage(lambda request: None)
        assert stage(make_request()) is None
        stage.call_async(make_request(), delivery.respond, delivery.raise_)
        assert delivery.response is None

    def test_request_passes_through_unchanged(self, make_request):
        """The request reaches the handler as given."""
        seen = []
        stage = EncodeResponseStage(as_handler(lambda request: seen.append(request) or Response()))
        request = make_request(query_params={"q": "x"})
        stage(request)
        assert seen == [request]
