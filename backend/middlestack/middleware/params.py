"""
Middlestack — Parameter Unifier
================================

What:  Folds every parameter source on the request into one flat mapping
       stored under ``all_params``.
When:  Route level, after schema coercion has filled ``parameters``.

Precedence (later sources overwrite earlier ones on key collision):

    params → body_params → path_params → query_params → path_params
           → form_params → multipart_params
           → parameters.body → parameters.path → parameters.query
           → parameters.form → parameters.multipart

``path_params`` appears twice: path segments win over query-string values
of the same name. Missing sources contribute nothing.
"""

from typing import Any, Dict, Mapping, Tuple

from middlestack.http.request import Request
from middlestack.middleware.base import PassThroughStage

UNIFIED_SOURCES: Tuple[Tuple[str, ...], ...] = (
    ("params",),
    ("body_params",),
    ("path_params",),
    ("query_params",),
    ("path_params",),
    ("form_params",),
    ("multipart_params",),
    ("parameters", "body"),
    ("parameters", "path"),
    ("parameters", "query"),
    ("parameters", "form"),
    ("parameters", "multipart"),
)


def unify_params(request: Mapping[str, Any]) -> Dict[str, Any]:
    """Merge the parameter sources of ``request`` in precedence order."""
    if not isinstance(request, Request):
        request = Request(request)
    merged: Dict[str, Any] = {}
    for path in UNIFIED_SOURCES:
        source = request.get_in(path)
        if isinstance(source, Mapping):
            merged.update(source)
    return merged


def merge_params(request: Request) -> Request:
    """Return a new request with ``all_params`` set."""
    return request.assoc("all_params", unify_params(request))


class MergeParamsStage(PassThroughStage):
    name = "merge_params"

    def transform(self, request: Request) -> Request:
        return merge_params(request)
