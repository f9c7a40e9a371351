"""
Middlestack — Response Value
=============================

What:  Frozen response value plus helpers that derive modified copies.
How:   ``Response`` is a dataclass; helpers use ``dataclasses.replace`` so a
       response is never modified in place.

Absence:
    Handlers return ``None`` when they have no opinion about a request.
    ``None`` is a normal outcome, not an error, and is resolved by the
    fallback stages or by the host (bare 404).

Resource lookup:
    ``resource_response`` reads a file below a root directory. A missing
    file, or a name that escapes the root, yields ``None``.
"""

import logging
import mimetypes
from dataclasses import dataclass, field, replace
from pathlib import Path
from types import MappingProxyType
from typing import Any, Mapping, Optional

import aiofiles

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Response:
    """
    An HTTP response.

    Attributes:
        status:   HTTP status code
        body:     str, bytes, a JSON-serializable structure, or None
        headers:  Header mapping (names as given)
        encode:   Marker asking the host codec to negotiate and serialize ``body``
    """

    status: int = 200
    body: Any = None
    headers: Mapping[str, str] = field(default_factory=dict)
    encode: bool = False

    def __post_init__(self) -> None:
        object.__setattr__(self, "headers", MappingProxyType(dict(self.headers)))

    def header(self, name: str, default: Optional[str] = None) -> Optional[str]:
        lowered = name.lower()
        for key, value in self.headers.items():
            if key.lower() == lowered:
                return value
        return default

    def with_header(self, name: str, value: str) -> "Response":
        headers = {k: v for k, v in self.headers.items() if k.lower() != name.lower()}
        headers[name] = value
        return replace(self, headers=headers)

    def with_status(self, status: int) -> "Response":
        return replace(self, status=status)

    def with_content_type(self, content_type: str) -> "Response":
        return self.with_header("Content-Type", content_type)

    def with_body(self, body: Any) -> "Response":
        return replace(self, body=body)

    def mark_encode(self) -> "Response":
        return replace(self, encode=True)


def status_only(status: int) -> Response:
    """A response carrying just a status code and no body."""
    return Response(status=status)


# ══════════════════════════════════════════════════════════════════════════
# Resource Responses
# ══════════════════════════════════════════════════════════════════════════

def resolve_resource(name: str, root: str) -> Optional[Path]:
    """
    Resolve ``name`` below ``root``.

    Returns None when the file does not exist, is not a regular file, or
    resolves outside ``root`` (e.g. ``../../etc/passwd``). Names the OS
    cannot represent (embedded NUL bytes, over-long segments) are treated as
    missing.
    """
    try:
        root_path = Path(root).resolve()
        candidate = (root_path / name.lstrip("/")).resolve()
    except (ValueError, OSError) as e:
        logger.warning("Unresolvable resource name %r: %s", name, e)
        return None
    try:
        candidate.relative_to(root_path)
    except ValueError:
        logger.warning("Rejected resource outside root: %s (root=%s)", name, root_path)
        return None
    try:
        is_file = candidate.is_file()
    except (ValueError, OSError) as e:
        logger.warning("Unresolvable resource name %r: %s", name, e)
        return None
    if not is_file:
        return None
    return candidate


def _file_response(path: Path, content: bytes) -> Response:
    content_type, _ = mimetypes.guess_type(path.name)
    return Response(
        status=200,
        body=content,
        headers={
            "Content-Type": content_type or "application/octet-stream",
            "Content-Length": str(len(content)),
        },
    )


def resource_response(name: str, root: str = "public") -> Optional[Response]:
    """Read a resource synchronously; None when it cannot be located."""
    path = resolve_resource(name, root)
    if path is None:
        return None
    try:
        content = path.read_bytes()
    except OSError as e:
        logger.warning("Failed to read resource %s: %s", path, str(e))
        return None
    return _file_response(path, content)


async def resource_response_async(name: str, root: str = "public") -> Optional[Response]:
    """Read a resource without blocking the event loop; None when it cannot be located."""
    path = resolve_resource(name, root)
    if path is None:
        return None
    try:
        async with aiofiles.open(path, "rb") as f:
            content = await f.read()
    except OSError as e:
        logger.warning("Failed to read resource %s: %s", path, str(e))
        return None
    return _file_response(path, content)
