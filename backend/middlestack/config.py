"""
Middlestack — Configuration
============================

What:  Process settings (pydantic-settings) and the declarative middleware
       configuration (frozen pydantic models).
How:   ``Settings`` reads ``MIDDLESTACK_*`` environment variables (or a .env
       file). ``MiddlewareConfig`` holds one enablement value per stage:
       ``False`` skips the stage, ``True`` applies it with its defaults, and
       an options model applies it with that configuration.
When:  Both are read exactly once, while the pipeline is assembled. Nothing
       here is consulted per request.

Defaults (a browser-facing application with an API):

    params            urlencoded + multipart form decoding
    cookies           parsed into the request
    security          X-XSS-Protection, X-Frame-Options, X-Content-Type-Options
    static            files under ./public
    responses         content-type guessing, utf-8 charset
    format_exception  on, no diagnostic data
    gzip              on
    latency           off
    default_index     public/index.html unless the request is JSON
    not_found         on
"""

from typing import Any, Callable, List, Optional, Tuple, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class _Options(BaseModel):
    """Base for stage option models: immutable and strict about unknown keys."""

    model_config = ConfigDict(frozen=True, extra="forbid")


# ══════════════════════════════════════════════════════════════════════════
# Stage Options
# ══════════════════════════════════════════════════════════════════════════

class GzipOptions(_Options):
    # Responses smaller than this are sent uncompressed
    minimum_size: int = Field(default=500, ge=0)
    compresslevel: int = Field(default=6, ge=1, le=9)


class LatencyOptions(_Options):
    """Artificial delay in milliseconds; a random delay in [sleep, sleep_max) when sleep_max is set."""

    sleep: float = Field(default=200, ge=0)
    sleep_max: Optional[float] = Field(default=None, ge=0)

    @model_validator(mode="after")
    def check_range(self) -> "LatencyOptions":
        if self.sleep_max is not None and self.sleep_max < self.sleep:
            raise ValueError(
                f"latency sleep_max ({self.sleep_max}) must not be lower than sleep ({self.sleep})"
            )
        return self


class DefaultIndexOptions(_Options):
    root: str = "public"
    index: str = "index.html"
    # Regular expressions searched in the request content-type
    exclude: Tuple[str, ...] = ("json",)
    status: int = Field(default=404, ge=100, le=599)


class NotFoundOptions(_Options):
    model_config = ConfigDict(frozen=True, extra="forbid", arbitrary_types_allowed=True)

    # Called with the request when the inner handler produced nothing
    error_handler: Optional[Callable[..., Any]] = None


class FormatExceptionOptions(_Options):
    # Include message, ex_data and stack trace in the 500 body
    include_data: bool = False


class ParamsOptions(_Options):
    urlencoded: bool = True
    multipart: bool = True


class SecurityOptions(_Options):
    xss_protection: Optional[str] = "1; mode=block"
    frame_options: Optional[str] = "SAMEORIGIN"
    content_type_options: Optional[str] = "nosniff"


class StaticOptions(_Options):
    resources: str = "public"


class ResponsesOptions(_Options):
    content_types: bool = True
    default_charset: Optional[str] = "utf-8"


# ══════════════════════════════════════════════════════════════════════════
# Middleware Configuration
# ══════════════════════════════════════════════════════════════════════════

class MiddlewareConfig(BaseModel):
    """
    Declarative configuration for the whole stack.

    Each field is an enablement value. The model is frozen: derive a new
    configuration with ``model_copy(update=...)`` instead of mutating one.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    # ── Framework defaults (applied to every request) ─────────────────────
    params: Union[bool, ParamsOptions] = ParamsOptions()
    cookies: bool = True
    security: Union[bool, SecurityOptions] = SecurityOptions()
    static: Union[bool, StaticOptions] = StaticOptions()
    responses: Union[bool, ResponsesOptions] = ResponsesOptions()

    # ── Endpoint stages ───────────────────────────────────────────────────
    format_exception: Union[bool, FormatExceptionOptions] = True
    gzip: Union[bool, GzipOptions] = True
    latency: Union[bool, LatencyOptions] = False
    default_index: Union[bool, DefaultIndexOptions] = True
    not_found: Union[bool, NotFoundOptions] = True

    # ── Route stages ──────────────────────────────────────────────────────
    merge_params: bool = True


def app_middleware_config(**overrides: Any) -> MiddlewareConfig:
    """Build the default middleware configuration, optionally overriding fields."""
    return MiddlewareConfig(**overrides)


# ══════════════════════════════════════════════════════════════════════════
# Process Settings
# ══════════════════════════════════════════════════════════════════════════

class Settings(BaseSettings):
    """
    Process-level settings loaded from the environment.

    All settings have development-friendly defaults. Production deployments
    should leave ``include_exception_data`` off so failures never leak
    stack traces to clients.
    """

    model_config = SettingsConfigDict(
        env_prefix="MIDDLESTACK_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        frozen=True,
    )

    # ── Server ────────────────────────────────────────────────────────────
    host: str = Field(default="127.0.0.1")
    port: int = Field(default=8000, ge=1, le=65535)
    log_level: str = Field(default="INFO")

    # ── Pipeline ──────────────────────────────────────────────────────────
    # What: Import reference to the route table, "package.module:attribute"
    routes: Optional[str] = Field(default=None)
    # "async" runs handlers through the continuation convention on the
    # event loop; "sync" runs the direct-return convention in a threadpool
    handler_mode: str = Field(default="async")
    public_root: str = Field(default="public")
    include_exception_data: bool = Field(default=False)
    gzip: bool = Field(default=True)
    latency_ms: Optional[float] = Field(default=None, ge=0)
    latency_max_ms: Optional[float] = Field(default=None, ge=0)
    json_content_patterns: List[str] = Field(default_factory=lambda: ["json"])

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        valid_levels = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        upper = v.upper()
        if upper not in valid_levels:
            raise ValueError(f"Invalid log_level '{v}'. Must be one of: {valid_levels}")
        return upper

    @field_validator("handler_mode")
    @classmethod
    def validate_handler_mode(cls, v: str) -> str:
        lower = v.lower()
        if lower not in {"async", "sync"}:
            raise ValueError(f"Invalid handler_mode '{v}'. Must be 'async' or 'sync'")
        return lower

    def middleware_config(self) -> MiddlewareConfig:
        """
        Translate process settings into a MiddlewareConfig.

        Latency is only enabled when ``latency_ms`` is set, so a plain
        deployment never sleeps in front of real traffic.
        """
        latency: Union[bool, LatencyOptions] = False
        if self.latency_ms is not None:
            latency = LatencyOptions(sleep=self.latency_ms, sleep_max=self.latency_max_ms)

        return app_middleware_config(
            static=StaticOptions(resources=self.public_root),
            format_exception=FormatExceptionOptions(include_data=self.include_exception_data),
            gzip=self.gzip,
            latency=latency,
            default_index=DefaultIndexOptions(
                root=self.public_root,
                exclude=tuple(self.json_content_patterns),
            ),
        )


settings = Settings()
