"""
Middlestack — Stage Base Class
===============================

What:  Common constructor for every middleware stage.
How:   A stage is a Handler that wraps another Handler. It is built as
       ``Stage(handler)`` (defaults) or ``Stage(handler, options)`` where
       ``options`` is a mapping or an instance of the stage's options model.
       Options are validated once, at construction, and are read-only after.
"""

from typing import Any, ClassVar, Mapping, Optional, Type

from pydantic import BaseModel, ValidationError

from middlestack.exceptions import ConfigurationError
from middlestack.http.handler import Handler, HandlerLike, Raise, Respond, as_handler
from middlestack.http.request import Request
from middlestack.http.response import Response


class Stage(Handler):
    """
    Base class for a handler-wrapping stage.

    Subclasses set ``name`` and, when they accept configuration,
    ``options_model``. Both calling conventions must be implemented.
    """

    name: ClassVar[str] = "stage"
    options_model: ClassVar[Optional[Type[BaseModel]]] = None

    def __init__(self, handler: HandlerLike, options: Any = None):
        self.handler = as_handler(handler)
        self.options = self.parse_options(options)

    @classmethod
    def parse_options(cls, options: Any) -> Any:
        if cls.options_model is None:
            if options:
                raise ConfigurationError(
                    f"Stage '{cls.name}' does not take options",
                    key=cls.name,
                )
            return None
        if options is None:
            return cls.options_model()
        if isinstance(options, cls.options_model):
            return options
        if isinstance(options, Mapping):
            options = dict(options)
        try:
            return cls.options_model.model_validate(options)
        except ValidationError as e:
            raise ConfigurationError(
                f"Invalid options for stage '{cls.name}'",
                key=cls.name,
                context={"errors": e.errors(include_url=False, include_context=False)},
            ) from e

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.handler!r})"


class PassThroughStage(Stage):
    """A stage that only rewrites the request on the way in."""

    def transform(self, request: Request) -> Request:
        return request

    def __call__(self, request: Request):
        return self.handler(self.transform(request))

    def call_async(self, request: Request, respond: Respond, raise_: Raise) -> None:
        try:
            transformed = self.transform(request)
        except Exception as exc:
            raise_(exc)
            return
        self.handler.call_async(transformed, respond, raise_)


class ResponseStage(Stage):
    """A stage that only rewrites the response on the way out."""

    def process(self, request: Request, response: Optional[Response]) -> Optional[Response]:
        return response

    def __call__(self, request: Request) -> Optional[Response]:
        return self.process(request, self.handler(request))

    def call_async(self, request: Request, respond: Respond, raise_: Raise) -> None:
        def on_respond(response: Optional[Response]) -> None:
            try:
                processed = self.process(request, response)
            except Exception as exc:
                raise_(exc)
                return
            respond(processed)

        self.handler.call_async(request, on_respond, raise_)
