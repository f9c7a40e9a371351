"""
Middlestack — Pipeline Assembler
=================================

What:  Builds one composed handler from a base handler and an ordered list
       of stage descriptors.
How:   Each descriptor pairs a wrapping callable with an enablement value:

    Disabled                 skip the stage; the accumulator is unchanged
    EnabledDefault           stage(handler)
    EnabledWithConfig(cfg)   stage(handler, cfg)

Raw configuration values map onto the variants with ``enablement``:
``None``/``False`` → Disabled, ``True`` → EnabledDefault, anything else
(mapping, options model, callable) → EnabledWithConfig.

Order:
    Descriptors are listed outermost first, the same convention as a
    Starlette middleware list. ``[A, B, C]`` assembles to ``A(B(C(base)))``:
    a request passes A, then B, then C; the response returns C, B, A.
    The fold therefore runs over the reversed list.

The result is resolved once, at startup; descriptors are frozen and the
assembled handler holds no state besides its closures.
"""

import logging
from dataclasses import dataclass
from types import MappingProxyType
from typing import Any, Callable, List, Mapping, Optional, Sequence, Tuple, Union

from middlestack.http.handler import Handler, HandlerLike, as_handler

logger = logging.getLogger(__name__)


# ══════════════════════════════════════════════════════════════════════════
# Enablement
# ══════════════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class Disabled:
    def __repr__(self) -> str:
        return "Disabled"


@dataclass(frozen=True)
class EnabledDefault:
    def __repr__(self) -> str:
        return "EnabledDefault"


@dataclass(frozen=True)
class EnabledWithConfig:
    config: Any


Enablement = Union[Disabled, EnabledDefault, EnabledWithConfig]

DISABLED = Disabled()
ENABLED = EnabledDefault()


def enablement(value: Any) -> Enablement:
    """Normalize a raw configuration value into an Enablement variant."""
    if isinstance(value, (Disabled, EnabledDefault, EnabledWithConfig)):
        return value
    if value is None or value is False:
        return DISABLED
    if value is True:
        return ENABLED
    if isinstance(value, Mapping):
        return EnabledWithConfig(MappingProxyType(dict(value)))
    return EnabledWithConfig(value)


# ══════════════════════════════════════════════════════════════════════════
# Descriptors
# ══════════════════════════════════════════════════════════════════════════

StageFactory = Callable[..., HandlerLike]


@dataclass(frozen=True)
class StageDescriptor:
    """A stage and how it is enabled. Built once from static configuration."""

    stage: StageFactory
    enablement: Enablement = ENABLED
    name: Optional[str] = None

    @classmethod
    def of(cls, stage: StageFactory, value: Any = True, name: Optional[str] = None) -> "StageDescriptor":
        return cls(stage=stage, enablement=enablement(value), name=name)

    @property
    def label(self) -> str:
        return self.name or getattr(self.stage, "name", None) or getattr(
            self.stage, "__name__", repr(self.stage)
        )


DescriptorLike = Union[StageDescriptor, StageFactory, Tuple[StageFactory, Any]]


def descriptor(item: DescriptorLike) -> StageDescriptor:
    """Accept a StageDescriptor, a ``(stage, value)`` pair, or a bare stage (enabled)."""
    if isinstance(item, StageDescriptor):
        return item
    if isinstance(item, tuple):
        if len(item) != 2:
            raise TypeError(f"Stage pair must be (stage, enablement), got {item!r}")
        return StageDescriptor.of(item[0], item[1])
    return StageDescriptor.of(item, True)


# ══════════════════════════════════════════════════════════════════════════
# Folding
# ══════════════════════════════════════════════════════════════════════════

def wrap(handler: HandlerLike, stage: StageFactory, value: Any) -> Handler:
    """Apply one stage to ``handler`` according to its enablement value."""
    variant = enablement(value)
    if isinstance(variant, Disabled):
        return as_handler(handler)
    if isinstance(variant, EnabledDefault):
        return as_handler(stage(handler))
    if isinstance(variant, EnabledWithConfig):
        return as_handler(stage(handler, variant.config))
    raise TypeError(f"Unknown enablement variant: {variant!r}")


def assemble(
    handler: HandlerLike,
    descriptors: Sequence[DescriptorLike],
    log_level: int = logging.INFO,
) -> Handler:
    """
    Fold ``descriptors`` (outermost first) over ``handler``.

    Returns the composed handler. Disabled stages leave no trace in the
    result.
    """
    resolved: List[StageDescriptor] = [descriptor(d) for d in descriptors]
    wrapped = as_handler(handler)
    applied: List[str] = []

    for item in reversed(resolved):
        if isinstance(item.enablement, Disabled):
            logger.debug("Stage %s disabled; skipped", item.label)
            continue
        logger.debug("Applying stage %s (%r)", item.label, item.enablement)
        wrapped = wrap(wrapped, item.stage, item.enablement)
        applied.append(item.label)

    applied.reverse()
    logger.log(
        log_level,
        "Assembled pipeline (outermost first): %s",
        " → ".join(applied) if applied else "<base handler>",
    )
    return wrapped
