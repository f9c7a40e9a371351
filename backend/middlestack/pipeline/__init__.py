"""Pipeline assembly: enablement values, stage descriptors and the default stacks."""

from middlestack.pipeline.assembler import (
    DISABLED,
    ENABLED,
    Disabled,
    EnabledDefault,
    EnabledWithConfig,
    Enablement,
    StageDescriptor,
    assemble,
    enablement,
    wrap,
)
from middlestack.pipeline.stacks import (
    app_middleware,
    app_stage_descriptors,
    route_middleware,
    route_stage_descriptors,
)

__all__ = [
    "DISABLED",
    "ENABLED",
    "Disabled",
    "EnabledDefault",
    "EnabledWithConfig",
    "Enablement",
    "StageDescriptor",
    "app_middleware",
    "app_stage_descriptors",
    "assemble",
    "enablement",
    "route_middleware",
    "route_stage_descriptors",
    "wrap",
]
