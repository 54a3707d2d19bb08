"""
Upstream model adapters and provider connectivity checks.
"""

from agentsafe.adapters.base import (
    DEFAULT_PROVIDERS,
    EchoAdapter,
    ModelAdapter,
    ModelReply,
    ProviderConfig,
    ProviderKind,
    RoutingAdapter,
    StaticAdapter,
    estimate_tokens,
)
from agentsafe.adapters.connectivity import ConnectionResult, ConnectionTester

__all__ = [
    "ConnectionResult",
    "ConnectionTester",
    "DEFAULT_PROVIDERS",
    "EchoAdapter",
    "ModelAdapter",
    "ModelReply",
    "ProviderConfig",
    "ProviderKind",
    "RoutingAdapter",
    "StaticAdapter",
    "estimate_tokens",
]
