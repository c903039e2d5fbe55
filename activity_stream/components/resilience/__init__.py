"""
Resilience components.

Reconnection policy: capped exponential backoff and full-refresh decisions.
"""

from activity_stream.components.resilience.reconnection import (
    ReconnectionConfig,
    ReconnectionState,
    StateUpdate,
    UpdateKind,
    calculate_backoff,
    should_full_refresh,
    create_reconnection_state,
    update_reconnection_state,
    reset_reconnection_state,
    create_stream_reconnection_config,
)

__all__ = [
    "ReconnectionConfig",
    "ReconnectionState",
    "StateUpdate",
    "UpdateKind",
    "calculate_backoff",
    "should_full_refresh",
    "create_reconnection_state",
    "update_reconnection_state",
    "reset_reconnection_state",
    "create_stream_reconnection_config",
]
