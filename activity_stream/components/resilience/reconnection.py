"""
Reconnection Policy for the event stream client.

Pure decision functions over an immutable reconnection state:
- How long to wait before the next attempt (capped exponential backoff)
- Whether an outage lasted too long to trust resumption (full refresh)
- State transitions for attempts, disconnects and received events

No I/O and no timers. Every timestamp comes from the caller or time.time(),
so the policy is fully reproducible under test. Backoff is deterministic
(no jitter).
"""

from __future__ import annotations

import dataclasses
import time
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING

from activity_stream.components.core.constants import StreamConstants
from activity_stream.shared.utils.exceptions import InvalidParameterError

if TYPE_CHECKING:
    from activity_stream.shared.config.settings import Settings


# =============================================================================
# Data Classes
# =============================================================================


@dataclass(frozen=True, slots=True)
class ReconnectionConfig:
    """
    Static tuning parameters for reconnection.

    Not validated at construction: each policy function rejects the fields it
    depends on with InvalidParameterError, and validate() checks everything
    at once.

    Attributes:
        initial_delay: Smallest backoff in seconds (must be > 0).
        max_delay: Backoff ceiling in seconds (must be > 0 and >= initial_delay).
        full_refresh_threshold: Outage duration in seconds after which the
            replay position is considered stale (must be > 0).
        backoff_multiplier: Growth factor per attempt (default: 2.0).
    """

    initial_delay: float = StreamConstants.DEFAULT_INITIAL_DELAY
    max_delay: float = StreamConstants.DEFAULT_MAX_DELAY
    full_refresh_threshold: float = StreamConstants.DEFAULT_FULL_REFRESH_THRESHOLD
    backoff_multiplier: float = StreamConstants.DEFAULT_BACKOFF_MULTIPLIER

    def validate(self) -> None:
        """
        Validate all configuration values.

        Raises:
            InvalidParameterError: On the first invalid field.
        """
        _require_positive_delays(self)
        if self.max_delay < self.initial_delay:
            raise InvalidParameterError(
                "max_delay", self.max_delay, f"must be >= initial_delay ({self.initial_delay})"
            )
        _require_positive_threshold(self)
        if self.backoff_multiplier < 1:
            raise InvalidParameterError(
                "backoff_multiplier", self.backoff_multiplier, "must be >= 1"
            )

    @classmethod
    def from_settings(cls, settings: Settings) -> ReconnectionConfig:
        """Build a config from application settings."""
        return cls(
            initial_delay=settings.stream_initial_delay,
            max_delay=settings.stream_max_delay,
            full_refresh_threshold=settings.stream_full_refresh_threshold,
            backoff_multiplier=settings.stream_backoff_multiplier,
        )


@dataclass(frozen=True, slots=True)
class ReconnectionState:
    """
    Connection history for one stream subscription. Replaced, never mutated.

    Attributes:
        last_event_id: Id of the most recent received event, used to ask the
            server to resume after it. None until an id has been seen.
        attempt_count: Reconnect attempts since the last successful connection.
        disconnected_at: Time of the first failure of the current outage.
        last_attempt_at: Time of the most recent reconnect attempt.
    """

    last_event_id: str | None = None
    attempt_count: int = 0
    disconnected_at: float | None = None
    last_attempt_at: float | None = None

    @property
    def is_disconnected(self) -> bool:
        """Whether an outage is in progress."""
        return self.disconnected_at is not None


class UpdateKind(str, Enum):
    """Kinds of transitions accepted by update_reconnection_state()."""

    ATTEMPT = "attempt"
    DISCONNECT = "disconnect"
    EVENT = "event"


@dataclass(frozen=True, slots=True)
class StateUpdate:
    """
    A transition request for update_reconnection_state().

    `kind` is normally an UpdateKind; any other string is accepted and
    ignored by the transition so newer callers do not break older policies.
    """

    kind: str
    event_id: str | None = None

    @classmethod
    def attempt(cls) -> StateUpdate:
        return cls(UpdateKind.ATTEMPT)

    @classmethod
    def disconnect(cls) -> StateUpdate:
        return cls(UpdateKind.DISCONNECT)

    @classmethod
    def event(cls, event_id: str | None = None) -> StateUpdate:
        return cls(UpdateKind.EVENT, event_id)


# =============================================================================
# Validation helpers
# =============================================================================


def _require_positive_delays(config: ReconnectionConfig) -> None:
    if config.initial_delay <= 0:
        raise InvalidParameterError("initial_delay", config.initial_delay, "must be positive")
    if config.max_delay <= 0:
        raise InvalidParameterError("max_delay", config.max_delay, "must be positive")


def _require_positive_threshold(config: ReconnectionConfig) -> None:
    if config.full_refresh_threshold <= 0:
        raise InvalidParameterError(
            "full_refresh_threshold", config.full_refresh_threshold, "must be positive"
        )


# =============================================================================
# Policy Functions
# =============================================================================


def calculate_backoff(attempt_count: int, config: ReconnectionConfig) -> float:
    """
    Calculate the delay before the next reconnection attempt.

    The delay is calculated as:
        base_delay = initial_delay * (backoff_multiplier ^ attempt_count)
        delay = min(base_delay, max_delay)

    Args:
        attempt_count: Attempts made so far in this outage (0-indexed).
        config: Reconnection configuration.

    Returns:
        Delay in seconds.

    Raises:
        InvalidParameterError: If attempt_count is negative or either
            delay is not positive.

    Example:
        >>> config = ReconnectionConfig(initial_delay=1.0, max_delay=30.0)
        >>> [calculate_backoff(n, config) for n in range(7)]
        [1.0, 2.0, 4.0, 8.0, 16.0, 30.0, 30.0]
    """
    if attempt_count < 0:
        raise InvalidParameterError("attempt_count", attempt_count, "cannot be negative")
    _require_positive_delays(config)

    try:
        delay = config.initial_delay * (config.backoff_multiplier ** attempt_count)
    except OverflowError:
        # Outages long enough to overflow a float are long past the cap
        return config.max_delay
    return min(delay, config.max_delay)


def should_full_refresh(
    state: ReconnectionState,
    config: ReconnectionConfig,
    now: float | None = None,
) -> bool:
    """
    Decide whether the current outage is too long to resume from last_event_id.

    A stream that was never marked disconnected never needs a refresh,
    however much wall-clock time has passed. The threshold is inclusive.

    Args:
        state: Current reconnection state.
        config: Reconnection configuration.
        now: Current time in epoch seconds (defaults to time.time()).

    Returns:
        True if a full snapshot refresh is required.

    Raises:
        InvalidParameterError: If full_refresh_threshold is not positive.
    """
    _require_positive_threshold(config)
    if state.disconnected_at is None:
        return False
    if now is None:
        now = time.time()
    return now - state.disconnected_at >= config.full_refresh_threshold


def create_reconnection_state(last_event_id: str | None = None) -> ReconnectionState:
    """
    Create the initial state for a new stream subscription.

    Args:
        last_event_id: Previously known resume position, e.g. persisted
            across a page reload or process restart.
    """
    return ReconnectionState(last_event_id=last_event_id or None)


def update_reconnection_state(
    state: ReconnectionState,
    update: StateUpdate,
    now: float | None = None,
) -> ReconnectionState:
    """
    Apply a transition and return the new state.

    - attempt: increments attempt_count and stamps last_attempt_at.
    - disconnect: stamps disconnected_at unless already set, so repeated
      failures within one outage keep the original outage start.
    - event: replaces last_event_id when the event carried an id.
    - anything else: state returned unchanged.
    """
    if update.kind == UpdateKind.ATTEMPT:
        return dataclasses.replace(
            state,
            attempt_count=state.attempt_count + 1,
            last_attempt_at=time.time() if now is None else now,
        )
    if update.kind == UpdateKind.DISCONNECT:
        if state.disconnected_at is not None:
            return state
        return dataclasses.replace(
            state,
            disconnected_at=time.time() if now is None else now,
        )
    if update.kind == UpdateKind.EVENT:
        if not update.event_id:
            return state
        return dataclasses.replace(state, last_event_id=update.event_id)
    return state


def reset_reconnection_state(state: ReconnectionState) -> ReconnectionState:
    """Reset after a successful (re)connection, keeping the resume position."""
    return ReconnectionState(last_event_id=state.last_event_id)


# =============================================================================
# Factory Functions
# =============================================================================


def create_stream_reconnection_config(
    max_delay: float = StreamConstants.DEFAULT_MAX_DELAY,
    full_refresh_threshold: float = StreamConstants.DEFAULT_FULL_REFRESH_THRESHOLD,
) -> ReconnectionConfig:
    """
    Create a reconnection config for the activity feed.

    Args:
        max_delay: Maximum delay between attempts.
        full_refresh_threshold: Outage length that forces a snapshot refresh.

    Returns:
        ReconnectionConfig doubling from one second.
    """
    return ReconnectionConfig(
        initial_delay=StreamConstants.DEFAULT_INITIAL_DELAY,
        max_delay=max_delay,
        full_refresh_threshold=full_refresh_threshold,
        backoff_multiplier=StreamConstants.DEFAULT_BACKOFF_MULTIPLIER,
    )
