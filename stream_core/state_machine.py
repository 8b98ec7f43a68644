"""
Stream session lifecycle.

idle -> starting -> streaming -> stopping -> idle, with early and unexpected
exits returning straight to idle. The machine is cyclic; there is no
terminal state.
"""

import logging
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Callable, Deque, Dict, FrozenSet, List, Optional

from stream_core.exceptions import InvalidTransition

logger = logging.getLogger(__name__)


class SessionState(str, Enum):
    """Externally observable session states."""

    IDLE = "idle"
    STARTING = "starting"
    STREAMING = "streaming"
    STOPPING = "stopping"


ALLOWED_TRANSITIONS: Dict[SessionState, FrozenSet[SessionState]] = {
    SessionState.IDLE: frozenset({SessionState.STARTING}),
    SessionState.STARTING: frozenset(
        {SessionState.STREAMING, SessionState.STOPPING, SessionState.IDLE}
    ),
    SessionState.STREAMING: frozenset({SessionState.STOPPING, SessionState.IDLE}),
    SessionState.STOPPING: frozenset({SessionState.IDLE}),
}


@dataclass
class StateTransition:
    """One state change, with the failure category when it was abnormal."""

    previous: SessionState
    current: SessionState
    error: Optional[str] = None
    at: datetime = field(default_factory=datetime.now)


TransitionListener = Callable[[StateTransition], None]


class StreamStateMachine:
    """Holds the current session state and notifies listeners on change."""

    def __init__(self, history_size: int = 50):
        self._state = SessionState.IDLE
        self._listeners: List[TransitionListener] = []
        self.history: Deque[StateTransition] = deque(maxlen=history_size)

    @property
    def state(self) -> SessionState:
        return self._state

    def can_transition(self, target: SessionState) -> bool:
        return target in ALLOWED_TRANSITIONS[self._state]

    def add_listener(self, listener: TransitionListener) -> None:
        """Register a listener called after every transition."""
        self._listeners.append(listener)

    def transition(self, target: SessionState, error: Optional[str] = None) -> StateTransition:
        """
        Move to a new state.

        Args:
            target: State to enter
            error: Failure category attached to an abnormal transition

        Returns:
            The recorded StateTransition

        Raises:
            InvalidTransition: If the lifecycle does not allow the change
        """
        if not self.can_transition(target):
            raise InvalidTransition(
                f"Cannot move from {self._state.value} to {target.value}"
            )

        record = StateTransition(previous=self._state, current=target, error=error)
        self._state = target
        self.history.append(record)

        if error:
            logger.warning(f"Session {record.previous.value} -> {target.value}: {error}")
        else:
            logger.info(f"Session {record.previous.value} -> {target.value}")

        for listener in list(self._listeners):
            try:
                listener(record)
            except Exception as e:
                logger.error(f"State listener failed: {e}", exc_info=True)

        return record
