"""Connection state machine for the backing store.

The machine starts in ``CONNECTING`` and cycles for the life of the process:

    CONNECTING --connected--> CONNECTED
    CONNECTED --disconnected--> DISCONNECTED
    CONNECTED --error--> ERRORED
    DISCONNECTED, ERRORED --connect_attempt--> CONNECTING

The transition function is total: every (state, event) pair has a defined
next state, so no event sequence can leave the machine in an undefined value.
Pairs outside the diagram above either follow the driver's observable reality
(a failed first attempt is ``ERRORED``, a driver that reconnects on its own
goes straight to ``CONNECTED``) or are self-loops.

Every transition writes the ``store_connections_active`` gauge (1 when
connected, 0 otherwise) and is logged. Reads are synchronous and never wait
for a pending transition.
"""

import threading
import time
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from enum import Enum
from typing import Final

from loguru import logger

from src.core.metrics import STORE_CONNECTIONS_ACTIVE, MetricsRegistry


class ConnectionState(Enum):
    """Connectivity of the backing store."""

    CONNECTING = "connecting"
    CONNECTED = "connected"
    DISCONNECTED = "disconnected"
    ERRORED = "errored"


class ConnectionEvent(Enum):
    """Driver lifecycle events that drive the state machine."""

    CONNECT_ATTEMPT = "connect_attempt"
    CONNECTED = "connected"
    DISCONNECTED = "disconnected"
    ERROR = "error"


_S = ConnectionState
_E = ConnectionEvent

type Transition = tuple[ConnectionState, ConnectionEvent]

TRANSITIONS: Final[Mapping[Transition, ConnectionState]] = {
    (_S.CONNECTING, _E.CONNECT_ATTEMPT): _S.CONNECTING,
    (_S.CONNECTING, _E.CONNECTED): _S.CONNECTED,
    (_S.CONNECTING, _E.DISCONNECTED): _S.DISCONNECTED,
    (_S.CONNECTING, _E.ERROR): _S.ERRORED,
    (_S.CONNECTED, _E.CONNECT_ATTEMPT): _S.CONNECTED,
    (_S.CONNECTED, _E.CONNECTED): _S.CONNECTED,
    (_S.CONNECTED, _E.DISCONNECTED): _S.DISCONNECTED,
    (_S.CONNECTED, _E.ERROR): _S.ERRORED,
    (_S.DISCONNECTED, _E.CONNECT_ATTEMPT): _S.CONNECTING,
    (_S.DISCONNECTED, _E.CONNECTED): _S.CONNECTED,
    (_S.DISCONNECTED, _E.DISCONNECTED): _S.DISCONNECTED,
    (_S.DISCONNECTED, _E.ERROR): _S.ERRORED,
    (_S.ERRORED, _E.CONNECT_ATTEMPT): _S.CONNECTING,
    (_S.ERRORED, _E.CONNECTED): _S.CONNECTED,
    (_S.ERRORED, _E.DISCONNECTED): _S.DISCONNECTED,
    (_S.ERRORED, _E.ERROR): _S.ERRORED,
}


def next_state(state: ConnectionState, event: ConnectionEvent) -> ConnectionState:
    """Total transition function of the connection state machine."""
    return TRANSITIONS[state, event]


@dataclass(frozen=True)
class ConnectionStatus:
    """Point-in-time view of the state machine."""

    state: ConnectionState
    last_transition_at: float
    last_error: str | None

    @property
    def is_connected(self) -> bool:
        """Whether the store is usable."""
        return self.state is ConnectionState.CONNECTED


class ConnectionStateMachine:
    """Tracks backing store connectivity and mirrors it into a gauge.

    Args:
        registry: Metrics registry holding ``store_connections_active``.
        clock: Wall clock for the last-transition timestamp.
    """

    def __init__(
        self,
        registry: MetricsRegistry,
        *,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._registry = registry
        self._clock = clock
        self._lock = threading.Lock()
        self._status = ConnectionStatus(
            state=ConnectionState.CONNECTING,
            last_transition_at=clock(),
            last_error=None,
        )
        self._update_gauge(ConnectionState.CONNECTING)

    @property
    def state(self) -> ConnectionState:
        """Current state."""
        return self._status.state

    @property
    def is_connected(self) -> bool:
        """Whether the current state is ``CONNECTED``."""
        return self._status.is_connected

    @property
    def last_transition_at(self) -> float:
        """Epoch seconds of the last state change."""
        return self._status.last_transition_at

    @property
    def last_error(self) -> str | None:
        """Text of the error behind the last ``ERROR`` event, if any."""
        return self._status.last_error

    def snapshot(self) -> ConnectionStatus:
        """Current status as one consistent, immutable value."""
        return self._status

    def handle(
        self, event: ConnectionEvent, *, error: BaseException | str | None = None
    ) -> ConnectionState:
        """Apply a driver event.

        Args:
            event: The lifecycle event.
            error: Error behind an ``ERROR`` or ``DISCONNECTED`` event.

        Returns:
            ConnectionState: The state after the event.
        """
        with self._lock:
            previous = self._status
            state = next_state(previous.state, event)
            error_text = str(error) if error is not None else None

            if state is previous.state:
                if error_text is not None:
                    self._status = ConnectionStatus(
                        state=state,
                        last_transition_at=previous.last_transition_at,
                        last_error=error_text,
                    )
                self._update_gauge(state)
                return state

            self._status = ConnectionStatus(
                state=state,
                last_transition_at=self._clock(),
                last_error=(
                    error_text if error_text is not None else previous.last_error
                ),
            )
            self._update_gauge(state)

        self._log_transition(previous.state, state, event, error_text)
        return state

    def _update_gauge(self, state: ConnectionState) -> None:
        self._registry.set(
            STORE_CONNECTIONS_ACTIVE,
            1 if state is ConnectionState.CONNECTED else 0,
        )

    def _log_transition(
        self,
        previous: ConnectionState,
        state: ConnectionState,
        event: ConnectionEvent,
        error: str | None,
    ) -> None:
        log = logger.bind(
            previous_state=previous.value,
            state=state.value,
            event=event.value,
        )
        if state is ConnectionState.ERRORED:
            log.error("Store connection error: {}", error or "unknown error")
        elif state is ConnectionState.DISCONNECTED:
            log.warning("Store disconnected")
        elif state is ConnectionState.CONNECTED:
            log.info("Store connected successfully")
        else:
            log.info("Store connecting")
