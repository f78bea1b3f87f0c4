"""
Session state machine.

Owns the canonical SessionState and the transition rules:

    uninitialized -> initializing -> {authenticated, unauthenticated, errored}

authenticated and unauthenticated are re-entrant; a live manager cycles
among them on every gateway event.

Transitions are pure builders returning a complete replacement state. apply()
swaps the current state in one assignment and notifies subscribers, so
consumers never observe a partial update. Applying a state equal to the
current one is a no-op and notifies nobody.

The machine also carries the epoch used by the liveness/epoch guard: every
reconciliation that overwrites the whole state calls begin() and later
applies its result only if is_current() still holds.
"""

import logging
from typing import Callable, List, Optional

from auth_session.access import is_admin_profile
from auth_session.models import (
    ErrorKind,
    Profile,
    Session,
    SessionPhase,
    SessionState,
)


logger = logging.getLogger(__name__)

StateListener = Callable[[SessionState], None]


# ============================================================
# Transition builders
# ============================================================

def initializing(
    user: Optional[Profile] = None,
    session: Optional[Session] = None,
) -> SessionState:
    """Initialization in flight, optionally showing cached data."""
    return SessionState(
        user=user,
        session=session,
        loading=True,
        error=None,
        is_admin=is_admin_profile(user),
        is_authenticated=session is not None,
        phase=SessionPhase.INITIALIZING,
    )


def authenticated(
    session: Session,
    user: Optional[Profile],
    error: Optional[ErrorKind] = None,
) -> SessionState:
    """A live session, with or without a resolved profile."""
    return SessionState(
        user=user,
        session=session,
        loading=False,
        error=error,
        is_admin=is_admin_profile(user),
        is_authenticated=True,
        phase=SessionPhase.AUTHENTICATED,
    )


def unauthenticated() -> SessionState:
    return SessionState(
        user=None,
        session=None,
        loading=False,
        error=None,
        is_admin=False,
        is_authenticated=False,
        phase=SessionPhase.UNAUTHENTICATED,
    )


def errored(error: ErrorKind) -> SessionState:
    """Terminal failure with all identity data cleared."""
    return SessionState(
        user=None,
        session=None,
        loading=False,
        error=error,
        is_admin=False,
        is_authenticated=False,
        phase=SessionPhase.ERRORED,
    )


def timed_out(previous: SessionState) -> SessionState:
    """Terminal timeout that keeps any user/session already read."""
    return SessionState(
        user=previous.user,
        session=previous.session,
        loading=False,
        error=ErrorKind.SERVER_TIMEOUT,
        is_admin=is_admin_profile(previous.user),
        is_authenticated=previous.session is not None,
        phase=SessionPhase.ERRORED,
    )


def with_session(previous: SessionState, session: Session) -> SessionState:
    """Replace the session and clear loading; the profile is kept as is."""
    return previous.model_copy(update={
        "session": session,
        "loading": False,
        "is_authenticated": True,
        "phase": SessionPhase.AUTHENTICATED,
    })


def with_loading(previous: SessionState, loading: bool, clear_error: bool = False) -> SessionState:
    update = {"loading": loading}
    if clear_error:
        update["error"] = None
    return previous.model_copy(update=update)


def with_error(previous: SessionState, error: Optional[ErrorKind]) -> SessionState:
    return previous.model_copy(update={"error": error})


# ============================================================
# State Machine
# ============================================================

class SessionStateMachine:
    """Holds the current SessionState and notifies subscribers on change."""

    def __init__(self, initial: Optional[SessionState] = None):
        self._state = initial or SessionState()
        self._listeners: List[StateListener] = []
        self._epoch = 0
        self._frozen = False

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def epoch(self) -> int:
        return self._epoch

    def begin(self) -> int:
        """Start a superseding reconciliation and return its epoch."""
        self._epoch += 1
        return self._epoch

    def is_current(self, epoch: int) -> bool:
        return not self._frozen and epoch == self._epoch

    def subscribe(self, listener: StateListener) -> Callable[[], None]:
        """Register a listener; returns a callable that unsubscribes it."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def apply(self, new_state: SessionState) -> bool:
        """Atomically replace the state.

        Returns:
            True if the state changed and subscribers were notified
        """
        if self._frozen:
            logger.debug("[SessionStateMachine] Ignoring transition after teardown")
            return False
        if new_state == self._state:
            return False

        old = self._state
        self._state = new_state
        if old.phase != new_state.phase:
            logger.info(
                f"[SessionStateMachine] {old.phase.value} -> {new_state.phase.value} "
                f"(loading={new_state.loading}, error={new_state.error.value if new_state.error else None})"
            )
        self._notify(new_state)
        return True

    def freeze(self) -> None:
        """Refuse all further transitions and drop subscribers."""
        self._frozen = True
        self._epoch += 1
        self._listeners.clear()

    @property
    def frozen(self) -> bool:
        return self._frozen

    def _notify(self, state: SessionState) -> None:
        for listener in list(self._listeners):
            try:
                listener(state)
            except Exception:
                logger.exception("[SessionStateMachine] State listener failed")
