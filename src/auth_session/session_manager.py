"""
Session Manager.

Reconciles identity gateway events, profile resolution, cross-tab
notifications and timeout-guarded initialization into a single observable
SessionState.

Features:
- Timeout-guarded initialization with a local fast-path cache
- Event-driven reconciliation of SIGNED_IN / SIGNED_OUT / token refreshes
- Cross-tab synchronization over a same-origin broadcast channel
- Thin action wrappers (login, logout, sign-up, password flows, refresh)
- Role derivation (can_access) evaluated against the live state
- Periodic session refresh before expiry

Concurrency:
Everything runs on one asyncio event loop. Reconciliations that overwrite
the whole state start a new epoch; their async continuations apply results
only while their epoch is still current and the manager is still open, so a
stale lookup never overwrites a newer transition and nothing is written after
close().

Usage:
    manager = SessionManager(
        gateway=gateway,
        profile_resolver=resolver,
        config=AuthConfig.from_env(),
        broadcast_hub=hub,
    )
    await manager.start()
    await manager.wait_for(lambda s: not s.loading)

    await manager.login("user@example.com", "secret")
    if manager.can_access("seller"):
        ...
    await manager.close()
"""

import asyncio
import logging
from typing import Any, Awaitable, Callable, Dict, Optional, Set, Tuple, Union

from auth_session import state_machine as transitions
from auth_session.access import can_access
from auth_session.broadcast import BroadcastChannel, BroadcastHub, open_channel
from auth_session.cache import AuthStateCache, decode_cache_key
from auth_session.config import AuthConfig
from auth_session.cross_tab import CrossTabSynchronizer
from auth_session.errors import AuthError, get_error_message, mask_email, normalize_gateway_error
from auth_session.events import AuthEvent, AuthEventKind, AuthEventStream
from auth_session.gateway import GatewayResponse, IdentityGateway
from auth_session.init_guard import InitializationGuard
from auth_session.models import ErrorKind, Profile, Session, SessionState, UserRole
from auth_session.profile_resolver import ProfileResolver
from auth_session.rate_limiter import LoginRateLimiter
from auth_session.refresh import SessionRefreshScheduler
from auth_session.state_machine import SessionStateMachine, StateListener


logger = logging.getLogger(__name__)


class SessionManager:
    """Client-side authentication session manager.

    Args:
        gateway: Remote identity gateway
        profile_resolver: Resolves identity ids to application profiles
        config: Manager configuration (read from the environment if omitted)
        broadcast_hub: Same-origin broadcast hub; cross-tab sync is disabled
            when None
        cache: Local auth state cache (built from config if omitted)
        rate_limiter: Login rate limiter (built from config if omitted)
    """

    def __init__(
        self,
        gateway: IdentityGateway,
        profile_resolver: ProfileResolver,
        config: Optional[AuthConfig] = None,
        broadcast_hub: Optional[BroadcastHub] = None,
        cache: Optional[AuthStateCache] = None,
        rate_limiter: Optional[LoginRateLimiter] = None,
    ):
        self.config = config or AuthConfig.from_env()
        self.gateway = gateway
        self.profile_resolver = profile_resolver
        self._broadcast_hub = broadcast_hub
        self._cache = cache or AuthStateCache(
            ttl_seconds=self.config.cache_ttl_seconds,
            path=self.config.cache_path,
            key=decode_cache_key(self.config.cache_key) if self.config.cache_key else None,
        )
        self._rate_limiter = rate_limiter or LoginRateLimiter(
            max_attempts=self.config.max_login_attempts,
            window_seconds=self.config.login_attempt_window_seconds,
        )

        self._machine = SessionStateMachine()
        self._guard = InitializationGuard(self.config.init_timeout_seconds, self._on_init_timeout)
        self._events: Optional[AuthEventStream] = None
        self._event_task: Optional[asyncio.Task] = None
        self._init_task: Optional[asyncio.Task] = None
        self._tasks: Set[asyncio.Task] = set()
        self._channel: Optional[BroadcastChannel] = None
        self._sync: Optional[CrossTabSynchronizer] = None
        self._refresher: Optional[SessionRefreshScheduler] = None
        self._last_action_error: Optional[AuthError] = None
        self._started = False
        self._closed = False

    # ============================================================
    # Read accessors
    # ============================================================

    @property
    def state(self) -> SessionState:
        return self._machine.state

    @property
    def last_action_error(self) -> Optional[AuthError]:
        """Error of the most recent failed user action, if any."""
        return self._last_action_error

    @property
    def started(self) -> bool:
        return self._started

    @property
    def closed(self) -> bool:
        return self._closed

    def subscribe(self, listener: StateListener) -> Callable[[], None]:
        """Register a state listener; returns a callable that unsubscribes it."""
        return self._machine.subscribe(listener)

    async def wait_for(
        self,
        predicate: Callable[[SessionState], bool],
        timeout: Optional[float] = None,
    ) -> SessionState:
        """Wait until the state satisfies a predicate.

        Raises:
            asyncio.TimeoutError: If the predicate is not met in time
        """
        if predicate(self.state):
            return self.state

        future = asyncio.get_running_loop().create_future()

        def listener(state: SessionState) -> None:
            if not future.done() and predicate(state):
                future.set_result(state)

        unsubscribe = self.subscribe(listener)
        try:
            return await asyncio.wait_for(future, timeout)
        finally:
            unsubscribe()

    def can_access(self, required_role: Union[UserRole, str]) -> bool:
        return can_access(self.state, required_role)

    # ============================================================
    # Lifecycle
    # ============================================================

    async def start(self) -> None:
        """Subscribe to gateway events and the broadcast channel, then begin
        initialization in the background."""
        self._ensure_open()
        if self._started:
            return
        self._started = True

        self._events = self.gateway.on_auth_state_change()
        self._event_task = self._spawn(self._consume_events(self._events))

        self._channel = open_channel(self._broadcast_hub, self.config.channel_name)
        self._sync = CrossTabSynchronizer(
            self._channel,
            is_authenticated=lambda: self.state.is_authenticated,
            on_remote_sign_out=self._sign_out_from_remote,
            on_remote_sign_in=self._resync_session,
        )

        if self.config.session_refresh_enabled:
            self._refresher = SessionRefreshScheduler(
                self.refresh_if_expiring,
                interval_seconds=self.config.session_refresh_interval_seconds,
                threshold_seconds=self.config.session_refresh_threshold_seconds,
            )
            self._refresher.start()

        self._launch_initialization()
        logger.info("[SessionManager] Started")

    async def initialize(self) -> SessionState:
        """Run (or re-run) initialization and wait for it to finish.

        This is the retry path after a NetworkError or ServerTimeout.
        """
        self._ensure_open()
        task = self._launch_initialization()
        await asyncio.wait({task})
        return self.state

    async def close(self) -> None:
        """Tear down: no state mutation happens after this returns."""
        if self._closed:
            return
        self._closed = True
        self._machine.freeze()
        self._guard.cancel()

        if self._events is not None:
            self._events.close()
        if self._sync is not None:
            self._sync.close()
        if self._channel is not None:
            self._channel.close()
        if self._refresher is not None:
            self._refresher.stop()

        current = asyncio.current_task()
        pending = [t for t in self._tasks if t is not current and not t.done()]
        for task in pending:
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)
        self._tasks.clear()
        logger.info("[SessionManager] Closed")

    async def __aenter__(self) -> "SessionManager":
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    # ============================================================
    # Initialization
    # ============================================================

    def _launch_initialization(self) -> asyncio.Task:
        self._supersede_initialization()
        self._init_task = self._spawn(self._initialize())
        return self._init_task

    def _supersede_initialization(self) -> None:
        self._guard.cancel()
        task = self._init_task
        if task is not None and not task.done() and task is not asyncio.current_task():
            task.cancel()

    async def _initialize(self) -> None:
        epoch = self._machine.begin()

        cached = self._cache.load()
        if cached is not None:
            logger.debug("[SessionManager] Showing cached auth state while initializing")
            self._machine.apply(transitions.initializing(cached.user, cached.session))
        else:
            self._machine.apply(transitions.initializing())
        self._guard.start()

        logger.info("[SessionManager] Getting session...")
        error: Any = None
        response: Optional[GatewayResponse] = None
        try:
            response = await self.gateway.get_session()
            error = response.error
        except asyncio.CancelledError:
            raise
        except Exception as e:
            error = e

        if not self._machine.is_current(epoch):
            return

        if error is not None:
            auth_error = normalize_gateway_error(error, self.config.language)
            logger.error(f"[SessionManager] Error getting session: {auth_error.kind.value}: {error}")
            self._guard.cancel()
            self._machine.apply(transitions.errored(ErrorKind.NETWORK_ERROR))
            return

        session = response.session
        if session is None:
            logger.info("[SessionManager] No session found")
            self._guard.cancel()
            self._cache.clear()
            self._machine.apply(transitions.unauthenticated())
            return

        # Record the partial read so a timeout can keep it
        prior_user = self.state.user
        if prior_user is not None and prior_user.id != session.identity.id:
            prior_user = None
        self._machine.apply(transitions.initializing(prior_user, session))

        logger.info(f"[SessionManager] Session found, fetching profile for: {session.identity.id}")
        profile, profile_error = await self._resolve_profile(session)
        if not self._machine.is_current(epoch):
            return

        self._guard.cancel()
        self._machine.apply(transitions.authenticated(session, profile, profile_error))
        if profile_error is None:
            self._cache.save(profile, session)

    def _on_init_timeout(self) -> None:
        if self._closed:
            return
        state = self.state
        if not state.loading:
            return
        # Supersede the stalled initialization before forcing the terminal state
        self._machine.begin()
        task = self._init_task
        if task is not None and not task.done():
            task.cancel()
        self._machine.apply(transitions.timed_out(state))

    # ============================================================
    # Event-driven reconciliation
    # ============================================================

    async def _consume_events(self, stream: AuthEventStream) -> None:
        async for event in stream:
            if self._closed:
                break
            try:
                self._handle_event(event)
            except Exception:
                logger.exception(f"[SessionManager] Failed to handle {event.kind.value}")

    def _handle_event(self, event: AuthEvent) -> None:
        session = event.session
        logger.info(
            f"[SessionManager] Auth state changed: {event.kind.value}"
            + (f" (user {session.identity.id})" if session else " (no session)")
        )

        if event.kind == AuthEventKind.SIGNED_OUT:
            self._apply_signed_out()
            return

        if session is None:
            # Implicit sign-out: the gateway no longer reports a session
            if self.state.session is not None:
                logger.info(f"[SessionManager] {event.kind.value} without a session: clearing state")
                self._apply_signed_out()
            return

        if event.kind == AuthEventKind.SIGNED_IN:
            self._supersede_initialization()
            epoch = self._machine.begin()
            self._machine.apply(transitions.with_loading(self.state, True, clear_error=True))
            self._spawn(self._reconcile_signed_in(session, epoch, broadcast=True))
            return

        # TOKEN_REFRESHED, USER_UPDATED, OTHER: session only, no profile lookup
        self._machine.apply(transitions.with_session(self.state, session))

    async def _reconcile_signed_in(self, session: Session, epoch: int, broadcast: bool) -> None:
        profile, error = await self._resolve_profile(session)
        if not self._machine.is_current(epoch):
            return

        # A token refresh may have landed while the profile was loading
        current = self.state.session
        if current is not None and current.identity.id == session.identity.id:
            session = current

        self._machine.apply(transitions.authenticated(session, profile, error))
        if error is not None:
            return
        self._cache.save(profile, session)
        if broadcast and self._sync is not None:
            self._sync.broadcast_authenticated()

    async def _resolve_profile(self, session: Session) -> Tuple[Optional[Profile], Optional[ErrorKind]]:
        identity_id = session.identity.id
        try:
            profile = await self.profile_resolver.get_profile(identity_id)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error(f"[SessionManager] Error during profile processing for {identity_id}: {e}")
            return None, ErrorKind.PROFILE_LOAD_FAILED

        if profile is None:
            logger.warning(f"[SessionManager] Profile not found for user {identity_id}. User might need setup.")
        else:
            logger.info(f"[SessionManager] Profile resolved: role={profile.role.value}")
        return profile, None

    def _apply_signed_out(self) -> bool:
        self._supersede_initialization()
        self._machine.begin()
        self._cache.clear()
        changed = self._machine.apply(transitions.unauthenticated())
        if changed and self._sync is not None:
            self._sync.broadcast_unauthenticated()
        return changed

    # ============================================================
    # Cross-tab corrective actions
    # ============================================================

    async def _sign_out_from_remote(self) -> None:
        response = await self.gateway.sign_out()
        if not response.ok:
            logger.warning(f"[SessionManager] Cross-tab sign-out failed: {response.error}")

    async def _resync_session(self) -> None:
        response = await self.gateway.get_session()
        if self._closed:
            return
        if not response.ok or response.session is None:
            logger.info("[SessionManager] Cross-tab resync found no usable session")
            return
        if self.state.is_authenticated:
            return

        self._supersede_initialization()
        epoch = self._machine.begin()
        self._machine.apply(transitions.with_loading(self.state, True, clear_error=True))
        await self._reconcile_signed_in(response.session, epoch, broadcast=False)

    # ============================================================
    # Actions
    # ============================================================

    async def login(self, email: str, password: str) -> None:
        """Sign in with email and password.

        Success is completed by the resulting SIGNED_IN event; until then
        the state stays loading.

        Raises:
            AuthError: InvalidCredentials, RateLimited, NetworkError, ...
        """
        self._ensure_open()
        if self._rate_limiter.is_rate_limited(email):
            error = AuthError(
                ErrorKind.RATE_LIMITED,
                get_error_message(ErrorKind.RATE_LIMITED, self.config.language),
            )
            self._last_action_error = error
            self._machine.apply(transitions.with_error(self.state, None))
            logger.warning(f"[SessionManager] Login rate limited for {mask_email(email)}")
            raise error

        try:
            await self._invoke("login", lambda: self.gateway.sign_in_with_password(email, password))
        except AuthError as e:
            if e.kind == ErrorKind.INVALID_CREDENTIALS:
                self._rate_limiter.record_failure(email)
            raise
        self._rate_limiter.reset(email)

    async def logout(self) -> None:
        """Sign out, clearing local state without waiting for SIGNED_OUT."""
        self._ensure_open()
        await self._invoke("logout", self.gateway.sign_out)
        self._apply_signed_out()

    async def sign_up(
        self,
        email: str,
        password: str,
        metadata: Optional[Dict[str, Any]] = None,
        redirect_to: Optional[str] = None,
    ) -> GatewayResponse:
        self._ensure_open()
        response = await self._invoke(
            "sign_up", lambda: self.gateway.sign_up(email, password, metadata, redirect_to)
        )
        self._end_action()
        return response

    async def reset_password_for_email(self, email: str, redirect_to: Optional[str] = None) -> GatewayResponse:
        self._ensure_open()
        response = await self._invoke(
            "reset_password_for_email", lambda: self.gateway.reset_password_for_email(email, redirect_to)
        )
        self._end_action()
        return response

    async def update_user_password(self, password: str) -> GatewayResponse:
        self._ensure_open()
        response = await self._invoke(
            "update_user_password", lambda: self.gateway.update_user(password=password)
        )
        self._end_action()
        return response

    async def refresh_session(self) -> GatewayResponse:
        """Explicitly refresh the session.

        On failure the user is treated as logged out: the gateway sign-out is
        attempted, local state is cleared, and the error is raised.
        """
        self._ensure_open()
        self._last_action_error = None
        error: Any = None
        try:
            response = await self.gateway.refresh_session()
            error = response.error
        except asyncio.CancelledError:
            raise
        except Exception as e:
            error = e

        if error is None:
            return response

        auth_error = normalize_gateway_error(error, self.config.language)
        self._last_action_error = auth_error
        logger.error(f"[SessionManager] Manual session refresh failed: {auth_error.kind.value}")
        await self._sign_out_after_failed_refresh()
        raise auth_error

    async def refresh_if_expiring(self, threshold_seconds: float) -> bool:
        """Refresh the session when it expires within the threshold.

        Passive path used by the refresh scheduler: never raises for gateway
        failures. Returns True if a refresh succeeded.
        """
        session = self.state.session
        if self._closed or session is None:
            return False
        remaining = session.seconds_until_expiry()
        if remaining is None or remaining > threshold_seconds:
            return False

        logger.info(f"[SessionManager] Session expires in {int(remaining)}s, refreshing")
        error: Any = None
        try:
            response = await self.gateway.refresh_session()
            error = response.error
        except asyncio.CancelledError:
            raise
        except Exception as e:
            error = e

        if error is None:
            return True
        logger.warning(f"[SessionManager] Failed to refresh session: {error}")
        await self._sign_out_after_failed_refresh()
        return False

    def clear_error(self) -> None:
        """Clear the last action error and the state error."""
        self._last_action_error = None
        if not self._closed:
            self._machine.apply(transitions.with_error(self.state, None))

    # ============================================================
    # Helpers
    # ============================================================

    async def _invoke(
        self,
        action: str,
        call: Callable[[], Awaitable[GatewayResponse]],
    ) -> GatewayResponse:
        """Run a gateway call as a user action.

        Clears stale errors and sets loading first; on failure records the
        normalized error, clears loading and raises it.
        """
        self._last_action_error = None
        self._machine.apply(transitions.with_loading(self.state, True, clear_error=True))
        try:
            response = await call()
        except asyncio.CancelledError:
            raise
        except Exception as e:
            raise self._fail_action(action, e) from e
        if not response.ok:
            raise self._fail_action(action, response.error)
        return response

    def _fail_action(self, action: str, error: Any) -> AuthError:
        auth_error = normalize_gateway_error(error, self.config.language)
        self._last_action_error = auth_error
        logger.error(f"[SessionManager] {action} failed: {auth_error.kind.value}: {error}")
        self._end_action()
        return auth_error

    def _end_action(self) -> None:
        self._machine.apply(transitions.with_loading(self.state, False))

    async def _sign_out_after_failed_refresh(self) -> None:
        try:
            response = await self.gateway.sign_out()
            if not response.ok:
                logger.warning(f"[SessionManager] Sign-out after failed refresh reported: {response.error}")
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.warning(f"[SessionManager] Sign-out after failed refresh failed: {e}")
        if not self._closed:
            self._apply_signed_out()

    def _spawn(self, coro: Awaitable[Any]) -> asyncio.Task:
        task = asyncio.get_running_loop().create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._on_task_done)
        return task

    def _on_task_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error(f"[SessionManager] Background task failed: {exc!r}")

    def _ensure_open(self) -> None:
        if self._closed:
            raise RuntimeError("SessionManager is closed")
