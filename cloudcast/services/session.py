"""
Session Store.

Holds the current principal, its profile and memberships, and a `loading`
flag, and keeps them in step with the directory's session-change events.

Lifecycle:
    store = SessionStore(directory)
    await store.init()        # subscribe + apply the current session
    ...
    await store.teardown()    # unsubscribe, cancel outstanding fetches

or, scoped:
    async with SessionStore(directory) as store:
        ...

Every session event advances `epoch`. Fetches spawned for an event carry
that epoch and are dropped on completion if a newer event arrived (or the
store was torn down) in the meantime.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Callable, Coroutine

from cloudcast.auth.claims import is_email_domain_allowed
from cloudcast.auth.context import AccessContext
from cloudcast.config import Settings, get_settings
from cloudcast.core.events import SessionEvent, SessionEventType
from cloudcast.core.models import Membership, Principal, Profile
from cloudcast.directory.base import (
    AuthFailure,
    DirectoryClient,
    DirectoryError,
    RecordNotFound,
)
from cloudcast.integrations.sentry import capture_exception, set_user
from cloudcast.services.membership import OrganizationMembershipManager

logger = logging.getLogger(__name__)

StoreListener = Callable[["SessionStore"], None]


class SessionStore:
    """Explicit, injectable session state with a defined lifecycle."""

    def __init__(self, directory: DirectoryClient, settings: Settings | None = None):
        self.directory = directory
        self.settings = settings or get_settings()

        self.principal: Principal | None = None
        self.profile: Profile | None = None
        self.memberships: list[Membership] = []
        self.epoch = 0

        self._loading = True
        self._loaded = asyncio.Event()
        self._closed = False
        self._unsubscribe: Callable[[], None] | None = None
        self._tasks: set[asyncio.Task] = set()
        self._listeners: list[StoreListener] = []

        self.membership = OrganizationMembershipManager(self, directory, self.settings)

    # =========================================================================
    # Lifecycle
    # =========================================================================

    async def init(self) -> None:
        """Subscribe to session changes and apply the current session."""
        if self._unsubscribe is not None:
            return
        self._closed = False
        self._unsubscribe = self.directory.on_session_change(self._on_session_event)

        try:
            session = await self.directory.get_session()
        except DirectoryError as e:
            logger.error(f"Could not read the current session: {e}")
            capture_exception(e, operation="get_session")
            self._set_loading(False)
            self._notify()
            return

        self.apply_event(SessionEvent(SessionEventType.INITIAL_SESSION, session))

    async def teardown(self) -> None:
        """
        Release the subscription and cancel outstanding fetches.

        Nothing mutates the store after this returns.
        """
        self._closed = True
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None

        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        self._listeners.clear()

    async def __aenter__(self) -> SessionStore:
        await self.init()
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.teardown()

    @property
    def is_closed(self) -> bool:
        return self._closed

    # =========================================================================
    # Derived state
    # =========================================================================

    @property
    def loading(self) -> bool:
        return self._loading

    @property
    def is_authenticated(self) -> bool:
        return self.principal is not None

    @property
    def is_global_admin(self) -> bool:
        """Read from the principal's claim; never derived here."""
        return bool(self.principal and self.principal.is_global_admin)

    @property
    def email_domain_valid(self) -> bool:
        return bool(
            self.principal
            and is_email_domain_allowed(
                self.principal.email, self.settings.allowed_email_domains_list
            )
        )

    @property
    def has_membership(self) -> bool:
        return len(self.memberships) > 0

    def snapshot(self, requested_path: str) -> AccessContext:
        """The decision engine's input for a navigation to `requested_path`."""
        return AccessContext.for_principal(
            self.principal,
            requested_path,
            loading=self.loading,
            has_membership=self.has_membership,
            allowed_domains=self.settings.allowed_email_domains_list,
        )

    # =========================================================================
    # Session events
    # =========================================================================

    async def _on_session_event(self, event: SessionEvent) -> None:
        self.apply_event(event)

    def apply_event(self, event: SessionEvent) -> None:
        """Apply a session change and spawn the fetches it calls for."""
        if self._closed:
            return

        self.epoch += 1
        epoch = self.epoch
        logger.info(f"Session event {event.event_type.value} (epoch {epoch})")

        if event.session is None:
            self.principal = None
            self.profile = None
            self.memberships = []
            self._set_loading(False)
            set_user(None)
            self._notify()
            return

        principal = event.session.principal
        if self.principal is None or self.principal.id != principal.id:
            self.profile = None
            self.memberships = []
        self.principal = principal
        set_user(principal)

        if self.profile is None:
            self._set_loading(True)
        self._spawn(self._load_profile(epoch, principal))

        if event.event_type == SessionEventType.SIGNED_IN and self.email_domain_valid:
            self._spawn(self.membership.check_pending_invites(
                principal.email, epoch=epoch, principal=principal
            ))
        else:
            self._spawn(self.membership.refresh_memberships(epoch))

        self._notify()

    def is_current(self, epoch: int) -> bool:
        return not self._closed and epoch == self.epoch

    async def _load_profile(self, epoch: int, principal: Principal) -> None:
        profile: Profile | None = None
        try:
            profile = await self.directory.get_profile(principal.id)
        except RecordNotFound:
            logger.warning(f"No profile for {principal.id}")
        except DirectoryError as e:
            logger.error(f"Profile fetch failed for {principal.id}: {e}")
            capture_exception(e, operation="get_profile")

        if not self.is_current(epoch):
            logger.warning(f"Discarding profile fetched for stale epoch {epoch}")
            return

        if profile is not None:
            self.profile = profile
        self._set_loading(False)
        self._notify()

    def apply_memberships(self, epoch: int, memberships: list[Membership]) -> bool:
        """
        Replace the membership list if `epoch` is still current.

        Returns False when the result was discarded as stale.
        """
        if not self.is_current(epoch):
            logger.warning(f"Discarding memberships fetched for stale epoch {epoch}")
            return False
        self.memberships = list(memberships)
        self._notify()
        return True

    # =========================================================================
    # Sign-in / sign-out
    # =========================================================================

    async def sign_in(self, email: str, password: str) -> None:
        """Raises AuthFailure; the store only changes through the resulting event."""
        try:
            await self.directory.sign_in(email, password)
        except AuthFailure:
            raise
        except DirectoryError as e:
            raise AuthFailure(f"Sign-in failed: {e}") from e

    async def sign_out(self) -> None:
        try:
            await self.directory.sign_out()
        except AuthFailure:
            raise
        except DirectoryError as e:
            raise AuthFailure(f"Sign-out failed: {e}") from e

    # =========================================================================
    # Tasks and waiting
    # =========================================================================

    def _spawn(self, coro: Coroutine[Any, Any, Any]) -> None:
        task = asyncio.create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._task_done)

    def _task_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            logger.error(f"Session sync task failed: {error!r}")

    async def settled(self) -> None:
        """Wait until every outstanding fetch has finished."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def wait_until_loaded(self, timeout: float | None = None) -> bool:
        """Wait for `loading` to clear. Returns False on timeout."""
        if not self._loading:
            return True
        try:
            await asyncio.wait_for(self._loaded.wait(), timeout)
        except asyncio.TimeoutError:
            return False
        return True

    def _set_loading(self, loading: bool) -> None:
        self._loading = loading
        if loading:
            self._loaded.clear()
        else:
            self._loaded.set()

    # =========================================================================
    # Observers
    # =========================================================================

    def on_change(self, listener: StoreListener) -> Callable[[], None]:
        """Call `listener(store)` after every applied change."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _notify(self) -> None:
        for listener in list(self._listeners):
            try:
                listener(self)
            except Exception:
                logger.exception("Session store listener failed")
