"""
Route guard - where navigation meets the decision engine.

The UI layer asks the guard before rendering a page and gets back one of:
render, redirect(path, preserve_origin), or (only while the session is
still loading) loading.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING
from urllib.parse import urlencode

from cloudcast.auth.policies import DecisionKind, decide

if TYPE_CHECKING:
    from cloudcast.services.session import SessionStore

PUBLIC_PATHS: tuple[str, ...] = ("/", "/login", "/domain-restricted")


class GuardAction(str, Enum):
    RENDER = "render"
    REDIRECT = "redirect"
    LOADING = "loading"


@dataclass(frozen=True)
class GuardOutcome:
    """
    What the UI layer should do with a navigation.

    `preserve_origin` means `origin` should be restored after a
    successful login.
    """

    action: GuardAction
    path: str | None = None
    preserve_origin: bool = False
    origin: str | None = None

    @classmethod
    def render(cls) -> GuardOutcome:
        return cls(GuardAction.RENDER)

    @classmethod
    def loading(cls) -> GuardOutcome:
        return cls(GuardAction.LOADING)

    @classmethod
    def redirect(cls, path: str, origin: str | None = None) -> GuardOutcome:
        return cls(
            GuardAction.REDIRECT,
            path=path,
            preserve_origin=origin is not None,
            origin=origin,
        )

    @property
    def location(self) -> str | None:
        """Redirect target, with ?next=<origin> when the origin is preserved."""
        if self.action != GuardAction.REDIRECT:
            return None
        if self.preserve_origin and self.origin:
            return f"{self.path}?{urlencode({'next': self.origin})}"
        return self.path


class RouteGuard:
    """Runs the decision engine against the session store before a page renders."""

    def __init__(self, store: SessionStore, public_paths: tuple[str, ...] = PUBLIC_PATHS):
        self.store = store
        self.public_paths = public_paths

    def is_public(self, path: str) -> bool:
        return path in self.public_paths

    def check(self, path: str) -> GuardOutcome:
        """Decide from the store as it is right now."""
        if self.is_public(path):
            return GuardOutcome.render()

        decision = decide(self.store.snapshot(path))
        if decision.kind == DecisionKind.SHOW_LOADING:
            return GuardOutcome.loading()
        if decision.kind == DecisionKind.REDIRECT:
            return GuardOutcome.redirect(decision.path, origin=decision.origin)
        return GuardOutcome.render()

    async def resolve(self, path: str, timeout: float | None = None) -> GuardOutcome:
        """
        Wait for the session to finish loading, then decide.

        Returns a loading outcome only if loading outlasts the timeout.
        """
        if timeout is None:
            timeout = self.store.settings.guard_loading_timeout
        if not self.is_public(path):
            await self.store.wait_until_loaded(timeout)
        return self.check(path)
