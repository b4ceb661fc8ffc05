"""
Policies - the authorization decision engine.

Given an AccessContext, decide whether the requested page renders, the
caller should keep showing a loading state, or navigation is redirected.

Design:
- `decide()` is a pure function: no I/O, no exceptions, no history
- Rules are evaluated in a fixed order and the first one that fires wins
- Denial is always a redirect; there is no "forbidden" outcome
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from cloudcast.auth.context import AccessContext

LOGIN_PATH = "/login"
DOMAIN_RESTRICTED_PATH = "/domain-restricted"
ONBOARDING_PATH = "/organization-onboarding"
DASHBOARD_PATH = "/dashboard"

# Path families a global admin reaches without belonging to an organization.
# /projects is deliberately not part of this set.
ADMIN_BYPASS_PREFIXES: tuple[str, ...] = ("/admin", DASHBOARD_PATH)


# =============================================================================
# Decision - the engine's only output type
# =============================================================================


class DecisionKind(str, Enum):
    SHOW_LOADING = "show_loading"
    REDIRECT = "redirect"
    RENDER = "render"


@dataclass(frozen=True)
class Decision:
    """
    Outcome of one evaluation.

    For redirects, `origin` is the path that was originally requested
    when the caller should return there afterwards (login only).
    """

    kind: DecisionKind
    path: str | None = None
    origin: str | None = None

    @classmethod
    def show_loading(cls) -> Decision:
        return cls(DecisionKind.SHOW_LOADING)

    @classmethod
    def render(cls) -> Decision:
        return cls(DecisionKind.RENDER)

    @classmethod
    def redirect(cls, path: str, origin: str | None = None) -> Decision:
        return cls(DecisionKind.REDIRECT, path=path, origin=origin)

    @property
    def is_redirect(self) -> bool:
        return self.kind == DecisionKind.REDIRECT


def in_path_family(path: str, prefix: str) -> bool:
    """True for the prefix itself and anything below it ("/admin", "/admin/x")."""
    return path == prefix or path.startswith(prefix.rstrip("/") + "/")


def is_admin_bypass_path(path: str) -> bool:
    return any(in_path_family(path, prefix) for prefix in ADMIN_BYPASS_PREFIXES)


def _is_well_formed(path: object) -> bool:
    return isinstance(path, str) and path.startswith("/")


# =============================================================================
# The engine
# =============================================================================


def decide(ctx: AccessContext) -> Decision:
    """
    Decide what happens to a navigation.

    Rules (first match wins):
        1. loading                                  -> show loading
        2. no principal                             -> /login (keeps origin)
        3. email domain not allowed                 -> /domain-restricted
        4. global admin on admin/dashboard paths    -> render
        5. no membership, not on onboarding         -> /organization-onboarding
        6. membership, on onboarding                -> /dashboard
        7. otherwise                                -> render

    The domain check runs before the admin bypass: an address outside the
    allow-list never reaches admin screens, whatever its claims.
    A requested path that is not an absolute path resolves to the
    onboarding redirect rather than rendering.
    """
    if ctx.loading:
        return Decision.show_loading()

    if ctx.principal is None:
        return Decision.redirect(LOGIN_PATH, origin=ctx.requested_path)

    if not ctx.email_domain_valid:
        return Decision.redirect(DOMAIN_RESTRICTED_PATH)

    path = ctx.requested_path
    if not _is_well_formed(path):
        return Decision.redirect(ONBOARDING_PATH)

    if ctx.is_global_admin and is_admin_bypass_path(path):
        return Decision.render()

    if not ctx.has_membership and path != ONBOARDING_PATH:
        return Decision.redirect(ONBOARDING_PATH)

    if ctx.has_membership and path == ONBOARDING_PATH:
        return Decision.redirect(DASHBOARD_PATH)

    return Decision.render()
