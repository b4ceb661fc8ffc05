"""
Directory abstraction layer.

All identity and tenancy persistence goes through this interface: accounts
and sessions, profiles, organizations, memberships, invites and join
requests. This allows swapping the backing service (in-memory for
development, a managed backend in production) without changing the
session store or the membership manager.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Awaitable, Callable

from cloudcast.core.events import SessionEvent
from cloudcast.core.models import (
    Invite,
    JoinRequest,
    JoinRequestStatus,
    Membership,
    Organization,
    OrganizationSummary,
    Profile,
    Session,
)


# =============================================================================
# Errors
# =============================================================================


class DirectoryError(Exception):
    """Base exception for directory failures."""
    pass


class DirectoryUnavailable(DirectoryError):
    """The directory could not be reached or failed to answer."""
    pass


class RecordNotFound(DirectoryError):
    """The requested record does not exist."""
    pass


class ConflictError(DirectoryError):
    """A uniqueness constraint was violated."""
    pass


class DuplicateJoinCode(ConflictError):
    """Another organization already carries this join code."""
    pass


class JoinCodeMismatch(DirectoryError):
    """A conditional insert saw a join code that is no longer current."""
    pass


class AuthFailure(DirectoryError):
    """Sign-in or sign-out failed. Session state is left unchanged."""
    pass


# =============================================================================
# Directory Client
# =============================================================================


class DirectoryClient(ABC):
    """
    Storage and identity provider for the tenancy model.

    Production Implementation: managed backend (auth + tables)
    Local Implementation: InMemoryDirectoryClient
    """

    # -------------------------------------------------------------------------
    # Sessions
    # -------------------------------------------------------------------------

    @abstractmethod
    async def get_session(self) -> Session | None:
        """Current session, if any."""
        pass

    @abstractmethod
    def on_session_change(
        self,
        handler: Callable[[SessionEvent], Awaitable[None]],
    ) -> Callable[[], None]:
        """Subscribe to session changes; returns an unsubscribe callable."""
        pass

    @abstractmethod
    async def sign_in(self, email: str, password: str) -> Session:
        """Authenticate and emit SIGNED_IN. Raises AuthFailure."""
        pass

    @abstractmethod
    async def sign_out(self) -> None:
        """Drop the session and emit SIGNED_OUT. Raises AuthFailure."""
        pass

    @abstractmethod
    async def refresh_session(self) -> Session:
        """Re-issue the current session token and emit TOKEN_REFRESHED."""
        pass

    # -------------------------------------------------------------------------
    # Profiles
    # -------------------------------------------------------------------------

    @abstractmethod
    async def get_profile(self, user_id: str) -> Profile:
        """Raises RecordNotFound if absent."""
        pass

    @abstractmethod
    async def list_profiles(self) -> list[Profile]:
        """All profiles, newest first."""
        pass

    # -------------------------------------------------------------------------
    # Organizations
    # -------------------------------------------------------------------------

    @abstractmethod
    async def insert_organization(self, fields: dict[str, Any]) -> Organization:
        """Insert an organization. Raises ConflictError / DuplicateJoinCode."""
        pass

    @abstractmethod
    async def delete_organization(self, organization_id: str) -> bool:
        """Delete an organization and anything hanging off it."""
        pass

    @abstractmethod
    async def get_organization(self, organization_id: str) -> Organization:
        """Raises RecordNotFound if absent."""
        pass

    @abstractmethod
    async def list_organizations(self) -> list[OrganizationSummary]:
        """All organizations with member counts, newest first."""
        pass

    @abstractmethod
    async def find_organization_by_join_code(self, code: str) -> Organization | None:
        """Exact match on the current join code."""
        pass

    @abstractmethod
    async def update_organization_join_code(self, organization_id: str, code: str) -> Organization:
        """Overwrite the join code. Raises DuplicateJoinCode, RecordNotFound."""
        pass

    # -------------------------------------------------------------------------
    # Memberships
    # -------------------------------------------------------------------------

    @abstractmethod
    async def insert_membership(
        self,
        fields: dict[str, Any],
        require_join_code: str | None = None,
    ) -> Membership:
        """
        Insert a membership.

        With `require_join_code`, the insert only happens if the
        organization still carries that code (JoinCodeMismatch otherwise).
        A second membership for the same (organization, user) pair raises
        ConflictError.
        """
        pass

    @abstractmethod
    async def find_membership(self, organization_id: str, user_id: str) -> Membership | None:
        pass

    @abstractmethod
    async def list_memberships_by_user(self, user_id: str) -> list[Membership]:
        """Memberships of a user, each with its Organization embedded."""
        pass

    @abstractmethod
    async def list_memberships_by_organization(self, organization_id: str) -> list[Membership]:
        pass

    # -------------------------------------------------------------------------
    # Invites
    # -------------------------------------------------------------------------

    @abstractmethod
    async def insert_invite(self, fields: dict[str, Any]) -> Invite:
        pass

    @abstractmethod
    async def list_invites_by_email(self, email: str, accepted: bool = False) -> list[Invite]:
        pass

    @abstractmethod
    async def mark_invite_accepted(self, invite_id: str) -> None:
        pass

    # -------------------------------------------------------------------------
    # Join Requests
    # -------------------------------------------------------------------------

    @abstractmethod
    async def insert_join_request(self, fields: dict[str, Any]) -> JoinRequest:
        pass

    @abstractmethod
    async def get_join_request(self, request_id: str) -> JoinRequest:
        """Raises RecordNotFound if absent."""
        pass

    @abstractmethod
    async def find_join_request(
        self,
        organization_id: str,
        user_id: str,
        status: JoinRequestStatus | None = None,
    ) -> JoinRequest | None:
        pass

    @abstractmethod
    async def list_join_requests(
        self,
        organization_id: str,
        status: JoinRequestStatus | None = None,
    ) -> list[JoinRequest]:
        pass

    @abstractmethod
    async def update_join_request_status(
        self,
        request_id: str,
        status: JoinRequestStatus,
    ) -> JoinRequest:
        pass
