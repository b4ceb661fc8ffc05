"""
Local directory implementation for development and tests.

Everything lives in process memory. Unique constraints are checked and
applied without suspending, so each call is atomic with respect to other
coroutines on the same loop.
"""

from __future__ import annotations

import logging
from typing import Any, Awaitable, Callable

from cloudcast.auth.tokens import hash_password, issue_session, verify_password
from cloudcast.config import Settings, get_settings
from cloudcast.core.events import SessionEvent, SessionEventBus, SessionEventType
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
from cloudcast.core.utils import generate_id, utc_now
from cloudcast.directory.base import (
    AuthFailure,
    ConflictError,
    DirectoryClient,
    DuplicateJoinCode,
    JoinCodeMismatch,
    RecordNotFound,
)

logger = logging.getLogger(__name__)


class InMemoryDirectoryClient(DirectoryClient):
    """In-memory accounts, sessions and tenancy tables."""

    def __init__(self, settings: Settings | None = None):
        self.settings = settings or get_settings()
        self.events = SessionEventBus()

        self._session: Session | None = None

        # email -> (user_id, password_hash)
        self._accounts: dict[str, tuple[str, str]] = {}
        self._profiles: dict[str, Profile] = {}
        self._organizations: dict[str, Organization] = {}
        self._memberships: dict[str, Membership] = {}
        self._invites: dict[str, Invite] = {}
        self._join_requests: dict[str, JoinRequest] = {}

    # =========================================================================
    # Accounts
    # =========================================================================

    def register_account(self, email: str, password: str, full_name: str = "") -> Profile:
        """Create an account and its profile (the auth provider's signup)."""
        email = email.strip()
        if email in self._accounts:
            raise ConflictError(f"Email already registered: {email}")

        user_id = generate_id("user")
        self._accounts[email] = (user_id, hash_password(password))
        profile = Profile(id=user_id, full_name=full_name, email=email)
        self._profiles[user_id] = profile
        return profile.model_copy()

    def user_id_for(self, email: str) -> str | None:
        account = self._accounts.get(email.strip())
        return account[0] if account else None

    # =========================================================================
    # Sessions
    # =========================================================================

    async def get_session(self) -> Session | None:
        if self._session and self._session.expires_at <= utc_now():
            self._session = None
        return self._session

    def on_session_change(
        self,
        handler: Callable[[SessionEvent], Awaitable[None]],
    ) -> Callable[[], None]:
        return self.events.subscribe(handler)

    async def sign_in(self, email: str, password: str) -> Session:
        account = self._accounts.get(email.strip())
        if not account or not verify_password(password, account[1]):
            raise AuthFailure("Invalid email or password")

        user_id, _ = account
        self._session = issue_session(user_id, email.strip(), self.settings)
        logger.info(f"Signed in {user_id}")
        await self.events.publish(SessionEvent(SessionEventType.SIGNED_IN, self._session))
        return self._session

    async def sign_out(self) -> None:
        self._session = None
        await self.events.publish(SessionEvent(SessionEventType.SIGNED_OUT))

    async def refresh_session(self) -> Session:
        if self._session is None:
            raise AuthFailure("No session to refresh")

        principal = self._session.principal
        self._session = issue_session(principal.id, principal.email, self.settings)
        await self.events.publish(SessionEvent(SessionEventType.TOKEN_REFRESHED, self._session))
        return self._session

    # =========================================================================
    # Profiles
    # =========================================================================

    async def get_profile(self, user_id: str) -> Profile:
        profile = self._profiles.get(user_id)
        if profile is None:
            raise RecordNotFound(f"Profile not found: {user_id}")
        return profile.model_copy()

    async def list_profiles(self) -> list[Profile]:
        profiles = sorted(self._profiles.values(), key=lambda p: p.created_at, reverse=True)
        return [p.model_copy() for p in profiles]

    # =========================================================================
    # Organizations
    # =========================================================================

    async def insert_organization(self, fields: dict[str, Any]) -> Organization:
        org = Organization(**fields)
        if any(o.name == org.name for o in self._organizations.values()):
            raise ConflictError(f"Organization name already taken: {org.name}")
        if org.join_code and self._code_taken(org.join_code):
            raise DuplicateJoinCode(f"Join code already in use: {org.join_code}")

        self._organizations[org.id] = org
        return org.model_copy()

    async def delete_organization(self, organization_id: str) -> bool:
        if organization_id not in self._organizations:
            return False

        del self._organizations[organization_id]
        for table in (self._memberships, self._invites, self._join_requests):
            for key in [k for k, v in table.items() if v.organization_id == organization_id]:
                del table[key]
        return True

    async def get_organization(self, organization_id: str) -> Organization:
        org = self._organizations.get(organization_id)
        if org is None:
            raise RecordNotFound(f"Organization not found: {organization_id}")
        return org.model_copy()

    async def list_organizations(self) -> list[OrganizationSummary]:
        counts: dict[str, int] = {}
        for m in self._memberships.values():
            counts[m.organization_id] = counts.get(m.organization_id, 0) + 1

        orgs = sorted(self._organizations.values(), key=lambda o: o.created_at, reverse=True)
        return [
            OrganizationSummary(**o.model_dump(), member_count=counts.get(o.id, 0))
            for o in orgs
        ]

    async def find_organization_by_join_code(self, code: str) -> Organization | None:
        for org in self._organizations.values():
            if org.join_code is not None and org.join_code == code:
                return org.model_copy()
        return None

    async def update_organization_join_code(self, organization_id: str, code: str) -> Organization:
        org = self._organizations.get(organization_id)
        if org is None:
            raise RecordNotFound(f"Organization not found: {organization_id}")
        if self._code_taken(code, exclude=organization_id):
            raise DuplicateJoinCode(f"Join code already in use: {code}")

        org.join_code = code
        return org.model_copy()

    def _code_taken(self, code: str, exclude: str | None = None) -> bool:
        return any(
            o.join_code == code and o.id != exclude
            for o in self._organizations.values()
        )

    # =========================================================================
    # Memberships
    # =========================================================================

    async def insert_membership(
        self,
        fields: dict[str, Any],
        require_join_code: str | None = None,
    ) -> Membership:
        membership = Membership(**fields)
        org = self._organizations.get(membership.organization_id)
        if org is None:
            raise RecordNotFound(f"Organization not found: {membership.organization_id}")
        if require_join_code is not None and org.join_code != require_join_code:
            raise JoinCodeMismatch("Join code is no longer valid")
        if self._find_membership(membership.organization_id, membership.user_id):
            raise ConflictError(
                f"User {membership.user_id} is already a member of {membership.organization_id}"
            )

        self._memberships[membership.id] = membership
        return membership.model_copy()

    async def find_membership(self, organization_id: str, user_id: str) -> Membership | None:
        found = self._find_membership(organization_id, user_id)
        return found.model_copy() if found else None

    def _find_membership(self, organization_id: str, user_id: str) -> Membership | None:
        for m in self._memberships.values():
            if m.organization_id == organization_id and m.user_id == user_id:
                return m
        return None

    async def list_memberships_by_user(self, user_id: str) -> list[Membership]:
        results = []
        for m in self._memberships.values():
            if m.user_id != user_id:
                continue
            org = self._organizations.get(m.organization_id)
            results.append(m.model_copy(update={
                "organization": org.model_copy() if org else None,
            }))
        return results

    async def list_memberships_by_organization(self, organization_id: str) -> list[Membership]:
        return [
            m.model_copy()
            for m in self._memberships.values()
            if m.organization_id == organization_id
        ]

    # =========================================================================
    # Invites
    # =========================================================================

    async def insert_invite(self, fields: dict[str, Any]) -> Invite:
        invite = Invite(**fields)
        if invite.organization_id not in self._organizations:
            raise RecordNotFound(f"Organization not found: {invite.organization_id}")
        self._invites[invite.id] = invite
        return invite.model_copy()

    async def list_invites_by_email(self, email: str, accepted: bool = False) -> list[Invite]:
        return [
            i.model_copy()
            for i in self._invites.values()
            if i.email == email and i.accepted == accepted
        ]

    async def mark_invite_accepted(self, invite_id: str) -> None:
        invite = self._invites.get(invite_id)
        if invite is None:
            raise RecordNotFound(f"Invite not found: {invite_id}")
        invite.accepted = True

    # =========================================================================
    # Join Requests
    # =========================================================================

    async def insert_join_request(self, fields: dict[str, Any]) -> JoinRequest:
        request = JoinRequest(**fields)
        if request.organization_id not in self._organizations:
            raise RecordNotFound(f"Organization not found: {request.organization_id}")
        self._join_requests[request.id] = request
        return request.model_copy()

    async def get_join_request(self, request_id: str) -> JoinRequest:
        request = self._join_requests.get(request_id)
        if request is None:
            raise RecordNotFound(f"Join request not found: {request_id}")
        return request.model_copy()

    async def find_join_request(
        self,
        organization_id: str,
        user_id: str,
        status: JoinRequestStatus | None = None,
    ) -> JoinRequest | None:
        for r in self._join_requests.values():
            if r.organization_id != organization_id or r.user_id != user_id:
                continue
            if status is None or r.status == status:
                return r.model_copy()
        return None

    async def list_join_requests(
        self,
        organization_id: str,
        status: JoinRequestStatus | None = None,
    ) -> list[JoinRequest]:
        return [
            r.model_copy()
            for r in self._join_requests.values()
            if r.organization_id == organization_id and (status is None or r.status == status)
        ]

    async def update_join_request_status(
        self,
        request_id: str,
        status: JoinRequestStatus,
    ) -> JoinRequest:
        request = self._join_requests.get(request_id)
        if request is None:
            raise RecordNotFound(f"Join request not found: {request_id}")
        request.status = status
        request.updated_at = utc_now()
        return request.model_copy()
