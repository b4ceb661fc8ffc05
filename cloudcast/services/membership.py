"""
Organization Membership Manager.

Bootstraps a signed-in user into an organization (by creating one, by join
code, by invite, or by an approved join request) and keeps the session
store's membership list current.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from tenacity import AsyncRetrying, retry_if_exception_type, stop_after_attempt

from cloudcast.config import Settings, get_settings
from cloudcast.core.models import (
    Invite,
    JoinRequest,
    JoinRequestStatus,
    Membership,
    MembershipRole,
    Organization,
    Principal,
)
from cloudcast.core.utils import generate_join_code, normalize_join_code
from cloudcast.directory.base import (
    ConflictError,
    DirectoryClient,
    DirectoryError,
    DuplicateJoinCode,
    JoinCodeMismatch,
)
from cloudcast.integrations.sentry import capture_exception

if TYPE_CHECKING:
    from cloudcast.services.session import SessionStore

logger = logging.getLogger(__name__)


# =============================================================================
# Errors
# =============================================================================


class MembershipError(Exception):
    """Base exception for membership operations."""
    pass


class NotSignedIn(MembershipError):
    """The operation needs an authenticated principal."""
    pass


class NotAuthorized(MembershipError):
    """The principal may not perform this operation."""
    pass


class InvalidCode(MembershipError):
    """No organization carries this join code."""
    pass


class CreationFailed(MembershipError):
    """
    An organization (or its join code) could not be created.

    The caller must not assume anything was created.
    """

    def __init__(self, message: str, cause: Exception | None = None):
        super().__init__(message)
        self.cause = cause


class InvalidTransition(MembershipError):
    """A settled request or invite cannot change again."""
    pass


# =============================================================================
# Join codes
# =============================================================================


def _retrying(settings: Settings) -> AsyncRetrying:
    return AsyncRetrying(
        stop=stop_after_attempt(settings.join_code_max_attempts),
        retry=retry_if_exception_type(DuplicateJoinCode),
        reraise=True,
    )


async def _fresh_code(directory: DirectoryClient, settings: Settings) -> str:
    code = generate_join_code(settings.join_code_length)
    if await directory.find_organization_by_join_code(code) is not None:
        raise DuplicateJoinCode(f"Join code already in use: {code}")
    return code


async def insert_with_unique_join_code(
    directory: DirectoryClient,
    fields: dict[str, Any],
    settings: Settings,
) -> Organization:
    """
    Insert an organization under a freshly generated join code.

    A code collision is retried with a new code; running out of attempts
    raises CreationFailed.
    """
    try:
        async for attempt in _retrying(settings):
            with attempt:
                code = await _fresh_code(directory, settings)
                org = await directory.insert_organization({**fields, "join_code": code})
    except DuplicateJoinCode as e:
        raise CreationFailed("Could not generate a unique join code", cause=e) from e
    return org


async def rotate_join_code(
    directory: DirectoryClient,
    organization_id: str,
    settings: Settings,
) -> str:
    """Overwrite an organization's join code; the old one stops working at once."""
    try:
        async for attempt in _retrying(settings):
            with attempt:
                code = await _fresh_code(directory, settings)
                await directory.update_organization_join_code(organization_id, code)
    except DuplicateJoinCode as e:
        raise CreationFailed("Could not generate a unique join code", cause=e) from e
    return code


# =============================================================================
# Manager
# =============================================================================


class OrganizationMembershipManager:
    """
    Organization onboarding operations for the store's current principal.

    Every operation captures the store's session epoch when it starts;
    a membership refresh that completes after the session changed is
    discarded by the store.
    """

    def __init__(
        self,
        store: SessionStore,
        directory: DirectoryClient,
        settings: Settings | None = None,
    ):
        self.store = store
        self.directory = directory
        self.settings = settings or get_settings()

    # =========================================================================
    # Helpers
    # =========================================================================

    def _require_principal(self) -> Principal:
        principal = self.store.principal
        if principal is None:
            raise NotSignedIn("Sign in to continue")
        if not self.store.email_domain_valid:
            raise NotAuthorized("Email domain is not allowed")
        return principal

    async def _require_org_admin(self, principal: Principal, organization_id: str) -> None:
        if principal.is_global_admin:
            return
        membership = await self.directory.find_membership(organization_id, principal.id)
        if membership is None or not membership.is_admin:
            raise NotAuthorized("Only organization admins can do this")

    async def refresh_memberships(self, epoch: int) -> None:
        """
        Refresh memberships for the session that started at `epoch`.

        A failed refresh is logged and reported, and prior state is kept.
        Nothing is fetched once the session has moved on.
        """
        if not self.store.is_current(epoch):
            return
        try:
            await self.fetch_organization_memberships(epoch=epoch)
        except DirectoryError as e:
            logger.error(f"Membership refresh failed: {e}")
            capture_exception(e, operation="refresh_memberships")

    # =========================================================================
    # Memberships
    # =========================================================================

    async def fetch_organization_memberships(self, epoch: int | None = None) -> list[Membership]:
        """
        Load the principal's memberships (organization embedded).

        Organizations without a join code are returned like any other.
        Raises DirectoryError if the directory cannot answer.
        """
        principal = self.store.principal
        if principal is None:
            raise NotSignedIn("Sign in to continue")
        if epoch is None:
            epoch = self.store.epoch

        memberships = await self.directory.list_memberships_by_user(principal.id)
        self.store.apply_memberships(epoch, memberships)
        return memberships

    async def create_organization(self, name: str, description: str | None = None) -> str:
        """
        Create an organization with the caller as its admin.

        Both records exist afterwards or neither does: if the admin
        membership cannot be written, the organization is deleted again.

        Returns:
            The new organization's id
        """
        principal = self._require_principal()
        name = (name or "").strip()
        if not name:
            raise CreationFailed("Organization name is required")
        description = (description or "").strip() or None
        epoch = self.store.epoch

        try:
            org = await insert_with_unique_join_code(
                self.directory,
                {"name": name, "description": description, "created_by": principal.id},
                self.settings,
            )
        except DirectoryError as e:
            raise CreationFailed(f"Failed to create organization: {e}", cause=e) from e

        try:
            await self.directory.insert_membership({
                "organization_id": org.id,
                "user_id": principal.id,
                "role": MembershipRole.ADMIN,
            })
        except DirectoryError as e:
            await self._discard_organization(org.id)
            raise CreationFailed(f"Failed to create organization: {e}", cause=e) from e

        logger.info(f"Organization {org.id} created by {principal.id}")
        await self.refresh_memberships(epoch)
        return org.id

    async def _discard_organization(self, organization_id: str) -> None:
        try:
            await self.directory.delete_organization(organization_id)
        except DirectoryError as e:
            logger.exception(f"Could not remove orphaned organization {organization_id}")
            capture_exception(e, organization_id=organization_id, operation="compensate_create")

    async def join_organization_with_code(self, code: str) -> bool:
        """
        Join an organization as a member using its join code.

        Joining an organization the caller already belongs to succeeds
        without writing anything. A code that was rotated while this call
        was in flight raises InvalidCode.
        """
        principal = self._require_principal()
        code = normalize_join_code(code or "")
        if not code:
            raise InvalidCode("Join code is required")
        epoch = self.store.epoch

        org = await self.directory.find_organization_by_join_code(code)
        if org is None:
            raise InvalidCode("Invalid join code")

        existing = await self.directory.find_membership(org.id, principal.id)
        if existing is None:
            try:
                await self.directory.insert_membership(
                    {
                        "organization_id": org.id,
                        "user_id": principal.id,
                        "role": MembershipRole.MEMBER,
                    },
                    require_join_code=code,
                )
                logger.info(f"{principal.id} joined {org.id} with a join code")
            except JoinCodeMismatch as e:
                raise InvalidCode("Invalid join code") from e
            except ConflictError:
                logger.info(f"{principal.id} is already a member of {org.id}")

        await self.refresh_memberships(epoch)
        return True

    # =========================================================================
    # Invites
    # =========================================================================

    async def check_pending_invites(
        self,
        email: str,
        epoch: int | None = None,
        principal: Principal | None = None,
    ) -> int:
        """
        Materialize memberships for every un-accepted invite to `email`.

        Memberships are created for `principal`, the identity whose sign-in
        started the reconciliation (the store's current principal if not
        given). Reconciliation stops as soon as that session is superseded;
        invites not reached stay pending for the next sign-in.

        Each invite is handled on its own: one that fails is logged, left
        unaccepted for the next sign-in, and does not stop the rest.
        Memberships are refreshed once at the end.

        Returns:
            Number of invites accepted
        """
        if principal is None:
            principal = self._require_principal()
        if epoch is None:
            epoch = self.store.epoch

        accepted = 0
        try:
            if not self.store.is_current(epoch):
                return accepted
            invites = await self.directory.list_invites_by_email(email, accepted=False)
            for invite in invites:
                if not self.store.is_current(epoch):
                    logger.warning(f"Session changed; leaving remaining invites for {principal.id}")
                    break
                if await self._accept_invite(principal, invite):
                    accepted += 1
        finally:
            await self.refresh_memberships(epoch)

        if accepted:
            logger.info(f"Accepted {accepted} invite(s) for {principal.id}")
        return accepted

    async def _accept_invite(self, principal: Principal, invite: Invite) -> bool:
        try:
            await self.directory.insert_membership({
                "organization_id": invite.organization_id,
                "user_id": principal.id,
                "role": invite.role,
            })
        except ConflictError:
            logger.info(f"Invite {invite.id}: already a member of {invite.organization_id}")
        except DirectoryError as e:
            logger.warning(f"Invite {invite.id} could not be accepted: {e}")
            return False

        try:
            await self.directory.mark_invite_accepted(invite.id)
        except DirectoryError as e:
            logger.warning(f"Invite {invite.id} could not be marked accepted: {e}")
            return False
        return True

    async def create_invite(
        self,
        organization_id: str,
        email: str,
        role: MembershipRole = MembershipRole.MEMBER,
    ) -> Invite:
        """Record an invite (organization admins and global admins only)."""
        principal = self._require_principal()
        await self._require_org_admin(principal, organization_id)

        email = (email or "").strip()
        if not email:
            raise MembershipError("Invite email is required")

        for invite in await self.directory.list_invites_by_email(email, accepted=False):
            if invite.organization_id == organization_id:
                return invite

        invite = await self.directory.insert_invite({
            "organization_id": organization_id,
            "email": email,
            "role": role,
        })
        logger.info(f"Invite {invite.id} created for {organization_id}")
        return invite

    # =========================================================================
    # Join codes
    # =========================================================================

    async def regenerate_join_code(self, organization_id: str) -> str:
        """Issue a new join code; the previous one is invalid immediately."""
        principal = self._require_principal()
        await self._require_org_admin(principal, organization_id)
        epoch = self.store.epoch

        code = await rotate_join_code(self.directory, organization_id, self.settings)
        logger.info(f"Join code regenerated for {organization_id}")
        await self.refresh_memberships(epoch)
        return code

    def admin_join_codes(self) -> list[dict[str, str]]:
        """Join codes the caller can share (organizations they administer)."""
        return [
            {
                "organization_id": m.organization_id,
                "name": m.organization.name,
                "join_code": m.organization.join_code,
            }
            for m in self.store.memberships
            if m.is_admin and m.organization is not None and m.organization.join_code
        ]

    # =========================================================================
    # Join requests
    # =========================================================================

    async def list_joinable_organizations(self) -> list[Organization]:
        """Organizations the caller could ask to join. Join codes are withheld."""
        principal = self._require_principal()
        member_of = {
            m.organization_id
            for m in await self.directory.list_memberships_by_user(principal.id)
        }
        return [
            Organization(**org.model_dump(exclude={"member_count", "join_code"}))
            for org in await self.directory.list_organizations()
            if org.id not in member_of
        ]

    async def request_to_join(self, organization_id: str) -> JoinRequest | None:
        """
        Ask to join an organization without a code.

        Returns the pending request (an existing one if already asked),
        or None when the caller is already a member.
        """
        principal = self._require_principal()
        await self.directory.get_organization(organization_id)

        if await self.directory.find_membership(organization_id, principal.id):
            return None

        pending = await self.directory.find_join_request(
            organization_id, principal.id, JoinRequestStatus.PENDING
        )
        if pending is not None:
            return pending

        request = await self.directory.insert_join_request({
            "organization_id": organization_id,
            "user_id": principal.id,
        })
        logger.info(f"Join request {request.id} for {organization_id} by {principal.id}")
        return request

    async def list_join_requests(
        self,
        organization_id: str,
        status: JoinRequestStatus | None = JoinRequestStatus.PENDING,
    ) -> list[JoinRequest]:
        principal = self._require_principal()
        await self._require_org_admin(principal, organization_id)
        return await self.directory.list_join_requests(organization_id, status)

    async def review_join_request(self, request_id: str, approve: bool) -> JoinRequest:
        """
        Approve or reject a pending join request.

        Approval materializes a member membership. Settled requests are
        never re-opened.
        """
        principal = self._require_principal()
        request = await self.directory.get_join_request(request_id)
        await self._require_org_admin(principal, request.organization_id)

        if request.is_settled:
            raise InvalidTransition(f"Join request already {request.status.value}")

        if approve:
            try:
                await self.directory.insert_membership({
                    "organization_id": request.organization_id,
                    "user_id": request.user_id,
                    "role": MembershipRole.MEMBER,
                })
            except ConflictError:
                logger.info(f"{request.user_id} is already a member of {request.organization_id}")
            status = JoinRequestStatus.APPROVED
        else:
            status = JoinRequestStatus.REJECTED

        updated = await self.directory.update_join_request_status(request_id, status)
        logger.info(f"Join request {request_id} {status.value} by {principal.id}")

        if request.user_id == principal.id:
            await self.refresh_memberships(self.store.epoch)
        return updated
