"""
Core data models for the collaboration platform.

These models represent the tenancy entities: Principals and their
Profiles, Organizations, Memberships, and the two ways into an
organization besides join codes (Invites and JoinRequests).
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, Field

from cloudcast.core.utils import generate_id, utc_now


# =============================================================================
# Enums
# =============================================================================


class MembershipRole(str, Enum):
    """Role a user has within an organization."""

    ADMIN = "admin"  # Manages join codes, invites and join requests
    MEMBER = "member"


class JoinRequestStatus(str, Enum):
    """Status of a request to join an organization."""

    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


# =============================================================================
# Identity
# =============================================================================


class Principal(BaseModel):
    """
    An authenticated identity.

    Exists once authentication succeeds and is dropped on sign-out.
    `is_global_admin` is a claim issued by the identity layer when the
    session is established; nothing downstream re-derives it.
    """

    model_config = {"frozen": True}

    id: str
    email: str
    is_global_admin: bool = False


class Profile(BaseModel):
    """User profile, one-to-one with a Principal."""

    id: str
    full_name: str = ""
    email: str
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)


class Session(BaseModel):
    """An authenticated session as handed out by the directory."""

    access_token: str
    principal: Principal
    expires_at: datetime


# =============================================================================
# Tenancy
# =============================================================================


class Organization(BaseModel):
    """
    A tenant boundary.

    `join_code` is unique among organizations that have one; it may be
    None for organizations whose code was rotated out or never issued.
    """

    id: str = Field(default_factory=lambda: generate_id("org"))
    name: str
    description: str | None = None
    join_code: str | None = None
    created_by: str
    created_at: datetime = Field(default_factory=utc_now)


class OrganizationSummary(Organization):
    """Organization with its member count (admin listings)."""

    member_count: int = 0


class Membership(BaseModel):
    """A (user, organization, role) relation."""

    id: str = Field(default_factory=lambda: generate_id("mem"))
    organization_id: str
    user_id: str
    role: MembershipRole = MembershipRole.MEMBER
    created_at: datetime = Field(default_factory=utc_now)

    # Embedded when listed for a user
    organization: Organization | None = None

    @property
    def is_admin(self) -> bool:
        return self.role == MembershipRole.ADMIN


class Invite(BaseModel):
    """
    Admin-issued, email-targeted pre-authorization for membership.

    Consumed exactly once, at the first sign-in of a matching Principal.
    """

    id: str = Field(default_factory=lambda: generate_id("inv"))
    organization_id: str
    email: str
    role: MembershipRole = MembershipRole.MEMBER
    accepted: bool = False
    created_at: datetime = Field(default_factory=utc_now)


class JoinRequest(BaseModel):
    """A request to join an organization without a code."""

    id: str = Field(default_factory=lambda: generate_id("jrq"))
    organization_id: str
    user_id: str
    status: JoinRequestStatus = JoinRequestStatus.PENDING
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)

    @property
    def is_settled(self) -> bool:
        """Approved and rejected requests are never re-opened."""
        return self.status != JoinRequestStatus.PENDING
