"""
Core module - fundamental data models and infrastructure.

This module contains:
- models: Tenancy data models (Principal, Organization, Membership, ...)
- events: Session-change events and their bus
- utils: Shared utility functions
"""

from cloudcast.core.models import (
    Principal,
    Profile,
    Session,
    Organization,
    OrganizationSummary,
    Membership,
    MembershipRole,
    Invite,
    JoinRequest,
    JoinRequestStatus,
)

from cloudcast.core.events import (
    SessionEvent,
    SessionEventBus,
    SessionEventType,
)

from cloudcast.core.utils import (
    generate_id,
    generate_join_code,
    normalize_join_code,
    utc_now,
)

__all__ = [
    # Models
    "Principal",
    "Profile",
    "Session",
    "Organization",
    "OrganizationSummary",
    "Membership",
    "MembershipRole",
    "Invite",
    "JoinRequest",
    "JoinRequestStatus",
    # Events
    "SessionEvent",
    "SessionEventBus",
    "SessionEventType",
    # Utils
    "generate_id",
    "generate_join_code",
    "normalize_join_code",
    "utc_now",
]
