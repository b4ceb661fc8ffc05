"""Services - session state, organization onboarding, admin views."""

from cloudcast.services.membership import (
    CreationFailed,
    InvalidCode,
    InvalidTransition,
    MembershipError,
    NotAuthorized,
    NotSignedIn,
    OrganizationMembershipManager,
)
from cloudcast.services.session import SessionStore
from cloudcast.services.admin import AdminDirectory

__all__ = [
    "SessionStore",
    "OrganizationMembershipManager",
    "AdminDirectory",
    "MembershipError",
    "NotSignedIn",
    "NotAuthorized",
    "InvalidCode",
    "CreationFailed",
    "InvalidTransition",
]
