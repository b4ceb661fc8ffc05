"""
Admin Directory.

Cross-organization views and operations for global admins: every
organization with its member count, every profile, organization creation
without joining it, and join-code rotation for any organization.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from cloudcast.core.models import Organization, OrganizationSummary, Profile
from cloudcast.directory.base import DirectoryError
from cloudcast.services.membership import (
    CreationFailed,
    NotAuthorized,
    NotSignedIn,
    insert_with_unique_join_code,
)

if TYPE_CHECKING:
    from cloudcast.services.session import SessionStore

logger = logging.getLogger(__name__)


class AdminDirectory:
    """Global-admin operations over the store's directory."""

    def __init__(self, store: SessionStore):
        self.store = store
        self.directory = store.directory
        self.settings = store.settings

    def _require_global_admin(self) -> str:
        principal = self.store.principal
        if principal is None:
            raise NotSignedIn("Sign in to continue")
        if not (principal.is_global_admin and self.store.email_domain_valid):
            raise NotAuthorized("Global admin access required")
        return principal.id

    async def list_organizations(self) -> list[OrganizationSummary]:
        self._require_global_admin()
        return await self.directory.list_organizations()

    async def list_profiles(self) -> list[Profile]:
        self._require_global_admin()
        return await self.directory.list_profiles()

    async def create_organization(self, name: str, description: str | None = None) -> Organization:
        """Create an organization for others to join; the admin does not become a member."""
        admin_id = self._require_global_admin()
        name = (name or "").strip()
        if not name:
            raise CreationFailed("Organization name is required")

        try:
            org = await insert_with_unique_join_code(
                self.directory,
                {
                    "name": name,
                    "description": (description or "").strip() or None,
                    "created_by": admin_id,
                },
                self.settings,
            )
        except DirectoryError as e:
            raise CreationFailed(f"Failed to create organization: {e}", cause=e) from e

        logger.info(f"Organization {org.id} created from the admin directory by {admin_id}")
        return org

    async def regenerate_join_code(self, organization_id: str) -> str:
        self._require_global_admin()
        return await self.store.membership.regenerate_join_code(organization_id)
