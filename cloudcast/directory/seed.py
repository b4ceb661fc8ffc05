"""
Seed loader for the in-memory directory.

Reads a YAML file describing accounts, organizations (with their members)
and pending invites, so a development server or a demo starts from a
known tenancy state.

Format:
    accounts:
      - email: alice@company.edu
        password: secret
        full_name: Alice
    organizations:
      - name: Acme
        description: optional
        join_code: AB12CD34
        created_by: alice@company.edu
        members:
          - email: alice@company.edu
            role: admin
    invites:
      - organization: Acme
        email: bob@company.edu
        role: member
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

import yaml

from cloudcast.core.utils import generate_join_code, normalize_join_code
from cloudcast.directory.local import InMemoryDirectoryClient


class SeedError(Exception):
    """Raised when a seed file references something it did not define."""
    pass


class SeedLoader:
    """Loads seed data into an InMemoryDirectoryClient."""

    def __init__(self, directory: InMemoryDirectoryClient):
        self.directory = directory

    async def load_file(self, path: Path | str) -> dict[str, int]:
        """Load a YAML seed file. Returns counts of each kind loaded."""
        path = Path(path)
        with open(path) as f:
            data = yaml.safe_load(f) or {}
        return await self.load(data)

    async def load(self, data: dict[str, Any]) -> dict[str, int]:
        counts = {"accounts": 0, "organizations": 0, "memberships": 0, "invites": 0}
        org_ids: dict[str, str] = {}

        for account in data.get("accounts", []):
            self.directory.register_account(
                email=account["email"],
                password=account["password"],
                full_name=account.get("full_name", ""),
            )
            counts["accounts"] += 1

        for entry in data.get("organizations", []):
            org = await self.directory.insert_organization({
                "name": entry["name"],
                "description": entry.get("description"),
                "join_code": self._join_code(entry.get("join_code")),
                "created_by": self._user_id(entry["created_by"]),
            })
            org_ids[org.name] = org.id
            counts["organizations"] += 1

            for member in entry.get("members", []):
                await self.directory.insert_membership({
                    "organization_id": org.id,
                    "user_id": self._user_id(member["email"]),
                    "role": member.get("role", "member"),
                })
                counts["memberships"] += 1

        for entry in data.get("invites", []):
            if entry["organization"] not in org_ids:
                raise SeedError(f"Invite references unknown organization: {entry['organization']}")
            await self.directory.insert_invite({
                "organization_id": org_ids[entry["organization"]],
                "email": entry["email"],
                "role": entry.get("role", "member"),
            })
            counts["invites"] += 1

        return counts

    def _join_code(self, code: Any) -> str:
        """Seed codes are stored the way user input is looked up: trimmed, upper-case."""
        code = normalize_join_code(str(code or ""))
        return code or generate_join_code(self.directory.settings.join_code_length)

    def _user_id(self, email: str) -> str:
        user_id = self.directory.user_id_for(email)
        if user_id is None:
            raise SeedError(f"Seed references unknown account: {email}")
        return user_id


async def load_seed(directory: InMemoryDirectoryClient, path: Path | str) -> dict[str, int]:
    """
    Convenience function to load a seed file.

    Returns:
        Dict with counts of each kind loaded
    """
    return await SeedLoader(directory).load_file(path)
