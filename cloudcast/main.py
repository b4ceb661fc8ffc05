"""
CloudCast - Main entry point.

Walks through the onboarding flow against an in-memory directory and
prints what the route guard decides at each step. Run it to verify the
installation:

    python -m cloudcast.main [--seed config/seed.yaml]
"""

from __future__ import annotations

import argparse
import asyncio
import logging

from cloudcast.auth.guard import RouteGuard
from cloudcast.config import get_settings
from cloudcast.core.models import MembershipRole
from cloudcast.directory import InMemoryDirectoryClient, load_seed
from cloudcast.services import SessionStore

PAGES = ["/dashboard", "/projects", "/admin", "/organization-onboarding"]


def show_guard(guard: RouteGuard) -> None:
    for path in PAGES:
        outcome = guard.check(path)
        target = f" -> {outcome.location}" if outcome.location else ""
        print(f"  {path:<26} {outcome.action.value}{target}")


async def demo(seed_file: str | None = None) -> None:
    """
    Run a demonstration of the onboarding flow.

    An admin creates an organization and invites a colleague; the
    colleague signs in, the invite is reconciled, and the guard lets
    them through.
    """
    print("=" * 60)
    print("CLOUDCAST ACCESS DEMO")
    print("=" * 60)
    print()

    settings = get_settings()
    directory = InMemoryDirectoryClient(settings)

    if seed_file:
        counts = await load_seed(directory, seed_file)
        print(f"Seeded directory: {counts}")
    else:
        directory.register_account("alice@company.edu", "alice-password", "Alice Admin")
        directory.register_account("bob@company.edu", "bob-password", "Bob Builder")
        directory.register_account("eve@elsewhere.com", "eve-password", "Eve Outsider")
    print()

    async with SessionStore(directory, settings) as store:
        guard = RouteGuard(store)

        print("Signed out:")
        show_guard(guard)
        print()

        await store.sign_in("alice@company.edu", "alice-password")
        await store.settled()
        print("Alice signed in, no organization yet:")
        show_guard(guard)
        print()

        org_id = await store.membership.create_organization("Demo Workspace", "Created by the walkthrough")
        code = store.membership.admin_join_codes()[0]["join_code"]
        await store.membership.create_invite(org_id, "bob@company.edu", MembershipRole.MEMBER)
        print(f"Alice created {org_id} (join code {code}) and invited Bob:")
        show_guard(guard)
        print()

        await store.sign_out()
        await store.sign_in("bob@company.edu", "bob-password")
        await store.settled()
        roles = [(m.organization.name, m.role.value) for m in store.memberships if m.organization]
        print(f"Bob signed in, invite reconciled: {roles}")
        show_guard(guard)
        print()

        await store.sign_out()
        await store.sign_in("eve@elsewhere.com", "eve-password")
        await store.settled()
        print("Eve signed in from a domain outside the allow-list:")
        show_guard(guard)
        print()

    print("=" * 60)
    print("Demo complete!")
    print()
    print("Next steps:")
    print("  1. Point SEED_FILE at a YAML seed and start the API:")
    print("     uvicorn cloudcast.api.app:app --reload")
    print("  2. Sign in with POST /auth/sign-in, then GET /pages/dashboard")
    print("=" * 60)


def main():
    """Main entry point."""
    parser = argparse.ArgumentParser(description="Walk through the CloudCast onboarding flow")
    parser.add_argument("--seed", help="YAML seed file for the in-memory directory")
    args = parser.parse_args()

    logging.basicConfig(level=get_settings().log_level)
    asyncio.run(demo(args.seed))


if __name__ == "__main__":
    main()
