"""
Shared fixtures: settings, a populated in-memory directory, and a
session store bound to it.
"""

import pytest
import pytest_asyncio

from cloudcast.config import Settings
from cloudcast.directory import DirectoryUnavailable, InMemoryDirectoryClient

PASSWORD = "correct-horse"

ALICE = "alice@company.edu"
BOB = "bob@company.edu"
ADMIN = "admin@company.edu"
OUTSIDER = "eve@elsewhere.com"
OUTSIDE_ADMIN = "root@elsewhere.com"


class FlakyDirectory(InMemoryDirectoryClient):
    """In-memory directory with switchable failures for inserts and reads."""

    def __init__(self, settings=None):
        super().__init__(settings)
        self.fail_memberships_for: set[str] = set()
        self.fail_all_memberships = False
        self.fail_profile_reads = False
        self.fail_membership_reads = False

    async def insert_membership(self, fields, require_join_code=None):
        if self.fail_all_memberships or fields["organization_id"] in self.fail_memberships_for:
            raise DirectoryUnavailable("membership insert failed")
        return await super().insert_membership(fields, require_join_code=require_join_code)

    async def get_profile(self, user_id):
        if self.fail_profile_reads:
            raise DirectoryUnavailable("profile read failed")
        return await super().get_profile(user_id)

    async def list_memberships_by_user(self, user_id):
        if self.fail_membership_reads:
            raise DirectoryUnavailable("membership read failed")
        return await super().list_memberships_by_user(user_id)


@pytest.fixture
def settings():
    """Test settings, independent of the environment."""
    return Settings(
        _env_file=None,
        environment="test",
        allowed_email_domains="company.edu",
        global_admin_emails=f"{ADMIN},{OUTSIDE_ADMIN}",
        jwt_secret_key="test-secret-key-with-enough-length-for-hs256",
        guard_loading_timeout=1.0,
    )


def _register_all(directory):
    directory.register_account(ALICE, PASSWORD, "Alice")
    directory.register_account(BOB, PASSWORD, "Bob")
    directory.register_account(ADMIN, PASSWORD, "Global Admin")
    directory.register_account(OUTSIDER, PASSWORD, "Eve")
    directory.register_account(OUTSIDE_ADMIN, PASSWORD, "Root")


@pytest.fixture
def directory(settings):
    """Directory with a handful of registered accounts."""
    directory = FlakyDirectory(settings)
    _register_all(directory)
    return directory


@pytest_asyncio.fixture
async def store(directory, settings):
    """Initialized session store; torn down after the test."""
    from cloudcast.services import SessionStore

    store = SessionStore(directory, settings)
    await store.init()
    yield store
    await store.teardown()


async def sign_in(store, email, password=PASSWORD):
    """Sign in and wait for every spawned fetch to finish."""
    await store.sign_in(email, password)
    await store.settled()
