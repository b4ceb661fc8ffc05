"""
Tests for the in-memory directory, the seed loader and the event bus.
"""

import pytest

from conftest import ALICE, PASSWORD
from cloudcast.core.events import SessionEvent, SessionEventBus, SessionEventType
from cloudcast.directory import (
    AuthFailure,
    ConflictError,
    DuplicateJoinCode,
    InMemoryDirectoryClient,
    JoinCodeMismatch,
    RecordNotFound,
    SeedError,
    SeedLoader,
    load_seed,
)


async def make_org(directory, name="Acme", code="ACME0001"):
    return await directory.insert_organization({
        "name": name,
        "join_code": code,
        "created_by": directory.user_id_for(ALICE),
    })


# =============================================================================
# Constraints
# =============================================================================


class TestConstraints:
    @pytest.mark.asyncio
    async def test_unique_join_code(self, directory):
        await make_org(directory)

        with pytest.raises(DuplicateJoinCode):
            await make_org(directory, name="Other")

    @pytest.mark.asyncio
    async def test_unique_name(self, directory):
        await make_org(directory)

        with pytest.raises(ConflictError):
            await make_org(directory, code="OTHER001")

    @pytest.mark.asyncio
    async def test_orgs_without_code_do_not_collide(self, directory):
        await make_org(directory, name="A", code=None)
        await make_org(directory, name="B", code=None)

        assert await directory.find_organization_by_join_code("") is None
        assert len(await directory.list_organizations()) == 2

    @pytest.mark.asyncio
    async def test_unique_membership(self, directory):
        org = await make_org(directory)
        fields = {"organization_id": org.id, "user_id": "user_x"}
        await directory.insert_membership(fields)

        with pytest.raises(ConflictError):
            await directory.insert_membership(fields)

    @pytest.mark.asyncio
    async def test_conditional_insert_on_stale_code(self, directory):
        org = await make_org(directory)
        await directory.update_organization_join_code(org.id, "NEWCODE1")

        with pytest.raises(JoinCodeMismatch):
            await directory.insert_membership(
                {"organization_id": org.id, "user_id": "user_x"},
                require_join_code="ACME0001",
            )

    @pytest.mark.asyncio
    async def test_delete_cascades(self, directory):
        org = await make_org(directory)
        await directory.insert_membership({"organization_id": org.id, "user_id": "user_x"})
        await directory.insert_invite({"organization_id": org.id, "email": "x@company.edu"})

        assert await directory.delete_organization(org.id)
        assert await directory.list_memberships_by_user("user_x") == []
        assert await directory.list_invites_by_email("x@company.edu") == []
        assert not await directory.delete_organization(org.id)

    @pytest.mark.asyncio
    async def test_returned_records_are_copies(self, directory):
        org = await make_org(directory)
        org.join_code = "MUTATED1"

        assert (await directory.get_organization(org.id)).join_code == "ACME0001"

    @pytest.mark.asyncio
    async def test_missing_records(self, directory):
        with pytest.raises(RecordNotFound):
            await directory.get_organization("org_missing")
        with pytest.raises(RecordNotFound):
            await directory.get_profile("user_missing")
        with pytest.raises(RecordNotFound):
            await directory.mark_invite_accepted("inv_missing")


class TestSessions:
    @pytest.mark.asyncio
    async def test_sign_in_publishes_event(self, directory):
        await directory.sign_in(ALICE, PASSWORD)

        history = directory.events.get_history()
        assert history[-1].event_type == SessionEventType.SIGNED_IN
        assert (await directory.get_session()).principal.email == ALICE

    @pytest.mark.asyncio
    async def test_unknown_account(self, directory):
        with pytest.raises(AuthFailure):
            await directory.sign_in("nobody@company.edu", PASSWORD)

    def test_duplicate_registration(self, directory):
        with pytest.raises(ConflictError):
            directory.register_account(ALICE, "other")


# =============================================================================
# Seed loading
# =============================================================================


class TestSeed:
    @pytest.mark.asyncio
    async def test_load_file(self, settings, tmp_path):
        seed_file = tmp_path / "seed.yaml"
        seed_file.write_text(
            "accounts:\n"
            "  - {email: alice@company.edu, password: pw, full_name: Alice}\n"
            "  - {email: bob@company.edu, password: pw}\n"
            "organizations:\n"
            "  - name: Acme\n"
            "    created_by: alice@company.edu\n"
            "    members:\n"
            "      - {email: alice@company.edu, role: admin}\n"
            "invites:\n"
            "  - {organization: Acme, email: bob@company.edu}\n"
        )
        directory = InMemoryDirectoryClient(settings)

        counts = await load_seed(directory, seed_file)

        assert counts == {"accounts": 2, "organizations": 1, "memberships": 1, "invites": 1}
        org = (await directory.list_organizations())[0]
        assert len(org.join_code) == settings.join_code_length
        assert len(await directory.list_invites_by_email("bob@company.edu")) == 1

    @pytest.mark.asyncio
    async def test_seed_join_code_is_normalized(self, settings):
        directory = InMemoryDirectoryClient(settings)
        directory.register_account(ALICE, PASSWORD)

        await SeedLoader(directory).load({
            "organizations": [{"name": "Acme", "join_code": " acme2024 ", "created_by": ALICE}],
        })

        org = await directory.find_organization_by_join_code("ACME2024")
        assert org is not None
        assert org.name == "Acme"

    @pytest.mark.asyncio
    async def test_unknown_account_reference(self, settings):
        loader = SeedLoader(InMemoryDirectoryClient(settings))

        with pytest.raises(SeedError):
            await loader.load({"organizations": [{"name": "Acme", "created_by": "ghost@company.edu"}]})

    @pytest.mark.asyncio
    async def test_unknown_organization_reference(self, settings):
        loader = SeedLoader(InMemoryDirectoryClient(settings))

        with pytest.raises(SeedError):
            await loader.load({"invites": [{"organization": "Nowhere", "email": "x@company.edu"}]})


# =============================================================================
# Event bus
# =============================================================================


class TestSessionEventBus:
    @pytest.mark.asyncio
    async def test_pattern_subscription(self):
        bus = SessionEventBus()
        seen = []

        async def handler(event):
            seen.append(event.event_type)

        bus.subscribe(handler, pattern="SIGNED_*")
        await bus.publish(SessionEvent(SessionEventType.SIGNED_IN))
        await bus.publish(SessionEvent(SessionEventType.TOKEN_REFRESHED))

        assert seen == [SessionEventType.SIGNED_IN]

    @pytest.mark.asyncio
    async def test_failing_handler_does_not_stop_others(self):
        bus = SessionEventBus()
        seen = []

        async def broken(event):
            raise RuntimeError("boom")

        async def working(event):
            seen.append(event)

        bus.subscribe(broken)
        bus.subscribe(working)
        await bus.publish(SessionEvent(SessionEventType.SIGNED_OUT))

        assert len(seen) == 1

    @pytest.mark.asyncio
    async def test_unsubscribe_twice_is_harmless(self):
        bus = SessionEventBus()

        async def handler(event):
            pass

        unsubscribe = bus.subscribe(handler)
        unsubscribe()
        unsubscribe()
        assert bus.subscriber_count == 0
