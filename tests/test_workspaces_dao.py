# tests/test_workspaces_dao.py
from reviewdesk.models import Location
from reviewdesk.workspaces.dao import delete_workspace, get_workspace, get_workspaces, sync_workspaces

LOCATIONS = [
    Location("accounts/1/locations/1", "Main St", "1 Main St"),
    Location("accounts/1/locations/2", "Elm St"),
]


async def test_sync_is_idempotent(session_factory):
    async with session_factory() as db:
        assert await sync_workspaces(db, "owner", LOCATIONS) == 2
    async with session_factory() as db:
        assert await sync_workspaces(db, "owner", LOCATIONS) == 2
        workspaces = await get_workspaces(db, "owner")

    assert len(workspaces) == 2
    assert {ws.google_location_id for ws in workspaces} == {loc.location_id for loc in LOCATIONS}


async def test_resync_updates_name_and_keeps_id(session_factory):
    async with session_factory() as db:
        await sync_workspaces(db, "owner", LOCATIONS[:1])
        [before] = await get_workspaces(db, "owner")

    renamed = Location("accounts/1/locations/1", "Main Street Cafe", "1 Main Street")
    async with session_factory() as db:
        await sync_workspaces(db, "owner", [renamed])
        after = await get_workspace(db, before.id)

    assert after.name == "Main Street Cafe"
    assert after.address == "1 Main Street"


async def test_same_location_for_two_owners_is_two_workspaces(session_factory):
    async with session_factory() as db:
        await sync_workspaces(db, "alice", LOCATIONS[:1])
        await sync_workspaces(db, "bob", LOCATIONS[:1])
        assert len(await get_workspaces(db, "alice")) == 1
        assert len(await get_workspaces(db, "bob")) == 1


async def test_empty_and_duplicate_input(session_factory):
    async with session_factory() as db:
        assert await sync_workspaces(db, "owner", []) == 0
        assert await sync_workspaces(db, "owner", [LOCATIONS[0], LOCATIONS[0]]) == 1


async def test_missing_locations_are_not_deleted(session_factory):
    async with session_factory() as db:
        await sync_workspaces(db, "owner", LOCATIONS)
        await sync_workspaces(db, "owner", LOCATIONS[:1])
        assert len(await get_workspaces(db, "owner")) == 2


async def test_delete_workspace_checks_owner(session_factory):
    async with session_factory() as db:
        await sync_workspaces(db, "owner", LOCATIONS[:1])
        [ws] = await get_workspaces(db, "owner")

        assert await delete_workspace(db, ws.id, "someone-else") is False
        assert await delete_workspace(db, ws.id, "owner") is True
        assert await get_workspace(db, ws.id) is None
