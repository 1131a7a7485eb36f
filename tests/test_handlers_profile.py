import pytest

from liraindex.adapters.sql_models import Profile, User
from liraindex.application.handlers.profile import (
    handle_handle_updated,
    handle_primary_token_linked,
    handle_profile_created,
    handle_profile_updated,
)
from liraindex.domain.value_types import EventKind

from factories import ALICE, BOB, PROFILE, TOKEN, apply, make_log, rows


async def _profile(store, wallet):
    user = (await rows(store, User, wallet_address=wallet))[0]
    return user, (await rows(store, Profile, user_id=user.id))[0]


@pytest.mark.asyncio
async def test_profile_created_sets_handle_on_user_and_profile(store):
    await apply(store, handle_profile_created, make_log(
        EventKind.PROFILE_CREATED, PROFILE, userAddress=ALICE, handle="alice", metadataURI="ipfs://a"))

    user, profile = await _profile(store, ALICE)
    assert user.handle == "alice"
    assert profile.handle == "alice"
    assert profile.metadata_uri == "ipfs://a"


@pytest.mark.asyncio
async def test_profile_updated_and_handle_updated(store):
    await apply(
        store, handle_profile_created,
        make_log(EventKind.PROFILE_CREATED, PROFILE, block=1, userAddress=ALICE, handle="alice", metadataURI=""),
    )
    await apply(store, handle_profile_updated, make_log(
        EventKind.PROFILE_UPDATED, PROFILE, block=2, userAddress=ALICE, metadataURI="ipfs://b"))
    await apply(store, handle_handle_updated, make_log(
        EventKind.HANDLE_UPDATED, PROFILE, block=3, userAddress=ALICE, oldHandle="alice", newHandle="alice2"))

    user, profile = await _profile(store, ALICE)
    assert user.handle == "alice2"
    assert profile.handle == "alice2"
    assert profile.metadata_uri == "ipfs://b"


@pytest.mark.asyncio
async def test_profile_updated_for_new_wallet_creates_profile(store):
    await apply(store, handle_profile_updated, make_log(
        EventKind.PROFILE_UPDATED, PROFILE, userAddress=BOB, metadataURI="ipfs://c"))
    _, profile = await _profile(store, BOB)
    assert profile.metadata_uri == "ipfs://c"
    assert profile.handle is None


@pytest.mark.asyncio
async def test_primary_token_linked(store):
    await apply(store, handle_profile_created, make_log(
        EventKind.PROFILE_CREATED, PROFILE, block=1, userAddress=ALICE, handle="alice", metadataURI=""))
    await apply(store, handle_primary_token_linked, make_log(
        EventKind.PRIMARY_TOKEN_LINKED, PROFILE, block=2, userAddress=ALICE, tokenAddress=TOKEN))

    _, profile = await _profile(store, ALICE)
    assert profile.primary_token_address == TOKEN


@pytest.mark.asyncio
async def test_primary_token_linked_without_user_changes_nothing(store):
    await apply(store, handle_primary_token_linked, make_log(
        EventKind.PRIMARY_TOKEN_LINKED, PROFILE, userAddress=BOB, tokenAddress=TOKEN))
    assert await store.count(User) == 0
    assert await store.count(Profile) == 0
