import json

import pytest

from craftlaunch.models import Account, AccountKind, InstalledMod, LoaderKind, Profile
from craftlaunch.store import JsonEntityStore


def make_mod(profile_id: str, registry_mod_id: str = "AANobbMI", **kwargs) -> InstalledMod:
    return InstalledMod(
        profile_id=profile_id,
        registry_mod_id=registry_mod_id,
        name=kwargs.pop("name", "Sodium"),
        version=kwargs.pop("version", "0.5.3"),
        file_name=kwargs.pop("file_name", f"{registry_mod_id}.jar"),
        **kwargs,
    )


async def test_profiles_persist(tmp_path):
    path = tmp_path / "store.json"
    store = JsonEntityStore(path)
    profile = await store.save_profile(
        Profile(name="Fabric", version_id="1.20.1", loader_kind=LoaderKind.FABRIC)
    )

    reopened = JsonEntityStore(path)
    loaded = await reopened.get_profile(profile.id)

    assert loaded == profile
    assert json.loads(path.read_text())["profiles"][profile.id]["loader_kind"] == "fabric"
    assert not (tmp_path / "store.json.tmp").exists()


async def test_memory_store_writes_nothing(tmp_path):
    store = JsonEntityStore()
    await store.save_profile(Profile(name="a", version_id="1.20.1"))
    assert len(await store.list_profiles()) == 1
    assert list(tmp_path.iterdir()) == []


async def test_delete_profile_cascades_mods():
    store = JsonEntityStore()
    keep = await store.save_profile(Profile(name="keep", version_id="1.20.1"))
    drop = await store.save_profile(Profile(name="drop", version_id="1.20.1"))
    kept_mod = await store.save_mod(make_mod(keep.id))
    await store.save_mod(make_mod(drop.id))

    assert await store.delete_profile(drop.id)
    assert not await store.delete_profile(drop.id)
    assert await store.list_mods(drop.id) == []
    assert [m.id for m in await store.list_mods(keep.id)] == [kept_mod.id]


async def test_mod_unique_per_profile():
    store = JsonEntityStore()
    profile = await store.save_profile(Profile(name="p", version_id="1.20.1"))
    mod = await store.save_mod(make_mod(profile.id))

    with pytest.raises(ValueError):
        await store.save_mod(make_mod(profile.id))

    mod.enabled = False
    await store.save_mod(mod)
    assert (await store.find_mod(profile.id, "AANobbMI")).enabled is False
    assert await store.list_enabled_mods(profile.id) == []


async def test_mods_with_update():
    store = JsonEntityStore()
    profile = await store.save_profile(Profile(name="p", version_id="1.20.1"))
    await store.save_mod(make_mod(profile.id, "a", has_update=True))
    await store.save_mod(make_mod(profile.id, "b"))

    assert [m.registry_mod_id for m in await store.list_mods_with_update()] == ["a"]


async def test_single_active_account():
    store = JsonEntityStore()
    first = await store.save_account(Account(username="Alex", game_uuid="a", is_active=True))
    second = await store.save_account(
        Account(username="Steve", game_uuid="b", account_kind=AccountKind.OFFLINE, is_active=True)
    )

    assert (await store.get_active_account()).id == second.id
    assert not (await store.get_account(first.id)).is_active

    await store.set_active_account(first.id)
    assert (await store.get_active_account()).id == first.id

    await store.set_active_account(None)
    assert await store.get_active_account() is None

    with pytest.raises(KeyError):
        await store.set_active_account("missing")
