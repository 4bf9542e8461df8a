import json

import pytest

from conftest import make_config, publish_version
from craftlaunch.download import FetchClient
from craftlaunch.exceptions import IntegrityError, LoaderNotSupportedError, NotFoundError
from craftlaunch.models import LoaderKind
from craftlaunch.services import LoaderInstaller, VersionManager, loader_version_id
from craftlaunch.services.rules import HostPlatform

LINUX = HostPlatform("linux", "x86_64")


@pytest.fixture
async def setup(upstream, tmp_path):
    config = make_config(
        tmp_path,
        version_manifest=upstream.url("/meta/version_manifest.json"),
        fabric_meta=upstream.url("/fabric"),
    )
    fetcher = FetchClient(max_retries=1, retry_delay=0)
    yield config, VersionManager(config, fetcher, host=LINUX)
    await fetcher.close()


async def test_install_version(upstream, setup):
    config, versions = setup
    published = publish_version(upstream)
    snapshots = []

    result = await versions.install_version(
        "1.20.1",
        on_progress=lambda p: snapshots.append((p.downloaded_bytes, p.total_bytes, p.is_complete)),
    )

    paths = config.paths
    assert result.success
    assert result.bytes_downloaded == published["total_bytes"]
    assert paths.version_jar("1.20.1").read_bytes() == published["client"]
    assert (paths.libraries_dir / "com/mojang/logging/1.1.1/logging-1.1.1.jar").is_file()
    assert (paths.asset_indexes_dir / "5.json").is_file()
    assert json.loads(paths.version_json("1.20.1").read_text()) == published["document"]

    # denied on linux
    assert not (paths.libraries_dir / "org/lwjgl/lwjgl/3.3.1").exists()
    assert not any("natives-windows" in path for path in upstream.paths())

    downloaded = [s[0] for s in snapshots]
    assert downloaded == sorted(downloaded)
    assert snapshots[-1] == (published["total_bytes"], published["total_bytes"], True)


async def test_installed_state(upstream, setup):
    _, versions = setup
    publish_version(upstream)

    assert not versions.validate_version("1.20.1")
    await versions.install_version("1.20.1")

    assert versions.validate_version("1.20.1")
    assert versions.list_installed() == ["1.20.1"]
    listed = await versions.list_versions()
    assert [(v.id, v.installed) for v in listed] == [("1.20.1", True)]

    assert await versions.delete_version("1.20.1")
    assert not await versions.delete_version("1.20.1")
    assert versions.list_installed() == []


async def test_delete_version_keeps_shared_libraries(upstream, setup):
    config, versions = setup
    publish_version(upstream)
    await versions.install_version("1.20.1")
    paths = config.paths

    assert await versions.delete_version("1.20.1")

    assert not paths.version_dir("1.20.1").exists()
    assert (paths.libraries_dir / "com/mojang/logging/1.1.1/logging-1.1.1.jar").is_file()
    assert not versions.validate_version("1.20.1")
    assert not await versions.delete_version("1.19.4")


async def test_reinstall_downloads_nothing(upstream, setup):
    _, versions = setup
    publish_version(upstream)

    await versions.install_version("1.20.1")
    result = await versions.install_version("1.20.1")

    assert result.bytes_downloaded == 0


async def test_unknown_version(upstream, setup):
    _, versions = setup
    publish_version(upstream)

    with pytest.raises(NotFoundError):
        await versions.install_version("0.0.1")


async def test_corrupt_client_leaves_version_incomplete(upstream, setup):
    config, versions = setup
    publish_version(upstream)
    upstream.add("/files/1.20.1/client.jar", b"tampered")
    failures = []

    with pytest.raises(IntegrityError):
        await versions.install_version(
            "1.20.1", on_progress=lambda p: p.is_failed and failures.append(p.error_message)
        )

    assert failures
    assert not config.paths.version_json("1.20.1").exists()
    assert not config.paths.version_jar("1.20.1").exists()
    assert not versions.validate_version("1.20.1")


async def test_version_json_hash_checked(upstream, setup):
    _, versions = setup
    publish_version(upstream)
    upstream.add("/meta/1.20.1.json", b'{"id": "1.20.1"}')

    with pytest.raises(IntegrityError):
        await versions.install_version("1.20.1")


def publish_fabric(upstream):
    loader_jar = b"fabric loader"
    upstream.add(
        "/fabric/versions/loader/1.20.1",
        [{"loader": {"version": "0.14.22"}}, {"loader": {"version": "0.14.21"}}],
    )
    upstream.add(
        "/fabric/versions/loader/1.20.1/0.14.22/profile/json",
        {
            "id": "fabric-loader-0.14.22-1.20.1",
            "inheritsFrom": "1.20.1",
            "mainClass": "net.fabricmc.loader.impl.launch.knot.KnotClient",
            "libraries": [
                {"name": "net.fabricmc:fabric-loader:0.14.22", "url": upstream.url("/maven/")}
            ],
        },
    )
    upstream.add("/maven/net/fabricmc/fabric-loader/0.14.22/fabric-loader-0.14.22.jar", loader_jar)


async def test_install_with_loader(upstream, setup):
    config, versions = setup
    publish_version(upstream)
    publish_fabric(upstream)

    await versions.install_version("1.20.1", LoaderKind.FABRIC)

    profile_id = loader_version_id(LoaderKind.FABRIC, "0.14.22", "1.20.1")
    assert profile_id == "fabric-loader-0.14.22-1.20.1"
    assert config.paths.version_json(profile_id).is_file()
    assert (
        config.paths.libraries_dir
        / "net/fabricmc/fabric-loader/0.14.22/fabric-loader-0.14.22.jar"
    ).read_bytes() == b"fabric loader"

    loader = await versions.loader_installer.load_profile("1.20.1", LoaderKind.FABRIC, "0.14.22")
    assert loader.main_class == "net.fabricmc.loader.impl.launch.knot.KnotClient"

    requests = len(upstream.requests)
    assert await versions.loader_installer.install("1.20.1", LoaderKind.FABRIC, "0.14.22") == "0.14.22"
    assert len(upstream.requests) == requests


async def test_forge_not_supported(config, fetcher):
    installer = LoaderInstaller(config, fetcher)

    with pytest.raises(LoaderNotSupportedError):
        await installer.install("1.20.1", LoaderKind.FORGE)
