import json
import os
import sys
from pathlib import Path

import pytest

from conftest import make_config, publish_version, sha1
from craftlaunch.download import DownloadManager, FetchClient
from craftlaunch.exceptions import IntegrityError, LaunchError
from craftlaunch.launch import (
    AssetResolver,
    CrashClassifier,
    LaunchOrchestrator,
    LaunchSession,
    LaunchState,
    LaunchStateMachine,
    OutputLine,
    build_classpath,
    game_arguments,
    jvm_arguments,
)
from craftlaunch.launch.arguments import enabled_mod_files
from craftlaunch.launch.state import InvalidTransition
from craftlaunch.models import (
    Account,
    AccountKind,
    InstalledMod,
    LauncherConfig,
    Profile,
    VersionDetail,
)
from craftlaunch.services import VersionManager
from craftlaunch.services.rules import HostPlatform
from craftlaunch.store import JsonEntityStore

LINUX = HostPlatform("linux", "x86_64")


def library(name: str, **extra) -> dict:
    return {"name": name, "url": "https://maven.example/", **extra}


def touch(path: Path) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(b"")
    return path


# classpath and arguments


def test_classpath_order(tmp_path):
    libs = tmp_path / "libraries"
    detail = VersionDetail.from_dict({
        "id": "1.20.1",
        "libraries": [
            library("org.ow2.asm:asm:9.3"),
            library("com.mojang:logging:1.1.1"),
            library("com.mojang:missing:1.0"),
            library("org.lwjgl:lwjgl:3.3.1", rules=[{"action": "deny", "os": {"name": "linux"}}]),
        ],
    })
    loader = VersionDetail.from_dict({
        "id": "fabric-loader-0.14.22-1.20.1",
        "libraries": [library("org.ow2.asm:asm:9.5"), library("net.fabricmc:fabric-loader:0.14.22")],
    })
    for path in (
        "org/ow2/asm/asm/9.3/asm-9.3.jar",
        "org/ow2/asm/asm/9.5/asm-9.5.jar",
        "com/mojang/logging/1.1.1/logging-1.1.1.jar",
        "org/lwjgl/lwjgl/3.3.1/lwjgl-3.3.1.jar",
        "net/fabricmc/fabric-loader/0.14.22/fabric-loader-0.14.22.jar",
    ):
        touch(libs / path)
    client = touch(tmp_path / "1.20.1.jar")
    mods_dir = tmp_path / "mods"
    touch(mods_dir / "sodium.jar")
    touch(mods_dir / "iris.jar")
    touch(mods_dir / "lithium.jar.disabled")
    mods = [
        InstalledMod("p", "a", "Sodium", "1", "sodium.jar"),
        InstalledMod("p", "b", "Lithium", "1", "lithium.jar", enabled=False),
        InstalledMod("p", "d", "Iris", "1", "iris.jar"),
        InstalledMod("p", "c", "Gone", "1", "gone.jar"),
    ]

    classpath = build_classpath(
        detail, libs, client, enabled_mod_files(mods, mods_dir), loader, LINUX
    )

    assert [Path(entry).name for entry in classpath] == [
        "asm-9.5.jar",
        "fabric-loader-0.14.22.jar",
        "logging-1.1.1.jar",
        "1.20.1.jar",
        "sodium.jar",
        "iris.jar",
    ]


def test_classpath_requires_client_jar(tmp_path):
    detail = VersionDetail.from_dict({"id": "1.20.1"})

    with pytest.raises(LaunchError) as info:
        build_classpath(detail, tmp_path, tmp_path / "1.20.1.jar", [], host=LINUX)

    assert info.value.code == LaunchError.CLIENT_JAR_NOT_FOUND


def test_arguments(tmp_path):
    config = LauncherConfig(base_dir=tmp_path, window_width=1280, window_height=720)
    profile = Profile(
        name="p", version_id="1.20.1", memory_min=1024, memory_max=4096,
        custom_jvm_args=["-Dfoo=bar"], custom_game_args=["--quickPlaySingleplayer", "World"],
    )
    account = Account(username="Steve", game_uuid="abc", account_kind=AccountKind.OFFLINE)
    detail = VersionDetail.from_dict({
        "id": "1.20.1",
        "type": "release",
        "assetIndex": {"id": "5", "url": "https://x/5.json"},
    })

    jvm = jvm_arguments(profile, tmp_path / "natives", ["a.jar", "b.jar"], "Main")
    game = game_arguments(profile, account, detail, tmp_path / "game", tmp_path / "assets", config)

    assert jvm[:3] == ["-Xmx4096M", "-Xms1024M", f"-Djava.library.path={tmp_path / 'natives'}"]
    assert "-XX:+UseG1GC" in jvm
    assert jvm[-4:] == ["-Dfoo=bar", "-cp", os.pathsep.join(["a.jar", "b.jar"]), "Main"]

    pairs = dict(zip(game[:18:2], game[1:18:2]))
    assert pairs["--username"] == "Steve"
    assert pairs["--assetIndex"] == "5"
    assert pairs["--accessToken"] == "0"
    assert pairs["--userType"] == "legacy"
    assert game[18:] == ["--width", "1280", "--height", "720", "--quickPlaySingleplayer", "World"]

    profile.fullscreen = True
    assert "--fullscreen" in game_arguments(
        profile, account, detail, tmp_path, tmp_path, config
    )


# crash classification


def test_crash_text_wins_over_exit_code():
    session = LaunchSession(pid=1, profile_id="p")
    classifier = CrashClassifier(session)

    classifier.on_line(OutputLine("stdout", "[Render thread/INFO]: Loading"))
    assert not session.crashed
    classifier.on_line(OutputLine("stdout", "java.lang.IllegalStateException: boom"))
    classifier.on_line(OutputLine("stdout", "Caused by: another Error"))
    classifier.on_exit(1)

    assert session.crashed
    assert session.crash_reason == "java.lang.IllegalStateException: boom"


def test_crash_from_exit_code():
    session = LaunchSession(pid=1, profile_id="p")
    classifier = CrashClassifier(session)

    classifier.on_line(OutputLine("stderr", "Error: something on stderr"))
    classifier.on_exit(137)

    assert session.crash_reason == "Abnormal exit code: 137"


def test_clean_exit():
    session = LaunchSession(pid=1, profile_id="p")
    CrashClassifier(session).on_exit(0)
    assert not session.crashed


# state machine


def test_state_machine_forward_only():
    seen = []
    machine = LaunchStateMachine(seen.append)

    machine.advance(LaunchState.PREPARING)
    machine.advance(LaunchState.LAUNCHING)
    with pytest.raises(InvalidTransition):
        machine.advance(LaunchState.DOWNLOADING)
    machine.advance(LaunchState.RUNNING)
    with pytest.raises(InvalidTransition):
        machine.fail("too late")
    machine.finish()

    assert seen == [
        LaunchState.PREPARING, LaunchState.LAUNCHING, LaunchState.RUNNING, LaunchState.IDLE
    ]
    assert machine.finished
    with pytest.raises(InvalidTransition):
        machine.advance(LaunchState.PREPARING)


def test_state_machine_failure():
    machine = LaunchStateMachine()
    machine.advance(LaunchState.PREPARING)
    machine.fail("no account")

    assert machine.state is LaunchState.ERROR
    assert machine.error == "no account"
    with pytest.raises(InvalidTransition):
        machine.finish()


# orchestrator


FAKE_JAVA = """#!{python}
import json
import sys
import time

with open("args.json", "w") as f:
    json.dump(sys.argv[1:], f)
print("Setting user: Steve")
sys.stderr.write("OpenGL warning\\n")
{body}
"""


def fake_java(tmp_path: Path, body: str = "sys.exit(0)") -> str:
    path = tmp_path / "java"
    path.write_text(FAKE_JAVA.format(python=sys.executable, body=body))
    path.chmod(0o755)
    return str(path)


@pytest.fixture
async def env(upstream, tmp_path):
    publish_version(upstream)
    config = make_config(tmp_path, version_manifest=upstream.url("/meta/version_manifest.json"))
    fetcher = FetchClient(max_retries=1, retry_delay=0)
    downloader = DownloadManager(fetcher)
    store = JsonEntityStore()
    versions = VersionManager(config, fetcher, downloader, host=LINUX)
    assets = AssetResolver(config.paths, downloader, upstream.url("/objects"))
    orchestrator = LaunchOrchestrator(config, store, versions, assets, host=LINUX)
    profile = await store.save_profile(Profile(name="Vanilla", version_id="1.20.1"))
    yield orchestrator, store, profile, config
    await fetcher.close()


async def add_account(store):
    await store.save_account(
        Account(username="Steve", game_uuid="abc", account_kind=AccountKind.OFFLINE, is_active=True)
    )


async def test_no_account(env, upstream):
    orchestrator, _, profile, config = env
    states = []
    progress = []

    with pytest.raises(LaunchError) as info:
        await orchestrator.launch(
            profile.id,
            on_progress=lambda p: progress.append((p.step, p.is_failed)),
            on_state=states.append,
        )

    assert info.value.code == LaunchError.NO_ACCOUNT
    assert states == [LaunchState.PREPARING, LaunchState.ERROR]
    assert progress[-1] == (2, True)
    assert upstream.requests == []
    assert orchestrator.get_running() == []


async def test_unknown_profile(env):
    orchestrator, _, _, _ = env

    with pytest.raises(LaunchError) as info:
        await orchestrator.launch("nope")
    assert info.value.code == LaunchError.INSTANCE_NOT_FOUND


async def test_unknown_version(env):
    orchestrator, store, _, _ = env
    await add_account(store)
    profile = await store.save_profile(Profile(name="Future", version_id="9.9"))

    with pytest.raises(LaunchError) as info:
        await orchestrator.launch(profile.id)
    assert info.value.code == LaunchError.VERSION_NOT_FOUND


async def test_invalid_version_json(env):
    orchestrator, store, profile, config = env
    await add_account(store)
    touch(config.paths.version_json("1.20.1")).write_text("{not json")

    with pytest.raises(LaunchError) as info:
        await orchestrator.launch(profile.id)
    assert info.value.code == LaunchError.INVALID_VERSION_JSON


async def test_missing_client_jar(env):
    orchestrator, store, profile, config = env
    await add_account(store)
    touch(config.paths.version_json("1.20.1")).write_text(json.dumps({"id": "1.20.1"}))
    states = []

    with pytest.raises(LaunchError) as info:
        await orchestrator.launch(profile.id, on_state=states.append)

    assert info.value.code == LaunchError.CLIENT_JAR_NOT_FOUND
    assert states[-2:] == [LaunchState.LAUNCHING, LaunchState.ERROR]


async def test_java_not_found(env, tmp_path):
    orchestrator, store, profile, config = env
    await add_account(store)
    config.java_path = str(tmp_path / "no-such-java")

    with pytest.raises(LaunchError) as info:
        await orchestrator.launch(profile.id)
    assert info.value.code == LaunchError.PROCESS_START_FAILED


async def test_unexpected_failure_ends_in_error(env):
    orchestrator, store, profile, config = env
    await add_account(store)
    await orchestrator.versions.install_version("1.20.1")
    index_path = config.paths.asset_indexes_dir / "5.json"
    index_path.write_text(json.dumps({"objects": {"a.ogg": {"size": 1}}}))
    states = []
    progress = []

    with pytest.raises(LaunchError) as info:
        await orchestrator.launch(profile.id, on_progress=progress.append, on_state=states.append)

    assert info.value.code == LaunchError.PREPARATION_FAILED
    assert isinstance(info.value.__cause__, KeyError)
    assert states == [LaunchState.PREPARING, LaunchState.DOWNLOADING, LaunchState.ERROR]
    assert progress[-1].is_failed


# assets


async def test_assets_downloaded_once_per_object(env, upstream):
    orchestrator, _, _, config = env
    sound = b"ogg frames " * 20000
    publish_version(upstream, assets={"a.ogg": sound, "b.ogg": sound, "icon.png": b"png"})
    await orchestrator.versions.install_version("1.20.1")

    downloaded = await orchestrator.assets.resolve("5")

    digest = sha1(sound)
    assert downloaded == 2
    assert (config.paths.asset_objects_dir / digest[:2] / digest).read_bytes() == sound
    assert upstream.paths().count(f"/objects/{digest[:2]}/{digest}") == 1
    assert not list(config.paths.asset_objects_dir.rglob("*.part"))
    assert await orchestrator.assets.resolve("5") == 0


async def test_assets_reject_corrupt_object(env, upstream):
    orchestrator, _, _, config = env
    publish_version(upstream, assets={"icon.png": b"png"})
    await orchestrator.versions.install_version("1.20.1")
    digest = sha1(b"png")
    upstream.add(f"/objects/{digest[:2]}/{digest}", b"gif")

    with pytest.raises(IntegrityError):
        await orchestrator.assets.resolve("5")
    assert not (config.paths.asset_objects_dir / digest[:2] / digest).exists()


skip_windows = pytest.mark.skipif(sys.platform == "win32", reason="needs a shebang script")


@skip_windows
async def test_launch_and_exit(env, tmp_path):
    orchestrator, store, profile, config = env
    await add_account(store)
    config.java_path = fake_java(tmp_path)
    states = []
    steps = []

    session = await orchestrator.launch(
        profile.id,
        on_progress=lambda p: steps.append((p.step, p.status)),
        on_state=states.append,
    )
    assert orchestrator.get_session(session.pid) is session
    exit_code = await orchestrator.wait(session.pid)

    assert exit_code == 0
    assert not session.is_running and not session.crashed
    assert "Setting user: Steve" in session.log_lines
    assert "[ERROR] OpenGL warning" in session.log_lines
    assert states == [
        LaunchState.PREPARING,
        LaunchState.DOWNLOADING,
        LaunchState.INSTALLING,
        LaunchState.LAUNCHING,
        LaunchState.RUNNING,
        LaunchState.IDLE,
    ]
    assert [s[0] for s in steps] == [1, 2, 3, 4, 5, 6, 7]
    assert steps[-1][1] == "Game started"

    game_dir = config.paths.instance_dir(profile.id)
    assert (game_dir / "saves").is_dir()
    args = json.loads((game_dir / "args.json").read_text())
    assert args[args.index("-cp") + 2] == "net.minecraft.client.main.Main"
    classpath = args[args.index("-cp") + 1].split(os.pathsep)
    assert classpath[-1] == str(config.paths.version_jar("1.20.1"))
    assert args[args.index("--username") + 1] == "Steve"
    assert (await store.get_profile(profile.id)).last_played is not None
    assert orchestrator.get_running() == []


@skip_windows
async def test_launch_crash(env, tmp_path):
    orchestrator, store, profile, config = env
    await add_account(store)
    config.java_path = fake_java(
        tmp_path, 'print("Exception in thread \\"main\\" java.lang.NoClassDefFoundError")\nsys.exit(1)'
    )

    session = await orchestrator.launch(profile.id)
    await session.wait()

    assert session.exit_code == 1
    assert session.crashed
    assert session.crash_reason.startswith("Exception in thread")


@skip_windows
async def test_terminate(env, tmp_path):
    orchestrator, store, profile, config = env
    await add_account(store)
    config.java_path = fake_java(tmp_path, "time.sleep(60)")

    session = await orchestrator.launch(profile.id)
    assert orchestrator.get_running() == [session]

    assert await orchestrator.terminate(session.pid)
    assert not session.is_running
    assert session.exit_code != 0
    assert not await orchestrator.terminate(999999)
    assert await orchestrator.wait(999999) is None
