"""
CLI module

Command line interface over the launcher core.
"""

import asyncio
from typing import Awaitable, Callable, Optional

import click
from loguru import logger

from craftlaunch.auth import DeviceCodePrompt
from craftlaunch.core import CraftLaunch
from craftlaunch.exceptions import CraftLaunchError
from craftlaunch.logger import setup_logger
from craftlaunch.models import (
    DownloadProgress,
    LauncherConfig,
    LaunchProgress,
    LoaderKind,
    ModPlatform,
)

LOADER_CHOICES = click.Choice([kind.value for kind in LoaderKind])
PLATFORM_CHOICES = click.Choice([platform.value for platform in ModPlatform])


def run_async(ctx: click.Context, action: Callable[[CraftLaunch], Awaitable]):
    """Run an action against a launcher built from the CLI configuration"""

    async def runner():
        async with CraftLaunch(ctx.obj["config"]) as launcher:
            return await action(launcher)

    try:
        return asyncio.run(runner())
    except CraftLaunchError as e:
        logger.error(f"Error: {e}")
        raise click.ClickException(str(e))
    except KeyboardInterrupt:
        raise click.Abort()


def print_download(progress: DownloadProgress):
    if progress.is_failed or progress.is_complete:
        return
    logger.debug(
        f"{progress.status or ''} {progress.downloaded_bytes}/{progress.total_bytes} "
        f"({progress.percentage:.1f}%)"
    )


def print_launch(progress: LaunchProgress):
    if not progress.is_failed:
        click.echo(f"[{progress.step}/{progress.total_steps}] {progress.status}")


def print_device_code(prompt: DeviceCodePrompt):
    click.echo(prompt.message or f"Open {prompt.verification_uri} and enter {prompt.user_code}")


@click.group()
@click.option(
    "-c", "--config", "config_path", type=click.Path(exists=True), help="Config file (toml, json or yaml)"
)
@click.option("--debug", is_flag=True, help="Enable debug logging")
@click.version_option(version="0.1.0")
@click.pass_context
def main(ctx: click.Context, config_path: Optional[str], debug: bool):
    """CraftLaunch - Minecraft launcher"""
    setup_logger(level="DEBUG" if debug else None)
    try:
        config = LauncherConfig.load(config_path) if config_path else LauncherConfig()
    except CraftLaunchError as e:
        raise click.ClickException(str(e))
    ctx.obj = {"config": config}


# versions


@main.group()
def versions():
    """Game versions"""


@versions.command("list")
@click.option("--installed", is_flag=True, help="Only installed versions")
@click.option("--type", "release_type", help="Filter by release type (release, snapshot, ...)")
@click.pass_context
def versions_list(ctx, installed: bool, release_type: Optional[str]):
    if installed:
        for version_id in CraftLaunch(ctx.obj["config"]).versions.list_installed():
            click.echo(version_id)
        return

    async def action(launcher: CraftLaunch):
        return await launcher.versions.list_versions()

    for version in run_async(ctx, action):
        if release_type and version.release_type != release_type:
            continue
        mark = "*" if version.installed else " "
        click.echo(f"{mark} {version.id:<24} {version.release_type:<10} {version.release_time}")


@versions.command("install")
@click.argument("version_id")
@click.option("--loader", type=LOADER_CHOICES, help="Mod loader to install")
@click.option("--loader-version", help="Loader version, newest when omitted")
@click.pass_context
def versions_install(ctx, version_id: str, loader: Optional[str], loader_version: Optional[str]):
    async def action(launcher: CraftLaunch):
        return await launcher.versions.install_version(
            version_id,
            LoaderKind(loader) if loader else None,
            loader_version,
            on_progress=print_download,
        )

    result = run_async(ctx, action)
    click.echo(f"Installed {version_id} ({result.bytes_downloaded} bytes downloaded)")


@versions.command("delete")
@click.argument("version_id")
@click.pass_context
def versions_delete(ctx, version_id: str):
    async def action(launcher: CraftLaunch):
        return await launcher.versions.delete_version(version_id)

    if run_async(ctx, action):
        click.echo(f"Deleted {version_id}")
    else:
        click.echo(f"{version_id} is not installed")


@versions.command("validate")
@click.argument("version_id")
@click.pass_context
def versions_validate(ctx, version_id: str):
    if CraftLaunch(ctx.obj["config"]).versions.validate_version(version_id):
        click.echo(f"{version_id} is complete")
    else:
        raise click.ClickException(f"{version_id} is missing or incomplete")


# profiles


@main.group()
def profiles():
    """Game profiles"""


@profiles.command("list")
@click.pass_context
def profiles_list(ctx):
    async def action(launcher: CraftLaunch):
        return await launcher.list_profiles()

    for profile in run_async(ctx, action):
        loader = f" +{profile.loader_kind.value}" if profile.loader_kind else ""
        click.echo(f"{profile.id}  {profile.name} ({profile.version_id}{loader})")


@profiles.command("create")
@click.argument("name")
@click.argument("version_id")
@click.option("--loader", type=LOADER_CHOICES, help="Mod loader")
@click.option("--loader-version", help="Loader version")
@click.option("--memory-min", type=int, default=512, show_default=True, help="Minimum heap (MB)")
@click.option("--memory-max", type=int, default=2048, show_default=True, help="Maximum heap (MB)")
@click.pass_context
def profiles_create(ctx, name, version_id, loader, loader_version, memory_min, memory_max):
    async def action(launcher: CraftLaunch):
        return await launcher.create_profile(
            name,
            version_id,
            LoaderKind(loader) if loader else None,
            loader_version,
            memory_min=memory_min,
            memory_max=memory_max,
        )

    profile = run_async(ctx, action)
    click.echo(f"Created profile {profile.name}: {profile.id}")


@profiles.command("delete")
@click.argument("profile_id")
@click.option("--files", is_flag=True, help="Also delete the instance directory")
@click.pass_context
def profiles_delete(ctx, profile_id: str, files: bool):
    async def action(launcher: CraftLaunch):
        return await launcher.delete_profile(profile_id, delete_files=files)

    if not run_async(ctx, action):
        raise click.ClickException(f"Profile {profile_id} not found")
    click.echo(f"Deleted profile {profile_id}")


# mods


@main.group()
def mods():
    """Mods of a profile"""


@mods.command("search")
@click.argument("query")
@click.option("--game-version", help="Game version filter")
@click.option("--loader", type=LOADER_CHOICES, help="Loader filter")
@click.option("--platform", type=PLATFORM_CHOICES, default="modrinth", show_default=True)
@click.option("--limit", type=int, default=20, show_default=True)
@click.option("--offset", type=int, default=0)
@click.pass_context
def mods_search(ctx, query, game_version, loader, platform, limit, offset):
    async def action(launcher: CraftLaunch):
        return await launcher.mods.search(
            query, ModPlatform(platform), game_version, loader, limit, offset
        )

    result = run_async(ctx, action)
    for hit in result.hits:
        click.echo(f"{hit.id}  {hit.title} by {hit.author} ({hit.downloads} downloads)")
    click.echo(f"{len(result.hits)} of {result.total_hits} results")


@mods.command("list")
@click.argument("profile_id")
@click.pass_context
def mods_list(ctx, profile_id: str):
    async def action(launcher: CraftLaunch):
        return await launcher.mods.list_installed(profile_id)

    for mod in run_async(ctx, action):
        state = "on " if mod.enabled else "off"
        update = f" (update: {mod.latest_version})" if mod.has_update else ""
        click.echo(f"[{state}] {mod.id}  {mod.name} {mod.version}{update}")


@mods.command("install")
@click.argument("profile_id")
@click.argument("mod_id")
@click.argument("file_version_id")
@click.option("--platform", type=PLATFORM_CHOICES, default="modrinth", show_default=True)
@click.pass_context
def mods_install(ctx, profile_id, mod_id, file_version_id, platform):
    async def action(launcher: CraftLaunch):
        return await launcher.mods.install(
            profile_id, mod_id, file_version_id, ModPlatform(platform), print_download
        )

    mod = run_async(ctx, action)
    click.echo(f"Installed {mod.name} {mod.version}: {mod.id}")


@mods.command("uninstall")
@click.argument("installed_mod_id")
@click.pass_context
def mods_uninstall(ctx, installed_mod_id: str):
    async def action(launcher: CraftLaunch):
        return await launcher.mods.uninstall(installed_mod_id)

    if run_async(ctx, action):
        click.echo("Uninstalled")
    else:
        click.echo(f"Mod {installed_mod_id} is not installed")


@mods.command("toggle")
@click.argument("installed_mod_id")
@click.option("--enable/--disable", default=True)
@click.pass_context
def mods_toggle(ctx, installed_mod_id: str, enable: bool):
    async def action(launcher: CraftLaunch):
        return await launcher.mods.toggle(installed_mod_id, enable)

    if not run_async(ctx, action):
        raise click.ClickException(f"Mod {installed_mod_id} is not installed")
    click.echo("Enabled" if enable else "Disabled")


@mods.command("updates")
@click.argument("profile_id")
@click.pass_context
def mods_updates(ctx, profile_id: str):
    async def action(launcher: CraftLaunch):
        return await launcher.mods.check_for_updates(profile_id)

    updates = run_async(ctx, action)
    for info in updates:
        click.echo(
            f"{info.installed_mod_id}  {info.mod_name}: "
            f"{info.current_version} -> {info.latest_version}"
        )
    if not updates:
        click.echo("Everything is up to date")


@mods.command("update")
@click.argument("installed_mod_id")
@click.pass_context
def mods_update(ctx, installed_mod_id: str):
    async def action(launcher: CraftLaunch):
        return await launcher.mods.update(installed_mod_id, print_download)

    mod = run_async(ctx, action)
    click.echo(f"Updated {mod.name} to {mod.version}")


@mods.command("check")
@click.argument("profile_id")
@click.argument("mod_id")
@click.option("--platform", type=PLATFORM_CHOICES, default="modrinth", show_default=True)
@click.pass_context
def mods_check(ctx, profile_id: str, mod_id: str, platform: str):
    async def action(launcher: CraftLaunch):
        return await launcher.mods.check_compatibility(
            profile_id, mod_id, ModPlatform(platform)
        )

    result = run_async(ctx, action)
    if result.is_compatible:
        click.echo("Compatible")
    for issue in result.issues:
        click.echo(f"- {issue}")
    for dep in result.missing_dependencies:
        click.echo(f"- missing dependency {dep.project_id}")


# accounts


@main.group()
def accounts():
    """Game accounts"""


@accounts.command("login")
@click.pass_context
def accounts_login(ctx):
    """Sign in with a Microsoft account"""

    async def action(launcher: CraftLaunch):
        launcher.accounts.chain.login.prompt = print_device_code
        return await launcher.accounts.authenticate()

    account = run_async(ctx, action)
    click.echo(f"Signed in as {account.username}")


@accounts.command("offline")
@click.argument("username")
@click.pass_context
def accounts_offline(ctx, username: str):
    async def action(launcher: CraftLaunch):
        return await launcher.accounts.create_offline(username)

    account = run_async(ctx, action)
    click.echo(f"Offline account {account.username} ({account.game_uuid})")


@accounts.command("list")
@click.pass_context
def accounts_list(ctx):
    async def action(launcher: CraftLaunch):
        return await launcher.accounts.list_accounts()

    for account in run_async(ctx, action):
        mark = "*" if account.is_active else " "
        click.echo(f"{mark} {account.id}  {account.username} [{account.account_kind.value}]")


@accounts.command("use")
@click.argument("account_id")
@click.pass_context
def accounts_use(ctx, account_id: str):
    async def action(launcher: CraftLaunch):
        return await launcher.accounts.set_active(account_id)

    account = run_async(ctx, action)
    click.echo(f"Active account: {account.username}")


@accounts.command("refresh")
@click.pass_context
def accounts_refresh(ctx):
    """Refresh the token of the active account"""

    async def action(launcher: CraftLaunch):
        account = await launcher.accounts.get_active_account()
        if account is None:
            raise click.ClickException("No active account")
        return await launcher.accounts.refresh(account)

    account = run_async(ctx, action)
    click.echo(f"Refreshed {account.username}")


@accounts.command("logout")
@click.pass_context
def accounts_logout(ctx):
    async def action(launcher: CraftLaunch):
        account = await launcher.accounts.get_active_account()
        if account is None:
            return None
        await launcher.accounts.sign_out(account)
        return account

    account = run_async(ctx, action)
    click.echo(f"Signed out {account.username}" if account else "No active account")


# launch


@main.command()
@click.argument("profile_id")
@click.option(
    "--wait/--no-wait",
    default=True,
    show_default=True,
    help="Wait for the game to exit, output is only captured while waiting",
)
@click.pass_context
def launch(ctx, profile_id: str, wait: bool):
    """Launch a profile"""

    async def action(launcher: CraftLaunch):
        session = await launcher.launcher.launch(profile_id, on_progress=print_launch)
        click.echo(f"Game started, pid {session.pid}")
        if wait:
            await session.wait()
        return session

    session = run_async(ctx, action)
    if wait:
        if session.crashed:
            raise click.ClickException(f"Game crashed: {session.crash_reason}")
        click.echo(f"Game exited with code {session.exit_code}")


if __name__ == "__main__":
    main()
