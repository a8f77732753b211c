from __future__ import annotations

import asyncio
import json
import logging
from pathlib import Path
from typing import Any, Coroutine, Dict, List, Optional, Sequence, Tuple

import click

from hc_admin import constants
from hc_admin.clients.launcher import ProcessLauncher
from hc_admin.clients.registry import SetupRegistry
from hc_admin.cli.formatters import conductor_table, msg
from hc_admin.errors import HcAdminError, describe
from hc_admin.models.admin import AdminRequest
from hc_admin.models.enums import NetworkType, SetupStatus
from hc_admin.services import calls
from hc_admin.services.dispatcher import Dispatcher
from hc_admin.utils.dna import find_dnas
from hc_admin.utils.logging import setup_logging


class IntList(click.ParamType):
    """Comma separated integers, e.g. `0,2`."""

    name = "list"

    def convert(self, value: Any, param, ctx) -> List[int]:
        if isinstance(value, list):
            return value
        try:
            return [int(part) for part in str(value).split(",") if part.strip()]
        except ValueError:
            self.fail(f"'{value}' is not a comma separated list of integers", param, ctx)


INT_LIST = IntList()


def _run_async(coro: Coroutine) -> Any:
    try:
        return asyncio.run(coro)
    except HcAdminError as exc:
        raise click.ClickException(describe(exc)) from exc


def _split_network(args: Sequence[str]) -> Tuple[List[Path], Optional[NetworkType]]:
    """Split `[DNA...] [network TYPE]` trailing arguments."""
    args = list(args)
    network = None
    if "network" in args:
        position = args.index("network")
        rest = args[position + 1 :]
        args = args[:position]
        if len(rest) != 1:
            raise click.BadParameter("expected exactly one network type after 'network'")
        try:
            network = NetworkType(rest[0])
        except ValueError:
            choices = "|".join(n.value for n in NetworkType)
            raise click.BadParameter(f"unknown network '{rest[0]}' (choose {choices})")

    dnas = []
    for arg in args:
        path = Path(arg)
        if not path.is_file():
            raise click.BadParameter(f"DNA file '{arg}' does not exist")
        dnas.append(path.resolve())
    return dnas or find_dnas(), network


@click.group(help="Create, run and administer local holochain conductor setups.")
@click.option("-v", "--verbose", is_flag=True, help="Log debug output to the console.")
@click.option(
    "--holochain-path",
    envvar=constants.HOLOCHAIN_PATH_ENV_VAR,
    default=constants.HOLOCHAIN_PATH,
    show_default=True,
    help="Conductor binary to launch.",
)
@click.option(
    "--launch-timeout",
    envvar=constants.LAUNCH_TIMEOUT_ENV_VAR,
    type=float,
    default=constants.LAUNCH_TIMEOUT_SECONDS,
    show_default=True,
    help="Seconds to wait for a conductor to report its admin port.",
)
@click.option(
    "--root",
    type=click.Path(file_okay=False, path_type=Path),
    default=".",
    help="Directory holding the .hc manifest.",
)
@click.pass_context
def cli(ctx: click.Context, verbose: bool, holochain_path: str, launch_timeout: float, root: Path) -> None:
    """Root command for hc."""
    setup_logging(console_level=logging.DEBUG if verbose else logging.WARNING)
    ctx.obj = Dispatcher(SetupRegistry(root), ProcessLauncher(holochain_path, launch_timeout))


@cli.command()
@click.option("-a", "--app-id", default=constants.DEFAULT_APP_ID, show_default=True, help="Installed app id.")
@click.option("-n", "--num", "num", type=click.IntRange(min=1), default=1, show_default=True)
@click.option(
    "--setups-dir",
    type=click.Path(file_okay=False, path_type=Path),
    help="Parent directory for new setups (defaults to the system temp dir).",
)
@click.argument("args", nargs=-1)
@click.pass_obj
def generate(
    dispatcher: Dispatcher, app_id: str, num: int, setups_dir: Optional[Path], args: Tuple[str, ...]
) -> None:
    """Generate setups: [DNA...] [network quic|mem]."""
    dnas, network = _split_network(args)
    created = _run_async(
        dispatcher.generate(dnas, num=num, app_id=app_id, network=network, root=setups_dir)
    )
    for entry in created:
        msg(f"Created setup {entry.index}: {entry.path}")


@cli.command()
@click.option("-i", "--indices", type=INT_LIST, help="Setups to run, e.g. 0,2 (default all).")
@click.option("-p", "--force-admin-ports", type=INT_LIST, default="", help="Admin ports, in index order.")
@click.option(
    "-n", "--num", "num", type=click.IntRange(min=1), default=1, show_default=True,
    help="Setups to generate when none exist.",
)
@click.option("-a", "--app-id", default=constants.DEFAULT_APP_ID, show_default=True, help="Installed app id.")
@click.option(
    "--setups-dir",
    type=click.Path(file_okay=False, path_type=Path),
    help="Parent directory for generated setups.",
)
@click.argument("args", nargs=-1)
@click.pass_obj
def run(
    dispatcher: Dispatcher,
    indices: Optional[List[int]],
    force_admin_ports: List[int],
    num: int,
    app_id: str,
    setups_dir: Optional[Path],
    args: Tuple[str, ...],
) -> None:
    """Run setups until interrupted; generates `-n` setups when none exist."""
    dnas, network = _split_network(args)

    def started(infos) -> None:
        click.echo(conductor_table(infos))
        if all(info.status is SetupStatus.FAILED for info in infos):
            return
        msg("Conductors running, press Ctrl-C to stop")

    try:
        infos = _run_async(
            dispatcher.run(
                indices,
                forced_ports=force_admin_ports,
                on_started=started,
                dnas=dnas,
                network=network,
                num=num,
                app_id=app_id,
                root=setups_dir,
            )
        )
    except KeyboardInterrupt:
        msg("Stopped conductors")
        return
    failed = [info for info in infos if info.status is SetupStatus.FAILED]
    if failed:
        raise click.ClickException(
            "; ".join(f"setup {info.index} ({info.path}): {info.error}" for info in failed)
        )


@cli.group()
@click.option("-i", "--indices", type=INT_LIST, help="Setups to call, e.g. 0,2 (default the only one).")
@click.option("-r", "--running", type=INT_LIST, default="", help="Admin ports of already running conductors.")
@click.option("-p", "--force-admin-ports", type=INT_LIST, default="", help="Admin ports, in index order.")
@click.pass_context
def call(
    ctx: click.Context,
    indices: Optional[List[int]],
    running: List[int],
    force_admin_ports: List[int],
) -> None:
    """Make an admin request, launching the setup if needed."""
    ctx.obj = {
        "dispatcher": ctx.obj,
        "indices": indices,
        "running": running,
        "forced_ports": force_admin_ports,
    }


def _call(options: Dict[str, Any], request: AdminRequest) -> None:
    dispatcher: Dispatcher = options["dispatcher"]
    results = _run_async(
        dispatcher.call(
            request,
            indices=options["indices"],
            running_ports=options["running"],
            forced_ports=options["forced_ports"],
        )
    )
    errors = []
    for result in results:
        msg(f"{result.target} (admin port {result.port}):")
        click.echo(json.dumps(result.response.model_dump(mode="json"), indent=2))
        if result.response.is_error:
            errors.append(result.target)
    if errors:
        raise click.ClickException(f"Conductor returned an error for {', '.join(errors)}")


@call.command("add-admin-ws")
@click.argument("port", type=int)
@click.pass_obj
def call_add_admin_ws(options: Dict[str, Any], port: int) -> None:
    """Add an admin websocket interface."""
    _call(options, calls.add_admin_ws(port))


@call.command("add-app-ws")
@click.argument("port", type=int)
@click.pass_obj
def call_add_app_ws(options: Dict[str, Any], port: int) -> None:
    """Attach an app websocket interface."""
    _call(options, calls.add_app_ws(port))


@call.command("register-dna")
@click.argument("path", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--uuid", help="Override the DNA uuid.")
@click.pass_obj
def call_register_dna(options: Dict[str, Any], path: Path, uuid: Optional[str]) -> None:
    _call(options, calls.register_dna(path.resolve(), uuid))


@call.command("generate-agent-pub-key")
@click.pass_obj
def call_generate_agent_pub_key(options: Dict[str, Any]) -> None:
    _call(options, calls.generate_agent_pub_key())


@call.command("install-app")
@click.argument("app_id")
@click.argument("agent_key")
@click.argument("dnas", nargs=-1, required=True, type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.pass_obj
def call_install_app(options: Dict[str, Any], app_id: str, agent_key: str, dnas: Tuple[Path, ...]) -> None:
    """Install DNAs as an app for an existing agent key."""
    _call(options, calls.install_app(app_id, agent_key, [dna.resolve() for dna in dnas]))


@call.command("activate-app")
@click.argument("app_id")
@click.pass_obj
def call_activate_app(options: Dict[str, Any], app_id: str) -> None:
    _call(options, calls.activate_app(app_id))


@call.command("deactivate-app")
@click.argument("app_id")
@click.pass_obj
def call_deactivate_app(options: Dict[str, Any], app_id: str) -> None:
    _call(options, calls.deactivate_app(app_id))


@call.command("list-dnas")
@click.pass_obj
def call_list_dnas(options: Dict[str, Any]) -> None:
    _call(options, calls.list_dnas())


@call.command("list-cells")
@click.pass_obj
def call_list_cells(options: Dict[str, Any]) -> None:
    _call(options, calls.list_cells())


@call.command("list-active-apps")
@click.pass_obj
def call_list_active_apps(options: Dict[str, Any]) -> None:
    _call(options, calls.list_active_apps())


@call.command("dump-state")
@click.argument("cell_id")
@click.pass_obj
def call_dump_state(options: Dict[str, Any], cell_id: str) -> None:
    """Dump the state of a cell."""
    _call(options, calls.dump_state(cell_id))


@cli.command("list")
@click.pass_obj
def list_setups(dispatcher: Dispatcher) -> None:
    """List setups registered in the .hc manifest."""
    try:
        entries = dispatcher.list()
    except HcAdminError as exc:
        raise click.ClickException(describe(exc)) from exc
    msg(f"Setups contained in `{constants.MANIFEST_NAME}`")
    for entry in entries:
        click.echo(f"{entry.index}: {entry.path}")


@cli.command()
@click.argument("indices", nargs=-1, type=int)
@click.pass_obj
def clean(dispatcher: Dispatcher, indices: Tuple[int, ...]) -> None:
    """Remove setups (default all) and delete their directories."""
    try:
        removed = dispatcher.clean(list(indices))
    except HcAdminError as exc:
        raise click.ClickException(describe(exc)) from exc
    for entry in removed:
        msg(f"Removed setup {entry.index}: {entry.path}")


cli.add_command(generate, "gen")
cli.add_command(run, "r")


if __name__ == "__main__":
    cli()
