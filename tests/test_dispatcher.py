import asyncio
import os
import signal
from pathlib import Path

import pytest

from hc_admin.clients.admin import CmdRunner
from hc_admin.errors import (
    AmbiguousSelectionError,
    InvalidIndexError,
    LaunchTimeoutError,
    SetupIOError,
)
from hc_admin.models.admin import AdminRequest
from hc_admin.models.enums import SetupStatus
from hc_admin.services import calls


def test_select_defaults_to_all(dispatcher, registry):
    registry.append(Path("/tmp/hc-a"))
    registry.append(Path("/tmp/hc-b"))

    assert [e.index for e in dispatcher.select()] == [0, 1]
    assert [e.index for e in dispatcher.select([1])] == [1]
    with pytest.raises(InvalidIndexError):
        dispatcher.select([0, 2])


def test_call_selection_requires_single_setup(dispatcher, registry):
    with pytest.raises(InvalidIndexError):
        dispatcher.select_for_call()

    registry.append(Path("/tmp/hc-a"))
    assert [e.index for e in dispatcher.select_for_call()] == [0]

    registry.append(Path("/tmp/hc-b"))
    with pytest.raises(AmbiguousSelectionError):
        dispatcher.select_for_call()
    assert [e.index for e in dispatcher.select_for_call([1])] == [1]


def test_clean_selected_removes_directories(dispatcher, registry, make_setup):
    setups = [make_setup() for _ in range(3)]
    for setup in setups:
        registry.append(setup)

    removed = dispatcher.clean([0, 2])

    assert [e.path for e in removed] == [setups[0], setups[2]]
    assert not setups[0].exists() and not setups[2].exists()
    assert setups[1].exists()
    assert [(e.index, e.path) for e in registry.list()] == [(0, setups[1])]


def test_clean_invalid_index_changes_nothing(dispatcher, registry, make_setup):
    setup = make_setup()
    registry.append(setup)
    before = registry.path.read_bytes()

    with pytest.raises(InvalidIndexError):
        dispatcher.clean([0, 1])

    assert setup.exists()
    assert registry.path.read_bytes() == before


def test_clean_all_tolerates_missing_directories(dispatcher, registry, make_setup):
    registry.append(make_setup())
    registry.append(Path("/nonexistent/hc-gone"))

    removed = dispatcher.clean()

    assert len(removed) == 2
    assert not registry.path.exists()


def test_clean_reports_undeletable_directory(dispatcher, registry, tmp_path, monkeypatch):
    setup = tmp_path / "stuck"
    setup.mkdir()
    registry.append(setup)

    def refuse(path):
        raise PermissionError("denied")

    monkeypatch.setattr("hc_admin.services.dispatcher.shutil.rmtree", refuse)

    with pytest.raises(SetupIOError) as excinfo:
        dispatcher.clean()
    assert str(setup) in str(excinfo.value)


def test_call_launches_and_stops_conductor(dispatcher, registry, make_setup):
    setup = make_setup()
    registry.append(setup)

    results = asyncio.run(dispatcher.call(calls.list_cells()))

    assert len(results) == 1
    assert results[0].target == str(setup)
    assert results[0].response.type == "cell_ids_listed"
    assert not results[0].response.is_error


def test_call_failed_launch_is_reported(dispatcher, registry, make_setup, monkeypatch):
    monkeypatch.setenv("FAKE_CONDUCTOR_MODE", "crash")
    registry.append(make_setup())

    with pytest.raises(LaunchTimeoutError):
        asyncio.run(dispatcher.call(calls.list_cells()))


def test_run_launches_setups_concurrently(dispatcher, registry, make_setup):
    registry.append(make_setup())
    registry.append(make_setup())

    async def scenario():
        stop = asyncio.Event()
        started = asyncio.Event()
        seen = []

        def on_started(infos):
            seen.extend(infos)
            started.set()

        task = asyncio.create_task(dispatcher.run(stop_event=stop, on_started=on_started))
        await asyncio.wait_for(started.wait(), timeout=30)

        first = await CmdRunner.connect(seen[0].port)
        second = await CmdRunner.connect(seen[1].port)
        await first.aclose()
        response = await second.command(AdminRequest(type="list_cell_ids"))
        await second.aclose()

        stop.set()
        infos = await asyncio.wait_for(task, timeout=30)
        return seen, response, infos

    seen, response, infos = asyncio.run(scenario())

    assert [info.status for info in seen] == [SetupStatus.RUNNING, SetupStatus.RUNNING]
    assert seen[0].port != seen[1].port
    assert response.type == "cell_ids_listed"
    assert [info.index for info in infos] == [0, 1]


def test_run_reports_failures_per_setup(dispatcher, registry, make_setup, tmp_path):
    registry.append(make_setup())
    registry.append(tmp_path / "missing-setup")

    async def scenario():
        stop = asyncio.Event()

        def on_started(infos):
            stop.set()

        return await dispatcher.run(stop_event=stop, on_started=on_started)

    infos = asyncio.run(scenario())

    assert infos[0].status is SetupStatus.RUNNING
    assert infos[1].status is SetupStatus.FAILED
    assert "ProcessSpawnError" in infos[1].error


def test_run_with_invalid_index_launches_nothing(dispatcher, registry, make_setup):
    registry.append(make_setup())

    with pytest.raises(InvalidIndexError):
        asyncio.run(dispatcher.run([0, 3]))


def test_run_returns_when_conductor_exits(dispatcher, registry, make_setup):
    registry.append(make_setup())

    async def scenario():
        def on_started(infos):
            os.kill(infos[0].pid, signal.SIGTERM)

        return await asyncio.wait_for(dispatcher.run(on_started=on_started), timeout=30)

    infos = asyncio.run(scenario())

    assert infos[0].status is SetupStatus.EXITED


def test_generate_run_call_clean_scenario(dispatcher, registry, workdir):
    dna = workdir / "my-app.dna.gz"
    dna.write_bytes(b"dna")

    async def scenario():
        created = await dispatcher.generate([dna], root=workdir / "setups")
        stop = asyncio.Event()
        started = asyncio.Event()
        ports = []

        def on_started(infos):
            ports.extend(info.port for info in infos)
            started.set()

        task = asyncio.create_task(dispatcher.run(stop_event=stop, on_started=on_started))
        await asyncio.wait_for(started.wait(), timeout=30)
        results = await dispatcher.call(calls.list_cells(), running_ports=ports)
        stop.set()
        await asyncio.wait_for(task, timeout=30)
        return created, results

    created, results = asyncio.run(scenario())

    assert len(created) == 1
    assert [e.path for e in registry.list()] == [created[0].path]
    assert not results[0].response.is_error

    dispatcher.clean()

    assert registry.list() == []
    assert not registry.path.exists()
    assert not created[0].path.exists()


def test_call_with_forced_port(dispatcher, registry, make_setup, unused_port):
    registry.append(make_setup())

    results = asyncio.run(dispatcher.call(calls.list_dnas(), forced_ports=[unused_port]))

    assert results[0].port == unused_port
    assert results[0].response.type == "dnas_listed"
