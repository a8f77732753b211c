import logging
import socket
import stat
import sys
from pathlib import Path

import pytest

from hc_admin import constants
from hc_admin.clients.launcher import ProcessLauncher
from hc_admin.clients.registry import SetupRegistry
from hc_admin.models.enums import NetworkType
from hc_admin.services.dispatcher import Dispatcher
from hc_admin.utils.conductor_config import write_config

FAKE_CONDUCTOR = Path(__file__).with_name("fake_conductor.py")


@pytest.fixture(autouse=True)
def temp_runtime_dirs(tmp_path, monkeypatch):
    """Redirect runtime directories into a temp location."""
    home = tmp_path / "runtime" / "home"
    monkeypatch.setattr(constants, "HOME_DIR", home)
    monkeypatch.setattr(constants, "LOG_DIR", home / "logs")
    monkeypatch.delenv("FAKE_CONDUCTOR_MODE", raising=False)
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    yield
    root.handlers[:] = handlers
    root.setLevel(level)


@pytest.fixture
def workdir(tmp_path) -> Path:
    path = tmp_path / "work"
    path.mkdir()
    return path


@pytest.fixture
def registry(workdir) -> SetupRegistry:
    return SetupRegistry(workdir)


@pytest.fixture
def fake_holochain(tmp_path) -> Path:
    """Executable that runs the fake conductor with the test interpreter."""
    script = tmp_path / "bin" / "holochain"
    script.parent.mkdir()
    script.write_text(f'#!/bin/sh\nexec "{sys.executable}" "{FAKE_CONDUCTOR}" "$@"\n')
    script.chmod(script.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
    return script


@pytest.fixture
def launcher(fake_holochain) -> ProcessLauncher:
    return ProcessLauncher(fake_holochain, timeout=20)


@pytest.fixture
def make_setup(tmp_path):
    """Create setup directories with a conductor config."""
    counter = iter(range(1000))

    def _make(network: NetworkType | None = None) -> Path:
        path = tmp_path / "setups" / f"setup-{next(counter)}"
        path.mkdir(parents=True)
        write_config(path, network)
        return path

    return _make


@pytest.fixture
def dispatcher(registry, launcher) -> Dispatcher:
    return Dispatcher(registry, launcher)


def free_port() -> int:
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        sock.bind(("127.0.0.1", 0))
        return sock.getsockname()[1]


@pytest.fixture
def unused_port() -> int:
    return free_port()
