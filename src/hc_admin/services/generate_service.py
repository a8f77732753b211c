"""Creates new setups and installs apps into them."""

from __future__ import annotations

import logging
import shutil
import tempfile
from pathlib import Path
from typing import List, Optional, Sequence

from hc_admin import constants
from hc_admin.clients.admin import CmdRunner, expect_variant
from hc_admin.clients.launcher import ProcessLauncher
from hc_admin.clients.registry import SetupRegistry
from hc_admin.errors import SetupIOError
from hc_admin.models.enums import NetworkType
from hc_admin.models.setup import SetupEntry
from hc_admin.services import calls
from hc_admin.utils.conductor_config import write_config

LOG = logging.getLogger(__name__)


class GenerateService:
    """Generates setup directories and registers them."""

    def __init__(self, registry: SetupRegistry, launcher: ProcessLauncher) -> None:
        self.registry = registry
        self.launcher = launcher

    async def generate(
        self,
        dnas: Sequence[Path] = (),
        num: int = 1,
        app_id: str = constants.DEFAULT_APP_ID,
        network: Optional[NetworkType] = None,
        root: Optional[Path] = None,
    ) -> List[SetupEntry]:
        """Create `num` setups; with DNAs, install them as `app_id` in each.

        A setup is registered only once its install succeeded. A failed install
        removes its directory and stops the batch; earlier setups stay registered.
        """
        created = []
        for _ in range(num):
            setup_path = self.create_setup(network, root)
            if dnas:
                try:
                    await self.install_app(setup_path, app_id, dnas)
                except BaseException:
                    LOG.warning("Discarding setup %s after failed install", setup_path)
                    shutil.rmtree(setup_path, ignore_errors=True)
                    raise
            index = self.registry.append(setup_path)
            created.append(SetupEntry(index=index, path=setup_path))
        return created

    def create_setup(self, network: Optional[NetworkType] = None, root: Optional[Path] = None) -> Path:
        try:
            if root is not None:
                root.mkdir(parents=True, exist_ok=True)
            setup_path = Path(tempfile.mkdtemp(prefix=constants.SETUP_PREFIX, dir=root)).resolve()
        except OSError as exc:
            parent = root or tempfile.gettempdir()
            raise SetupIOError(f"Unable to create setup directory under {parent}: {exc}") from exc
        write_config(setup_path, network)
        LOG.info("Created setup %s", setup_path)
        return setup_path

    async def install_app(self, setup_path: Path, app_id: str, dnas: Sequence[Path]) -> None:
        """Boot the setup's conductor long enough to install and activate an app."""
        conductor = await self.launcher.launch(setup_path)
        try:
            async with await CmdRunner.connect(conductor.port) as cmd:
                response = await cmd.command(calls.generate_agent_pub_key())
                agent_key = expect_variant(response, "agent_pub_key_generated", str(setup_path))
                response = await cmd.command(calls.install_app(app_id, agent_key, dnas))
                expect_variant(response, "app_installed", str(setup_path))
                response = await cmd.command(calls.activate_app(app_id))
                expect_variant(response, "app_activated", str(setup_path))
            LOG.info("Installed app %s with %d dna(s) into %s", app_id, len(dnas), setup_path)
        finally:
            await conductor.terminate()
