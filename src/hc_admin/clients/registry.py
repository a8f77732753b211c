"""Persisted registry of setup directories backed by the `.hc` manifest."""

from __future__ import annotations

import logging
import os
import stat
import tempfile
from pathlib import Path
from typing import Iterable, List, Optional

from hc_admin.errors import InvalidIndexError, SetupIOError
from hc_admin.models.setup import SetupEntry
from hc_admin.utils.pathing import manifest_path

LOG = logging.getLogger(__name__)


class SetupRegistry:
    """Ordered list of setup paths, one per manifest line.

    The manifest is re-read on every call and every mutation replaces the
    whole file, so a concurrent reader sees either the old or the new list.
    Indices are only stable between mutations.
    """

    def __init__(self, root: Optional[Path] = None) -> None:
        self.path = manifest_path(root)

    def list(self) -> List[SetupEntry]:
        """Return the registered setups with their current index."""
        return [SetupEntry(index=i, path=p) for i, p in enumerate(self._read())]

    def append(self, path: Path) -> int:
        """Register a setup as the last entry and return its index."""
        paths = self._read()
        paths.append(Path(path))
        self._write(paths)
        LOG.info("Registered setup %s at index %d", path, len(paths) - 1)
        return len(paths) - 1

    def remove(self, indices: Iterable[int]) -> List[SetupEntry]:
        """Drop the selected entries, all or nothing.

        Bounds are checked against the manifest as read at the start of the
        call; on any invalid index the file is left untouched.
        """
        selected = set(indices)
        paths = self._read()
        invalid = {i for i in selected if i < 0 or i >= len(paths)}
        if invalid:
            raise InvalidIndexError(invalid, len(paths))

        removed = [SetupEntry(index=i, path=p) for i, p in enumerate(paths) if i in selected]
        kept = [p for i, p in enumerate(paths) if i not in selected]
        self._write(kept)
        LOG.info("Removed %d setup(s) from %s", len(removed), self.path)
        return removed

    def remove_all(self) -> List[SetupEntry]:
        removed = self.list()
        self._write([])
        return removed

    def _read(self) -> List[Path]:
        try:
            text = self.path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return []
        except (OSError, UnicodeDecodeError) as exc:
            raise SetupIOError(f"Unable to read manifest {self.path}: {exc}") from exc
        return [Path(line) for line in text.splitlines() if line.strip()]

    def _write(self, paths: List[Path]) -> None:
        try:
            if not paths:
                self.path.unlink(missing_ok=True)
                return
            content = "".join(f"{p}\n" for p in paths)
            fd, tmp_name = tempfile.mkstemp(
                prefix=f"{self.path.name}.", suffix=".tmp", dir=self.path.parent
            )
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as handle:
                    handle.write(content)
                os.chmod(tmp_name, self._file_mode())
                os.replace(tmp_name, self.path)
            except BaseException:
                Path(tmp_name).unlink(missing_ok=True)
                raise
        except OSError as exc:
            raise SetupIOError(f"Unable to write manifest {self.path}: {exc}") from exc

    def _file_mode(self) -> int:
        # mkstemp creates 0600 files; keep the existing mode or follow the umask.
        try:
            return stat.S_IMODE(self.path.stat().st_mode)
        except FileNotFoundError:
            umask = os.umask(0)
            os.umask(umask)
            return 0o666 & ~umask
