import os
import stat
from pathlib import Path

import pytest

from hc_admin.clients.registry import SetupRegistry
from hc_admin.errors import InvalidIndexError, SetupIOError


def test_missing_manifest_is_empty(registry):
    assert not registry.path.exists()
    assert registry.list() == []


def test_append_then_list_round_trip(registry, workdir):
    first = registry.append(Path("/tmp/hc-a"))
    second = registry.append(Path("/tmp/hc-b"))

    assert (first, second) == (0, 1)
    entries = registry.list()
    assert [(e.index, e.path) for e in entries] == [(0, Path("/tmp/hc-a")), (1, Path("/tmp/hc-b"))]

    reread = SetupRegistry(workdir)
    assert [e.path for e in reread.list()] == [Path("/tmp/hc-a"), Path("/tmp/hc-b")]
    assert registry.path.read_text(encoding="utf-8") == "/tmp/hc-a\n/tmp/hc-b\n"


def test_append_does_not_deduplicate(registry):
    registry.append(Path("/tmp/hc-a"))
    index = registry.append(Path("/tmp/hc-a"))

    assert index == 1
    assert [e.path for e in registry.list()] == [Path("/tmp/hc-a")] * 2


def test_remove_shifts_later_indices(registry):
    for name in ("a", "b", "c", "d"):
        registry.append(Path(f"/tmp/hc-{name}"))

    removed = registry.remove({1})

    assert [(e.index, e.path) for e in removed] == [(1, Path("/tmp/hc-b"))]
    assert [(e.index, e.path.name) for e in registry.list()] == [
        (0, "hc-a"),
        (1, "hc-c"),
        (2, "hc-d"),
    ]


def test_remove_with_invalid_index_leaves_manifest_untouched(registry):
    registry.append(Path("/tmp/hc-a"))
    registry.append(Path("/tmp/hc-b"))
    before = registry.path.read_bytes()

    with pytest.raises(InvalidIndexError) as excinfo:
        registry.remove({0, 5})

    assert excinfo.value.indices == [5]
    assert excinfo.value.size == 2
    assert registry.path.read_bytes() == before


def test_negative_index_is_invalid(registry):
    registry.append(Path("/tmp/hc-a"))

    with pytest.raises(InvalidIndexError):
        registry.remove([-1])
    assert len(registry.list()) == 1


def test_remove_all_deletes_manifest(registry):
    registry.append(Path("/tmp/hc-a"))
    registry.append(Path("/tmp/hc-b"))

    removed = registry.remove_all()

    assert len(removed) == 2
    assert not registry.path.exists()
    assert registry.list() == []


def test_blank_lines_are_ignored(registry):
    registry.path.write_text("/tmp/hc-a\n\n/tmp/hc-b\n", encoding="utf-8")

    assert [e.index for e in registry.list()] == [0, 1]


def test_unreadable_manifest_raises_io_error(registry):
    registry.path.mkdir()

    with pytest.raises(SetupIOError):
        registry.list()


def test_writes_leave_no_temp_files(registry, workdir):
    registry.append(Path("/tmp/hc-a"))
    registry.append(Path("/tmp/hc-b"))
    registry.remove([0])

    assert sorted(p.name for p in workdir.iterdir()) == [".hc"]


def test_rewrite_keeps_manifest_mode(registry):
    registry.append(Path("/tmp/hc-a"))
    os.chmod(registry.path, 0o644)

    registry.append(Path("/tmp/hc-b"))
    registry.remove([0])

    assert stat.S_IMODE(registry.path.stat().st_mode) == 0o644


def test_new_manifest_follows_umask(registry):
    old = os.umask(0o022)
    try:
        registry.append(Path("/tmp/hc-a"))
    finally:
        os.umask(old)

    assert stat.S_IMODE(registry.path.stat().st_mode) == 0o644
