from pathlib import Path

import numpy as np
import pytest

from tictactoe_cfr.checkpoint import CheckpointError, load, load_or_build, save
from tictactoe_cfr.cfr import train

from conftest import QUIET, midgame_starts


def _assert_same_session(a, b):
    assert a.trained_iterations == b.trained_iterations
    assert a.initial == b.initial
    assert a.states == b.states
    assert len(a.infosets) == len(b.infosets)
    for key, node in a.infosets.sorted_items():
        twin = b.infosets.get(key)
        assert twin is not None
        assert np.array_equal(node.legal, twin.legal)
        assert np.array_equal(node.regret_sum, twin.regret_sum)
        assert np.array_equal(node.strategy_sum, twin.strategy_sum)
        assert twin.regret_sum.dtype == np.float32


def test_save_load_round_trip(tmp_path: Path, quiet_session):
    for c in (0.5, 0.3, 0.1):
        train(quiet_session, c)
    path = tmp_path / "cfr.dat"
    save(quiet_session, path)
    restored = load(path)
    _assert_same_session(quiet_session, restored)
    # resumed training continues identically
    assert train(quiet_session, 0.05) == train(restored, 0.05)


def test_load_or_build_maps_and_saves_when_missing(tmp_path: Path):
    path = tmp_path / "nested" / "cfr.dat"
    session = load_or_build(path, midgame_starts(QUIET))
    assert path.exists()
    assert session.trained_iterations == 0
    assert len(session.infosets) == 0
    _assert_same_session(session, load(path))


def test_load_or_build_resumes_existing(tmp_path: Path, quiet_session):
    train(quiet_session, 0.2)
    path = tmp_path / "cfr.dat"
    save(quiet_session, path)
    # starts are ignored when a checkpoint exists
    resumed = load_or_build(path, starts=[])
    assert resumed.trained_iterations == 1
    _assert_same_session(quiet_session, resumed)


@pytest.mark.parametrize("payload", [b"", b"not a checkpoint", b"PK\x03\x04garbage"])
def test_unparsable_checkpoint_aborts_without_overwriting(tmp_path: Path, payload: bytes):
    path = tmp_path / "cfr.dat"
    path.write_bytes(payload)
    with pytest.raises(CheckpointError):
        load_or_build(path, midgame_starts(QUIET))
    assert path.read_bytes() == payload


def test_checkpoint_missing_arrays_is_unparsable(tmp_path: Path):
    path = tmp_path / "cfr.dat"
    with path.open("wb") as f:
        np.savez(f, format_version=np.array(1, dtype=np.uint32))
    before = path.read_bytes()
    with pytest.raises(CheckpointError):
        load(path)
    assert path.read_bytes() == before


def test_unreadable_checkpoint_path_aborts(tmp_path: Path):
    path = tmp_path / "cfr.dat"
    path.mkdir()
    with pytest.raises(CheckpointError):
        load_or_build(path, midgame_starts(QUIET))
    assert path.is_dir()


def test_save_failure_raises(tmp_path: Path, quiet_session):
    blocker = tmp_path / "file"
    blocker.write_text("x")
    with pytest.raises(CheckpointError):
        save(quiet_session, blocker / "cfr.dat")


def test_save_replaces_previous_checkpoint(tmp_path: Path, quiet_session):
    path = tmp_path / "cfr.dat"
    save(quiet_session, path)
    train(quiet_session, 0.3)
    save(quiet_session, path)
    assert load(path).trained_iterations == 1
    assert [p.name for p in tmp_path.iterdir()] == ["cfr.dat"]
