"""
test_prefs.py — persisted preference store and the cancellable timer.
"""
import asyncio
import json

import pytest

from audecode import JsonPreferences, SessionController, StaticPlayer
from audecode.prefs import default_prefs_path
from audecode.timer import PeriodicTimer


# ─────────────────────────────────────────────────────────────────────────────
# Preferences
# ─────────────────────────────────────────────────────────────────────────────

def test_missing_file_reads_defaults(tmp_path):
    prefs = JsonPreferences(tmp_path / "prefs.json")
    assert prefs.get("audecoderEnabled", True) is True


def test_set_persists_across_instances(tmp_path):
    path = tmp_path / "nested" / "prefs.json"
    JsonPreferences(path).set("audecoderEnabled", False)
    assert json.loads(path.read_text()) == {"audecoderEnabled": False}
    assert JsonPreferences(path).get("audecoderEnabled") is False


def test_corrupt_file_reads_defaults(tmp_path, caplog):
    path = tmp_path / "prefs.json"
    path.write_text("{not json")
    with caplog.at_level("WARNING", logger="audecode.prefs"):
        prefs = JsonPreferences(path)
    assert prefs.get("audecoderEnabled", True) is True
    assert caplog.records


def test_non_object_file_reads_defaults(tmp_path):
    path = tmp_path / "prefs.json"
    path.write_text("[1, 2]")
    assert JsonPreferences(path).get("audecoderEnabled") is None


def test_env_overrides_location(tmp_path, monkeypatch):
    monkeypatch.setenv("AUDECODE_PREFS", str(tmp_path / "custom.json"))
    assert default_prefs_path() == tmp_path / "custom.json"
    assert JsonPreferences().path == tmp_path / "custom.json"


def test_controller_reads_and_writes_file(tmp_path):
    path = tmp_path / "prefs.json"
    path.write_text(json.dumps({"audecoderEnabled": False}))

    async def scenario():
        ctrl = SessionController(StaticPlayer(), prefs=JsonPreferences(path))
        was  = ctrl.enabled
        await ctrl.handle("enable")
        await ctrl.close()
        return was
    assert asyncio.run(scenario()) is False
    assert json.loads(path.read_text()) == {"audecoderEnabled": True}


# ─────────────────────────────────────────────────────────────────────────────
# Timer
# ─────────────────────────────────────────────────────────────────────────────

def test_timer_fires_until_cancelled():
    async def scenario():
        hits  = []

        async def cb():
            hits.append(1)

        timer = PeriodicTimer(0.01, cb)
        timer.start()
        timer.start()                 # second start is a no-op
        await asyncio.sleep(0.055)
        timer.cancel()
        count = len(hits)
        await asyncio.sleep(0.03)
        return count, len(hits), timer
    count, later, timer = asyncio.run(scenario())
    assert count >= 2
    assert later == count
    assert not timer.running


def test_timer_rejects_bad_interval():
    with pytest.raises(ValueError):
        PeriodicTimer(0, lambda: None)
