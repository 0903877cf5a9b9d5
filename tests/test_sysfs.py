from __future__ import annotations

from evl_installer.lib.sysfs import GOVERNOR_GLOB, PathGlob, write_knob


def test_glob_is_rescanned_on_each_iteration(host):
    governors = PathGlob(str(host.sys), GOVERNOR_GLOB)
    assert [p.parent.parent.name for p in governors] == ["cpu0", "cpu1"]

    host.write("sys/devices/system/cpu/cpu2/cpufreq/scaling_governor", "powersave\n")

    assert [p.parent.parent.name for p in governors] == ["cpu0", "cpu1", "cpu2"]


def test_glob_over_missing_root_is_empty(tmp_path):
    assert list(PathGlob(str(tmp_path / "nope"), GOVERNOR_GLOB)) == []


def test_write_knob_skips_absent_target(tmp_path):
    assert write_knob(tmp_path / "smt" / "control", "off") is False
    assert not (tmp_path / "smt").exists()


def test_write_knob_writes_existing_target(tmp_path):
    knob = tmp_path / "watchdog"
    knob.write_text("1\n")
    assert write_knob(knob, "0") is True
    assert knob.read_text() == "0"
