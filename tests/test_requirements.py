from __future__ import annotations

import pytest

from evl_installer.config import GIB, RequirementSpec
from evl_installer.errors import PrerequisiteError
from evl_installer.requirements import HostFacts, check_requirements, gather_host_facts


def _facts(**kw) -> HostFacts:
    base = dict(is_root=True, free_disk_bytes=40 * GIB, memory_bytes=16 * GIB, cpu_count=8, os_marker_present=True)
    base.update(kw)
    return HostFacts(**base)


def test_healthy_host_passes_without_warnings():
    assert check_requirements(RequirementSpec(), _facts()) == []


def test_insufficient_disk_space():
    with pytest.raises(PrerequisiteError, match="insufficient disk space"):
        check_requirements(RequirementSpec(min_disk_bytes=15 * GIB), _facts(free_disk_bytes=10 * GIB))


def test_non_root_is_rejected():
    with pytest.raises(PrerequisiteError, match="root"):
        check_requirements(RequirementSpec(), _facts(is_root=False))


def test_non_root_still_reports_disk_and_os_problems():
    with pytest.raises(PrerequisiteError) as exc:
        check_requirements(RequirementSpec(), _facts(is_root=False, free_disk_bytes=0, os_marker_present=False))

    msg = str(exc.value)
    assert msg.startswith("This installer must be run as root")
    assert "insufficient disk space" in msg
    assert "Debian" in msg


def test_non_debian_host_is_rejected():
    with pytest.raises(PrerequisiteError, match="Debian"):
        check_requirements(RequirementSpec(), _facts(os_marker_present=False))


def test_all_fatal_problems_are_reported_together():
    with pytest.raises(PrerequisiteError) as exc:
        check_requirements(RequirementSpec(), _facts(free_disk_bytes=GIB, os_marker_present=False))
    assert "insufficient disk space" in str(exc.value)
    assert "Debian" in str(exc.value)


def test_low_memory_is_only_a_warning(caplog):
    warnings = check_requirements(RequirementSpec(), _facts(memory_bytes=2 * GIB))

    assert len(warnings) == 1
    assert "Low memory" in warnings[0]
    assert any(r.levelname == "WARNING" for r in caplog.records)


def test_gather_reads_meminfo_and_marker(tmp_path):
    (tmp_path / "meminfo").write_text("MemTotal:        8388608 kB\nMemFree: 1 kB\n", encoding="utf-8")
    marker = tmp_path / "debian_version"
    marker.write_text("12.5\n", encoding="utf-8")

    facts = gather_host_facts(RequirementSpec(os_marker=str(marker), disk_path=str(tmp_path)), proc_root=str(tmp_path))

    assert facts.memory_bytes == 8 * GIB
    assert facts.os_marker_present
    assert facts.free_disk_bytes > 0
    assert facts.cpu_count >= 1
