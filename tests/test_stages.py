from __future__ import annotations

from pathlib import Path

import pytest

from evl_installer.errors import BuildError, ConfigVerificationError, DependencyInstallError
from evl_installer.lib.config_file import assert_present
from evl_installer.pipeline import InstallCtx
from evl_installer.stages import (
    BuildKernelStage,
    ConfigureEnvironmentStage,
    InstallDependenciesStage,
    InstallLibevlStage,
    InstallXenomaiStage,
    TuneSystemStage,
)


def _ctx(host, **kw):
    return InstallCtx(cfg=host.config(), cpu_count=kw.pop("cpu_count", 8), **kw)


def _kernel_src(host) -> Path:
    return host.build / "linux-evl-build" / "linux-evl"


# -- dependencies -----------------------------------------------------------


def test_dependencies_install_headers_for_running_kernel(host, cmd_trace, monkeypatch):
    monkeypatch.setattr("evl_installer.stages.stage_10_install_dependencies.running_release", lambda: "6.1.0-18-amd64")

    InstallDependenciesStage().run(_ctx(host))

    assert cmd_trace.calls[0] == ["apt-get", "update"]
    assert cmd_trace.calls[1] == ["apt-get", "upgrade", "-y"]
    install = cmd_trace.calls[2]
    assert install[:3] == ["apt-get", "install", "-y"]
    assert "ninja-build" in install
    assert install[-1] == "linux-headers-6.1.0-18-amd64"


def test_dependency_failure_is_classified(host, cmd_trace):
    cmd_trace.fail_on = lambda argv: argv[:2] == ["apt-get", "install"]

    with pytest.raises(DependencyInstallError):
        InstallDependenciesStage().run(_ctx(host))


# -- kernel -----------------------------------------------------------------


def test_kernel_stage_configures_then_builds(host, cmd_trace):
    BuildKernelStage().run(_ctx(host))

    src = _kernel_src(host)
    dot_config = (src / ".config").read_text()
    assert "CONFIG_EVL=y\n" in dot_config
    assert "CONFIG_EVL_LATENCY_USER=y\n" in dot_config
    assert "CONFIG_PREEMPT_RT=y\n" in dot_config
    assert "CONFIG_RCU_BOOST_DELAY=500\n" in dot_config
    assert "# CONFIG_CPU_IDLE is not set\n" in dot_config
    assert "# CONFIG_PREEMPT_VOLUNTARY is not set\n" in dot_config
    assert dot_config.count("CONFIG_NO_HZ_FULL") == 1
    assert_present(str(src / ".config"), {"CONFIG_EVL": "y", "CONFIG_CPU_ISOLATION": "y"})

    assert cmd_trace.calls[0][:4] == ["git", "clone", "--depth", "1"]
    assert ["make", "-j4"] in cmd_trace.calls
    assert ["make", "-j4", "modules"] in cmd_trace.calls
    assert cmd_trace.index(["make", "olddefconfig"]) < cmd_trace.index(["make", "-j4"])
    assert cmd_trace.calls[-3:] == [
        ["make", "-s", "kernelrelease"],
        ["update-initramfs", "-c", "-k", "6.6.50-evl"],
        ["update-grub"],
    ]


def test_kernel_config_gate_blocks_build(host, cmd_trace):
    def olddefconfig_drops_evl(argv, cwd):
        if argv == ["make", "olddefconfig"]:
            p = Path(cwd) / ".config"
            p.write_text(p.read_text().replace("CONFIG_EVL=y\n", ""))

    cmd_trace.hooks.append(olddefconfig_drops_evl)

    with pytest.raises(ConfigVerificationError) as exc:
        BuildKernelStage().run(_ctx(host))

    assert exc.value.missing == ["CONFIG_EVL=y"]
    assert not any(c[:2] == ["make", "-j4"] for c in cmd_trace.calls)


def test_kernel_defconfig_when_no_running_config(host, cmd_trace, monkeypatch):
    monkeypatch.setattr("evl_installer.lib.kernel.running_release", lambda: "no-such-release")

    def defconfig(argv, cwd):
        if argv == ["make", "defconfig"]:
            (Path(cwd) / ".config").write_text("CONFIG_A=y\n")

    cmd_trace.hooks.append(defconfig)

    BuildKernelStage().run(_ctx(host, cpu_count=2))

    assert ["make", "defconfig"] in cmd_trace.calls
    assert ["make", "-j2"] in cmd_trace.calls


def test_kernel_build_failure_is_build_error(host, cmd_trace):
    cmd_trace.fail_on = lambda argv: argv == ["make", "-j4"]

    with pytest.raises(BuildError):
        BuildKernelStage().run(_ctx(host))

    assert ["make", "modules_install"] not in cmd_trace.calls


def test_existing_checkout_is_reused(host, cmd_trace):
    (_kernel_src(host) / ".git").mkdir(parents=True)
    BuildKernelStage().run(_ctx(host))
    assert not any(c[:2] == ["git", "clone"] for c in cmd_trace.calls)


def test_kernel_dry_run_writes_nothing(host, cmd_trace):
    BuildKernelStage().run(_ctx(host, dry_run=True))
    assert not (host.build / "linux-evl-build").exists()


# -- libevl / xenomai -------------------------------------------------------


def test_libevl_build_and_install(host, cmd_trace):
    InstallLibevlStage().run(_ctx(host))

    prefix = f"PREFIX={host.root / 'usr/local'}"
    assert cmd_trace.calls[1:] == [["make", prefix], ["make", prefix, "install"], ["ldconfig"]]


def test_xenomai_cmake_ninja(host, cmd_trace):
    InstallXenomaiStage().run(_ctx(host))

    assert ["git", "checkout", "v4.2.0"] in cmd_trace.calls
    cmake = next(c for c in cmd_trace.calls if c[0] == "cmake")
    assert cmake[:3] == ["cmake", "-G", "Ninja"]
    assert "-DXENO_ENABLE_TESTS=ON" in cmake
    assert cmake[-1] == ".."
    assert cmd_trace.calls[-3:] == [["ninja"], ["ninja", "install"], ["ldconfig"]]
    assert (host.build / "xenomai4-build" / "xenomai4" / "build").is_dir()


# -- environment ------------------------------------------------------------


def test_environment_block_written_once(host, cmd_trace, monkeypatch):
    monkeypatch.setenv("SUDO_USER", "alice")
    stage = ConfigureEnvironmentStage()

    stage.run(_ctx(host))
    first = host.read("etc/profile.d/xenomai4.sh")
    stage.run(_ctx(host))

    assert host.read("etc/profile.d/xenomai4.sh") == first
    assert first.splitlines() == [
        f'export XENOMAI_ROOT_DIR="{host.xenomai_root}"',
        'export PATH="$XENOMAI_ROOT_DIR/bin:$PATH"',
        'export LD_LIBRARY_PATH="$XENOMAI_ROOT_DIR/lib:$LD_LIBRARY_PATH"',
        'export PKG_CONFIG_PATH="$XENOMAI_ROOT_DIR/lib/pkgconfig:$PKG_CONFIG_PATH"',
    ]
    assert ["groupadd", "evl"] in cmd_trace.calls
    assert ["usermod", "-aG", "evl", "alice"] in cmd_trace.calls
    assert (host.etc / "xenomai4").is_dir()


def test_environment_usermod_failure_is_tolerated(host, cmd_trace, monkeypatch):
    monkeypatch.setenv("SUDO_USER", "ghost")
    cmd_trace.fail_on = lambda argv: argv[0] == "usermod"

    ConfigureEnvironmentStage().run(_ctx(host))


def test_environment_groupadd_failure_fails_stage(host, cmd_trace, monkeypatch):
    monkeypatch.delenv("SUDO_USER", raising=False)
    cmd_trace.fail_on = lambda argv: argv[0] == "groupadd"

    with pytest.raises(BuildError):
        ConfigureEnvironmentStage().run(_ctx(host))


# -- tuning -----------------------------------------------------------------


def test_tuning_edits_files_and_knobs(host, cmd_trace):
    TuneSystemStage().run(_ctx(host))

    sysctl = host.read("etc/sysctl.conf")
    assert "kernel.sched_rt_runtime_us = 950000\n" in sysctl
    assert "kernel.nmi_watchdog = 0\n" in sysctl
    assert len(sysctl.splitlines()) == 6

    grub = host.read("etc/default/grub")
    assert 'GRUB_CMDLINE_LINUX="mitigations=off isolcpus=1-3 rcu_nocbs=1-3 nohz_full=1-3"\n' in grub
    assert 'GRUB_CMDLINE_LINUX_DEFAULT="quiet"\n' in grub

    for cpu in ("cpu0", "cpu1"):
        assert host.read(f"sys/devices/system/cpu/{cpu}/cpufreq/scaling_governor") == "performance"
    assert host.read("sys/devices/system/cpu/smt/control") == "off"
    assert host.read("proc/sys/kernel/watchdog") == "0"
    assert cmd_trace.calls[-1] == ["update-grub"]


def test_tuning_rerun_is_idempotent(host, cmd_trace):
    TuneSystemStage().run(_ctx(host))
    sysctl, grub = host.read("etc/sysctl.conf"), host.read("etc/default/grub")

    TuneSystemStage().run(_ctx(host))

    assert host.read("etc/sysctl.conf") == sysctl
    assert host.read("etc/default/grub") == grub


def test_tuning_tolerates_missing_knobs_and_sysctl_errors(host, cmd_trace):
    (host.sys / "devices/system/cpu/smt/control").unlink()
    cmd_trace.fail_on = lambda argv: argv[0] == "sysctl"

    TuneSystemStage().run(_ctx(host))

    assert not (host.sys / "devices/system/cpu/smt/control").exists()
    assert not (host.sys / "devices/system/cpu/intel_pstate/no_turbo").exists()


def test_tuning_update_grub_is_required(host, cmd_trace):
    cmd_trace.fail_on = lambda argv: argv == ["update-grub"]

    with pytest.raises(BuildError):
        TuneSystemStage().run(_ctx(host))
