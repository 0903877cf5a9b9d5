"""Shared fixtures: a scratch host tree and a recording command runner."""

from __future__ import annotations

import importlib
import platform
from pathlib import Path
from typing import Callable, List, Optional

import pytest

from evl_installer.config import InstallerConfig
from evl_installer.errors import CommandError
from evl_installer.lib.command import CmdResult

PATCHED_MODULES = [
    "evl_installer.lib.git",
    "evl_installer.lib.pkg",
    "evl_installer.lib.kernel",
    "evl_installer.lib.bootloader",
    "evl_installer.stages.stage_30_install_libevl",
    "evl_installer.stages.stage_40_install_xenomai",
    "evl_installer.stages.stage_60_tune_system",
    "evl_installer.verify",
    "evl_installer.main",
]


class Host:
    def __init__(self, root: Path, build: Path):
        self.root = root
        self.build = build
        self.sys = root / "sys"
        self.proc = root / "proc"
        self.boot = root / "boot"
        self.etc = root / "etc"
        self.xenomai_root = root / "usr/local/xenomai4"

    def write(self, rel: str, text: str) -> Path:
        p = self.root / rel
        p.parent.mkdir(parents=True, exist_ok=True)
        p.write_text(text, encoding="utf-8")
        return p

    def read(self, rel: str) -> str:
        return (self.root / rel).read_text(encoding="utf-8")

    def config(self, **extra) -> InstallerConfig:
        raw = {
            "paths": {
                "sys_root": str(self.sys),
                "proc_root": str(self.proc),
                "boot_dir": str(self.boot),
                "sysctl_conf": str(self.etc / "sysctl.conf"),
                "grub_default": str(self.etc / "default/grub"),
                "profile_script": str(self.etc / "profile.d/xenomai4.sh"),
            },
            "kernel": {"build_dir": str(self.build / "linux-evl-build")},
            "libevl": {"build_dir": str(self.build / "libevl-build"), "prefix": str(self.root / "usr/local")},
            "xenomai": {
                "build_dir": str(self.build / "xenomai4-build"),
                "root_dir": str(self.xenomai_root),
                "etc_dir": str(self.etc / "xenomai4"),
            },
        }
        for section, values in extra.items():
            if isinstance(values, dict):
                raw.setdefault(section, {}).update(values)
            else:
                raw[section] = values
        return InstallerConfig(raw=raw)


@pytest.fixture
def host(tmp_path: Path) -> Host:
    h = Host(tmp_path / "host", tmp_path / "build")
    for cpu in ("cpu0", "cpu1"):
        h.write(f"sys/devices/system/cpu/{cpu}/cpufreq/scaling_governor", "powersave\n")
    h.write("sys/devices/system/cpu/smt/control", "on\n")
    h.write("sys/devices/system/cpu/smt/active", "1\n")
    h.write("proc/sys/kernel/watchdog", "1\n")
    h.write("proc/sys/kernel/osrelease", "6.6.50-evl\n")
    h.write("proc/version", "Linux version 6.6.50-evl (root@build) #1 SMP PREEMPT_RT EVL\n")
    h.write("proc/cmdline", "BOOT_IMAGE=/vmlinuz-6.6.50-evl root=/dev/sda1 ro quiet\n")
    h.write("etc/default/grub", 'GRUB_DEFAULT=0\nGRUB_CMDLINE_LINUX_DEFAULT="quiet"\nGRUB_CMDLINE_LINUX=""\n')
    h.write(
        f"boot/config-{platform.release()}",
        "CONFIG_EVL=n\nCONFIG_PREEMPT_VOLUNTARY=y\n# CONFIG_NO_HZ_FULL is not set\nCONFIG_CPU_IDLE=y\n",
    )
    return h


class CommandTrace:
    """Stands in for run_cmd and records every argv it is given."""

    def __init__(self) -> None:
        self.calls: List[List[str]] = []
        self.cwds: List[Optional[str]] = []
        self.fail_on: Callable[[List[str]], bool] = lambda argv: False
        self.hooks: List[Callable[[List[str], Optional[str]], None]] = []
        self.kernel_release = "6.6.50-evl"

    def __call__(self, argv, *, check=True, env=None, cwd=None, input_text=None, capture=True, dry_run=False):
        argv = list(argv)
        self.calls.append(argv)
        self.cwds.append(cwd)

        if dry_run:
            return CmdResult(argv=argv, returncode=0, stdout="", stderr="")

        if argv[:2] == ["git", "clone"] and cwd:
            name = argv[-1].rstrip("/").rsplit("/", 1)[-1].removesuffix(".git")
            (Path(cwd) / name / ".git").mkdir(parents=True, exist_ok=True)

        for hook in self.hooks:
            hook(argv, cwd)

        if self.fail_on(argv):
            if check:
                raise CommandError(argv, 2, "simulated failure")
            return CmdResult(argv=argv, returncode=2, stdout="", stderr="simulated failure")

        if argv[:2] == ["getent", "group"]:
            return CmdResult(argv=argv, returncode=2, stdout="", stderr="")
        if argv == ["make", "-s", "kernelrelease"]:
            return CmdResult(argv=argv, returncode=0, stdout=self.kernel_release + "\n", stderr="")
        return CmdResult(argv=argv, returncode=0, stdout="", stderr="")

    def programs(self) -> List[str]:
        return [" ".join(c) for c in self.calls]

    def index(self, argv: List[str]) -> int:
        return self.calls.index(argv)


@pytest.fixture
def cmd_trace(monkeypatch) -> CommandTrace:
    trace = CommandTrace()
    for name in PATCHED_MODULES:
        monkeypatch.setattr(importlib.import_module(name), "run_cmd", trace)
    return trace
