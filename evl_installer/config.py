from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

GIB = 1024**3

DEFAULT_CONFIG_PATH = "/etc/evl-installer.yaml"

BUILD_PACKAGES = [
    "build-essential",
    "devscripts",
    "debhelper",
    "findutils",
    "git",
    "libncurses-dev",
    "fakeroot",
    "zlib1g-dev",
    "curl",
    "wget",
    "libssl-dev",
    "libelf-dev",
    "flex",
    "bison",
    "pkg-config",
    "cmake",
    "ninja-build",
    "libpci-dev",
    "libusb-1.0-0-dev",
    "libudev-dev",
    "rt-tests",
    "bc",
]

SYSCTL_TUNABLES: Dict[str, str] = {
    "kernel.sched_rt_runtime_us": "950000",
    "kernel.sched_latency_ns": "1000000",
    "kernel.sched_migration_cost_ns": "5000000",
    "kernel.sched_min_granularity_ns": "1000000",
    "kernel.sched_wakeup_granularity_ns": "500000",
    "kernel.nmi_watchdog": "0",
}

# Applied after "make olddefconfig"; order follows the kernel option groups.
KERNEL_RT_OPTIONS: List[Tuple[str, str]] = [
    ("CONFIG_PREEMPT_RT", "y"),
    ("CONFIG_PREEMPT_VOLUNTARY", "n"),
    ("CONFIG_PREEMPT_NONE", "n"),
    ("CONFIG_NO_HZ_FULL", "y"),
    ("CONFIG_CPU_ISOLATION", "y"),
    ("CONFIG_RCU_NOCB_CPU", "y"),
    ("CONFIG_RCU_BOOST", "y"),
    ("CONFIG_RCU_BOOST_DELAY", "500"),
    ("CONFIG_CPU_IDLE", "n"),
    ("CONFIG_CPU_FREQ", "n"),
    ("CONFIG_SCHED_AUTOGROUP", "n"),
]

KERNEL_EVL_OPTIONS: List[Tuple[str, str]] = [
    ("CONFIG_EVL", "y"),
    ("CONFIG_EVL_LATENCY_USER", "y"),
]

KERNEL_REQUIRED_OPTIONS: List[Tuple[str, str]] = [
    ("CONFIG_EVL", "y"),
    ("CONFIG_PREEMPT_RT", "y"),
    ("CONFIG_NO_HZ_FULL", "y"),
    ("CONFIG_CPU_ISOLATION", "y"),
]


@dataclass(frozen=True)
class RequirementSpec:
    min_disk_bytes: int = 15 * GIB
    min_memory_bytes: int = 4 * GIB
    os_marker: str = "/etc/debian_version"
    disk_path: str = "/"


@dataclass(frozen=True)
class Repo:
    url: str
    ref: Optional[str]
    build_dir: str
    depth: Optional[int] = None

    @property
    def name(self) -> str:
        return self.url.rstrip("/").rsplit("/", 1)[-1].removesuffix(".git")

    @property
    def src_dir(self) -> Path:
        return Path(self.build_dir) / self.name


@dataclass(frozen=True)
class InstallerConfig:
    """Immutable installer configuration, built once at startup.

    `raw` holds user overrides (usually from YAML); every property falls back
    to the defaults of a stock Debian 12 host.
    """

    raw: Dict[str, Any] = field(default_factory=dict)

    def _section(self, name: str) -> Dict[str, Any]:
        return self.raw.get(name) or {}

    # -- requirements -------------------------------------------------------

    @property
    def requirements(self) -> RequirementSpec:
        r = self._section("requirements")
        base = RequirementSpec()
        return RequirementSpec(
            min_disk_bytes=int(r.get("min_disk_gib", base.min_disk_bytes / GIB) * GIB),
            min_memory_bytes=int(r.get("min_memory_gib", base.min_memory_bytes / GIB) * GIB),
            os_marker=str(r.get("os_marker") or base.os_marker),
            disk_path=str(r.get("disk_path") or base.disk_path),
        )

    # -- sources ------------------------------------------------------------

    @property
    def kernel_repo(self) -> Repo:
        s = self._section("kernel")
        branch = str(s.get("branch") or "v6.6.y-evl-rebase")
        return Repo(
            url=str(s.get("url") or "https://source.denx.de/Xenomai/xenomai4/linux-evl.git"),
            ref=branch,
            build_dir=str(s.get("build_dir") or "/tmp/linux-evl-build"),
            depth=1,
        )

    @property
    def libevl_repo(self) -> Repo:
        s = self._section("libevl")
        return Repo(
            url=str(s.get("url") or "https://gitlab.denx.de/Xenomai/libevl.git"),
            ref=s.get("ref"),
            build_dir=str(s.get("build_dir") or "/tmp/libevl-build"),
        )

    @property
    def xenomai_repo(self) -> Repo:
        s = self._section("xenomai")
        return Repo(
            url=str(s.get("url") or "https://gitlab.denx.de/Xenomai/xenomai4.git"),
            ref=str(s.get("ref") or "v4.2.0"),
            build_dir=str(s.get("build_dir") or "/tmp/xenomai4-build"),
        )

    @property
    def libevl_prefix(self) -> str:
        return str(self._section("libevl").get("prefix") or "/usr/local")

    @property
    def xenomai_root(self) -> str:
        return str(self._section("xenomai").get("root_dir") or "/usr/local/xenomai4")

    @property
    def xenomai_etc_dir(self) -> str:
        return str(self._section("xenomai").get("etc_dir") or "/etc/xenomai4")

    @property
    def cmake_options(self) -> List[str]:
        opts = self._section("xenomai").get("cmake_options")
        if opts:
            return [str(o) for o in opts]
        return [
            "-DCMAKE_BUILD_TYPE=Release",
            "-DXENO_ENABLE_DOC=ON",
            "-DXENO_ENABLE_TESTS=ON",
            "-DXENO_ENABLE_DEMO=ON",
        ]

    @property
    def packages(self) -> List[str]:
        extra = self._section("packages").get("extra") or []
        return [*BUILD_PACKAGES, *[str(p) for p in extra]]

    @property
    def evl_group(self) -> str:
        return str(self.raw.get("evl_group") or "evl")

    # -- build --------------------------------------------------------------

    @property
    def max_build_jobs(self) -> int:
        return int(self._section("kernel").get("max_jobs") or 4)

    def build_jobs(self, cpu_count: Optional[int] = None) -> int:
        cpus = cpu_count if cpu_count is not None else (os.cpu_count() or 1)
        return max(1, min(cpus, self.max_build_jobs))

    # -- tuning -------------------------------------------------------------

    @property
    def isolated_cpus(self) -> str:
        return str(self._section("tuning").get("isolated_cpus") or "1-3")

    @property
    def cmdline_fragments(self) -> List[str]:
        cpus = self.isolated_cpus
        return [
            "mitigations=off",
            f"isolcpus={cpus} rcu_nocbs={cpus} nohz_full={cpus}",
        ]

    @property
    def sysctl_tunables(self) -> Dict[str, str]:
        overrides = self._section("tuning").get("sysctl") or {}
        return {**SYSCTL_TUNABLES, **{str(k): str(v) for k, v in overrides.items()}}

    @property
    def cpu_governor(self) -> str:
        return str(self._section("tuning").get("governor") or "performance")

    @property
    def no_turbo(self) -> str:
        return str(self._section("tuning").get("no_turbo") or "0")

    # -- host paths ---------------------------------------------------------

    def _path(self, key: str, default: str) -> str:
        return str(self._section("paths").get(key) or default)

    @property
    def sysctl_conf(self) -> str:
        return self._path("sysctl_conf", "/etc/sysctl.conf")

    @property
    def grub_default(self) -> str:
        return self._path("grub_default", "/etc/default/grub")

    @property
    def profile_script(self) -> str:
        return self._path("profile_script", "/etc/profile.d/xenomai4.sh")

    @property
    def sys_root(self) -> str:
        return self._path("sys_root", "/sys")

    @property
    def proc_root(self) -> str:
        return self._path("proc_root", "/proc")

    @property
    def boot_dir(self) -> str:
        return self._path("boot_dir", "/boot")


def load_config(path: Optional[str]) -> InstallerConfig:
    """Load overrides from YAML; no path means stock defaults."""

    if path is None:
        return InstallerConfig()

    p = Path(path)
    if not p.exists():
        raise FileNotFoundError(path)

    if p.suffix.lower() not in {".yaml", ".yml"}:
        raise ValueError("installer config must be YAML")

    try:
        import yaml  # type: ignore
    except Exception as e:
        raise RuntimeError("PyYAML is required to read the installer config") from e

    raw = yaml.safe_load(p.read_text(encoding="utf-8")) or {}
    if not isinstance(raw, dict):
        raise ValueError("installer config must contain a mapping/object")

    return InstallerConfig(raw=raw)
