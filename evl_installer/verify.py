from __future__ import annotations

import gzip
import logging
import os
import platform
import shutil
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Callable, Dict, List, Optional, Sequence, Tuple

from .config import InstallerConfig
from .errors import VerificationWarning
from .lib.command import run_cmd
from .lib.config_file import parse_line
from .lib.sysfs import GOVERNOR_GLOB, PathGlob, read_text

logger = logging.getLogger(__name__)


class CheckStatus(str, Enum):
    OK = "OK"
    FAIL = "FAIL"
    WARN = "WARN"


class Severity(str, Enum):
    FATAL = "fatal"
    WARNING = "warning"


class SystemProbe:
    """Reads live system state; nothing is cached between calls."""

    def __init__(self, cfg: InstallerConfig):
        self.cfg = cfg
        self.proc_root = Path(cfg.proc_root)
        self.sys_root = Path(cfg.sys_root)
        self.boot_dir = Path(cfg.boot_dir)

    def kernel_release(self) -> str:
        return read_text(self.proc_root / "sys/kernel/osrelease") or platform.release()

    def kernel_identity(self) -> str:
        return read_text(self.proc_root / "version") or " ".join(platform.uname())

    def kernel_config(self) -> Dict[str, str]:
        boot_config = self.boot_dir / f"config-{self.kernel_release()}"
        text: Optional[str] = read_text(boot_config)
        if text is None:
            proc_config = self.proc_root / "config.gz"
            try:
                with gzip.open(proc_config, mode="rt", encoding="utf-8") as fh:
                    text = fh.read()
            except OSError:
                text = None
        if text is None:
            raise FileNotFoundError(f"No kernel config for {self.kernel_release()}")

        out: Dict[str, str] = {}
        for line in text.splitlines():
            parsed = parse_line(line, "kconfig")
            if parsed:
                out[parsed[0]] = parsed[1]
        return out

    def cmdline(self) -> str:
        return read_text(self.proc_root / "cmdline") or ""

    def governors(self) -> List[str]:
        return [read_text(p) or "" for p in PathGlob(str(self.sys_root), GOVERNOR_GLOB)]

    def smt_active(self) -> Optional[str]:
        return read_text(self.sys_root / "devices/system/cpu/smt/active")

    def which(self, tool: str) -> Optional[str]:
        path = os.pathsep.join([os.environ.get("PATH", ""), str(Path(self.cfg.xenomai_root) / "bin")])
        return shutil.which(tool, path=path)

    def tool_version(self, tool: str) -> str:
        exe = self.which(tool)
        if not exe:
            return ""
        try:
            r = run_cmd([exe, "--version"], check=False)
        except OSError:
            return ""
        return r.stdout.strip()


Predicate = Callable[[SystemProbe], Tuple[bool, str]]


@dataclass(frozen=True)
class VerificationCheck:
    name: str
    predicate: Predicate
    severity: Severity = Severity.FATAL
    section: str = ""


@dataclass(frozen=True)
class ReportEntry:
    check_name: str
    status: CheckStatus
    detail: str = ""
    section: str = ""


@dataclass
class Report:
    entries: List[ReportEntry] = field(default_factory=list)

    @property
    def failures(self) -> List[ReportEntry]:
        return [e for e in self.entries if e.status is CheckStatus.FAIL]

    @property
    def warnings(self) -> List[ReportEntry]:
        return [e for e in self.entries if e.status is CheckStatus.WARN]

    @property
    def ok(self) -> bool:
        return not self.failures

    def render(self) -> str:
        lines = ["=== Real-Time System Verification ==="]
        section: Optional[str] = None
        for e in self.entries:
            if e.section != section:
                if section is not None and e.section:
                    lines += ["", f"{e.section}:"]
                section = e.section
            lines.append(f"{e.check_name}: {e.status.value}" + (f" ({e.detail})" if e.detail else ""))
        lines.append("=== Verification Complete ===")
        return "\n".join(lines)


def verify(checks: Sequence[VerificationCheck], probe: SystemProbe) -> Report:
    """Evaluate every check; a failure never stops the remaining checks."""

    report = Report()
    for check in checks:
        failed = CheckStatus.FAIL if check.severity is Severity.FATAL else CheckStatus.WARN
        try:
            passed, detail = check.predicate(probe)
            status = CheckStatus.OK if passed else failed
        except VerificationWarning as w:
            status, detail = CheckStatus.WARN, str(w)
        except Exception as e:
            status, detail = failed, f"{type(e).__name__}: {e}"

        if status is not CheckStatus.OK:
            logger.warning("Verification %s: %s %s", check.name, status.value, detail)
        report.entries.append(ReportEntry(check.name, status, detail, check.section))
    return report


# -- default checks ---------------------------------------------------------


def _evl_kernel(probe: SystemProbe) -> Tuple[bool, str]:
    if "evl" in probe.kernel_identity().lower():
        return True, "EVL detected"
    return False, "EVL kernel not detected. You may need to reboot."


def _kernel_flag(option: str, value: str = "y") -> Predicate:
    def check(probe: SystemProbe) -> Tuple[bool, str]:
        actual = probe.kernel_config().get(option)
        if actual == value:
            return True, ""
        return False, f"{option}={actual or 'unset'}"

    return check


def _cpu_isolation(probe: SystemProbe) -> Tuple[bool, str]:
    tokens = [t for t in probe.cmdline().split() if t.startswith("isolcpus=")]
    if tokens:
        return True, tokens[0]
    return False, "MISSING"


def _cpu_governor(probe: SystemProbe) -> Tuple[bool, str]:
    governors = probe.governors()
    if not governors:
        raise VerificationWarning("no cpufreq governors exposed")
    if set(governors) == {"performance"}:
        return True, "performance"
    return False, "NOT PERFORMANCE: " + ",".join(sorted(set(governors)))


def _hyperthreading(probe: SystemProbe) -> Tuple[bool, str]:
    active = probe.smt_active()
    if active is None:
        raise VerificationWarning("SMT control not available")
    if active == "0":
        return True, "DISABLED"
    return False, "ENABLED"


def _xeno_config(probe: SystemProbe) -> Tuple[bool, str]:
    exe = probe.which("xeno-config")
    if exe:
        return True, exe
    return False, "NOT FOUND (may need to log in again to load the profile)"


def _xeno_version(probe: SystemProbe) -> Tuple[bool, str]:
    version = probe.tool_version("xeno-config")
    return bool(version), version or "Unknown"


def default_checks() -> List[VerificationCheck]:
    kernel, system, framework = "Kernel", "System Checks", "Xenomai 4 Checks"
    return [
        VerificationCheck("Kernel", _evl_kernel, Severity.FATAL, kernel),
        VerificationCheck("EVL Core", _kernel_flag("CONFIG_EVL"), Severity.FATAL, kernel),
        VerificationCheck("PREEMPT_RT", _kernel_flag("CONFIG_PREEMPT_RT"), Severity.FATAL, kernel),
        VerificationCheck("NO_HZ_FULL", _kernel_flag("CONFIG_NO_HZ_FULL"), Severity.FATAL, kernel),
        VerificationCheck("CPU_ISOLATION", _kernel_flag("CONFIG_CPU_ISOLATION"), Severity.FATAL, kernel),
        VerificationCheck("CPU Isolation", _cpu_isolation, Severity.FATAL, system),
        VerificationCheck("CPU Frequency", _cpu_governor, Severity.WARNING, system),
        VerificationCheck("Hyperthreading", _hyperthreading, Severity.WARNING, system),
        VerificationCheck("Xenomai 4", _xeno_config, Severity.WARNING, framework),
        VerificationCheck("Version", _xeno_version, Severity.WARNING, framework),
    ]
