from __future__ import annotations

import logging
from pathlib import Path

from ..errors import BuildError, CommandError
from ..lib.bootloader import set_cmdline, update_grub
from ..lib.command import run_cmd
from ..lib.config_file import ConfigAssertion, apply_all
from ..lib.sysfs import GOVERNOR_GLOB, PathGlob, write_knob
from ..pipeline import InstallCtx, best_effort

logger = logging.getLogger(__name__)


class TuneSystemStage:
    stage_id = "60_tune_system"
    description = "Apply real-time scheduler, boot and CPU tuning"
    idempotent = True

    def run(self, ctx: InstallCtx) -> None:
        cfg = ctx.cfg
        dry_run = ctx.dry_run

        apply_all(
            [
                ConfigAssertion(key=k, value=v, target=cfg.sysctl_conf, syntax="sysctl")
                for k, v in cfg.sysctl_tunables.items()
            ],
            dry_run=dry_run,
        )
        # Some scheduler tunables are gone on newer kernels; sysctl -p then exits nonzero.
        best_effort("sysctl reload", run_cmd, ["sysctl", "-p", cfg.sysctl_conf], dry_run=dry_run)

        cmdline = set_cmdline(cfg.grub_default, cfg.cmdline_fragments, dry_run=dry_run)
        logger.info("GRUB_CMDLINE_LINUX=%s", cmdline)

        sys_root = Path(cfg.sys_root)
        proc_root = Path(cfg.proc_root)

        governors = [write_knob(p, cfg.cpu_governor, dry_run=dry_run) for p in PathGlob(cfg.sys_root, GOVERNOR_GLOB)]
        logger.info("CPU governor %s set on %d/%d CPUs", cfg.cpu_governor, sum(governors), len(governors))

        write_knob(sys_root / "devices/system/cpu/intel_pstate/no_turbo", cfg.no_turbo, dry_run=dry_run)
        write_knob(sys_root / "devices/system/cpu/smt/control", "off", dry_run=dry_run)
        write_knob(proc_root / "sys/kernel/watchdog", "0", dry_run=dry_run)
        write_knob(proc_root / "sys/kernel/sched_rt_priority_max", "99", dry_run=dry_run)

        try:
            update_grub(dry_run=dry_run)
        except CommandError as e:
            raise BuildError(str(e)) from e

        logger.info("Real-time optimizations applied successfully")
