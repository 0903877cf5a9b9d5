from __future__ import annotations

import argparse
import logging
import shutil
import signal
from pathlib import Path
from typing import Callable, List, Optional, Sequence

from .config import InstallerConfig, load_config
from .errors import InstallInterruptedError, PrerequisiteError, StageError
from .lib.command import run_cmd
from .logging_utils import DEFAULT_LOG_PATH, configure_logging
from .pipeline import InstallCtx, Stage, best_effort, run_pipeline
from .requirements import HostFacts, check_requirements, gather_host_facts
from .stages import (
    BuildKernelStage,
    ConfigureEnvironmentStage,
    InstallDependenciesStage,
    InstallLibevlStage,
    InstallXenomaiStage,
    TuneSystemStage,
)
from .verify import Report, SystemProbe, VerificationCheck, default_checks, verify

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_FAILED = 1
EXIT_PREREQUISITE = 2
EXIT_INTERRUPTED = 130

Confirm = Callable[[str], bool]


def build_stages() -> List[Stage]:
    return [
        InstallDependenciesStage(),
        BuildKernelStage(),
        InstallLibevlStage(),
        InstallXenomaiStage(),
        ConfigureEnvironmentStage(),
        TuneSystemStage(),
    ]


def prompt_confirm(question: str) -> bool:
    try:
        reply = input(question)
    except EOFError:
        return False
    return reply.strip().lower().startswith("y")


def never_confirm(question: str) -> bool:
    return False


def always_confirm(question: str) -> bool:
    return True


def reboot_gate(confirm: Confirm, *, dry_run: bool = False) -> bool:
    """Ask once whether to reboot into the new kernel."""

    if confirm("Reboot now? (y/N): "):
        logger.info("Rebooting to load the EVL-patched kernel...")
        run_cmd(["sync"], dry_run=dry_run)
        run_cmd(["reboot"], dry_run=dry_run)
        return True
    logger.info("Please reboot manually when ready to complete the installation")
    return False


def cleanup_build_dirs(cfg: InstallerConfig, *, dry_run: bool = False) -> None:
    for repo in (cfg.xenomai_repo, cfg.libevl_repo, cfg.kernel_repo):
        path = Path(repo.build_dir)
        if dry_run:
            logger.info("Would remove %s", path)
            continue
        if path.exists():
            best_effort(f"removal of {path}", shutil.rmtree, path)
    logger.info("Cleanup completed")


def run(
    cfg: InstallerConfig,
    *,
    dry_run: bool = False,
    verify_only: bool = False,
    cleanup: bool = False,
    confirm: Confirm = prompt_confirm,
    stages: Optional[Sequence[Stage]] = None,
    facts: Optional[HostFacts] = None,
    probe: Optional[SystemProbe] = None,
    checks: Optional[Sequence[VerificationCheck]] = None,
) -> Report:
    """Check prerequisites, run every stage, then verify the live system."""

    if not verify_only:
        spec = cfg.requirements
        if facts is None:
            facts = gather_host_facts(spec, proc_root=cfg.proc_root)
        check_requirements(spec, facts)

        logger.info("Starting Xenomai 4 installation (this takes 60-120 minutes depending on the system)")
        ctx = InstallCtx(cfg=cfg, dry_run=dry_run, cpu_count=facts.cpu_count)
        run_pipeline(ctx=ctx, stages=build_stages() if stages is None else stages)
        logger.info("Installation completed successfully!")

        if cleanup:
            cleanup_build_dirs(cfg, dry_run=dry_run)

    logger.info("Running comprehensive verification...")
    report = verify(default_checks() if checks is None else checks, probe or SystemProbe(cfg))
    print(report.render())
    logger.info(
        "Verification summary: %d failed, %d warning(s)", len(report.failures), len(report.warnings)
    )
    if report.failures:
        logger.warning("%d verification check(s) failed; a reboot may be required", len(report.failures))

    if not verify_only:
        reboot_gate(confirm, dry_run=dry_run)
    return report


def _raise_interrupted(signum, frame) -> None:
    raise InstallInterruptedError(f"Installation interrupted by signal {signum}")


def execute(cfg: InstallerConfig, **kwargs) -> int:
    """Run the installer and map any propagated error to an exit code."""

    previous = signal.signal(signal.SIGTERM, _raise_interrupted)
    try:
        run(cfg, **kwargs)
        return EXIT_OK
    except PrerequisiteError as e:
        logger.error("%s", e)
        return EXIT_PREREQUISITE
    except StageError as e:
        logger.error("Stage %s failed: %s", e.stage_id, e.cause)
        return EXIT_FAILED
    except (KeyboardInterrupt, InstallInterruptedError):
        logger.error("Installation interrupted by user")
        return EXIT_INTERRUPTED
    except Exception:
        logger.exception("Installer failed")
        return EXIT_FAILED
    finally:
        signal.signal(signal.SIGTERM, previous)


def main(argv: Optional[list[str]] = None) -> int:
    p = argparse.ArgumentParser(prog="evl-installer", description="Install an EVL kernel, libevl and Xenomai 4")
    p.add_argument("--config", default=None, help="YAML file with overrides")
    p.add_argument("--log", default=DEFAULT_LOG_PATH, help="Path to installer log")
    p.add_argument("--dry-run", action="store_true", help="Log commands and edits without executing them")
    p.add_argument("--verify-only", action="store_true", help="Only print the verification report")
    p.add_argument("--cleanup", action="store_true", help="Remove build directories after a successful install")
    p.add_argument("-v", "--verbose", action="store_true")
    reboot = p.add_mutually_exclusive_group()
    reboot.add_argument("--yes", action="store_true", help="Reboot without asking")
    reboot.add_argument("--no-reboot", action="store_true", help="Never reboot")

    args = p.parse_args(argv)

    configure_logging(log_path=args.log, verbose=args.verbose)

    try:
        cfg = load_config(args.config)
    except (OSError, ValueError, RuntimeError) as e:
        logger.error("Unable to load config %s: %s", args.config, e)
        return EXIT_FAILED

    confirm: Confirm = prompt_confirm
    if args.yes:
        confirm = always_confirm
    elif args.no_reboot:
        confirm = never_confirm

    return execute(
        cfg,
        dry_run=args.dry_run,
        verify_only=args.verify_only,
        cleanup=args.cleanup,
        confirm=confirm,
    )


if __name__ == "__main__":
    raise SystemExit(main())
