from __future__ import annotations

import logging
import os
import shutil
from pathlib import Path

from ..errors import BuildError, CommandError
from ..lib.pkg import add_user_to_group, ensure_group
from ..lib.profile import install_environment_block
from ..pipeline import InstallCtx, best_effort

logger = logging.getLogger(__name__)


def _copy_default_conf(src: Path, etc_dir: Path, *, dry_run: bool) -> None:
    if dry_run:
        logger.info("Would copy %s to %s", src, etc_dir)
        return
    shutil.copy2(src, etc_dir / src.name)


class ConfigureEnvironmentStage:
    stage_id = "50_configure_environment"
    description = "Configure Xenomai 4 environment and access group"
    idempotent = True

    def run(self, ctx: InstallCtx) -> None:
        cfg = ctx.cfg
        dry_run = ctx.dry_run

        etc_dir = Path(cfg.xenomai_etc_dir)
        if not dry_run:
            etc_dir.mkdir(parents=True, exist_ok=True)
        best_effort(
            "copy of default xenomai.conf",
            _copy_default_conf,
            Path(cfg.xenomai_root) / "etc/xenomai.conf",
            etc_dir,
            dry_run=dry_run,
        )

        install_environment_block(cfg, dry_run=dry_run)

        try:
            ensure_group(cfg.evl_group, dry_run=dry_run)
        except CommandError as e:
            raise BuildError(str(e)) from e

        sudo_user = os.environ.get("SUDO_USER")
        if sudo_user:
            best_effort(
                f"adding {sudo_user} to {cfg.evl_group}",
                add_user_to_group,
                sudo_user,
                cfg.evl_group,
                dry_run=dry_run,
            )
        else:
            logger.info("SUDO_USER not set; not adding anyone to %s", cfg.evl_group)

        logger.info("Xenomai 4 configured successfully")
