from __future__ import annotations

import logging

from ..errors import CommandError, DependencyInstallError
from ..lib.kernel import running_release
from ..lib.pkg import apt_install, apt_update, apt_upgrade
from ..pipeline import InstallCtx

logger = logging.getLogger(__name__)


class InstallDependenciesStage:
    stage_id = "10_install_dependencies"
    description = "Update system and install build dependencies"
    idempotent = True

    def run(self, ctx: InstallCtx) -> None:
        packages = [*ctx.cfg.packages, f"linux-headers-{running_release()}"]
        try:
            apt_update(dry_run=ctx.dry_run)
            apt_upgrade(dry_run=ctx.dry_run)
            apt_install(packages, dry_run=ctx.dry_run)
        except CommandError as e:
            raise DependencyInstallError(str(e)) from e

        logger.info("Dependencies installed successfully (%d packages)", len(packages))
