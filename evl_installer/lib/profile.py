from __future__ import annotations

import logging
from typing import List

from ..config import InstallerConfig
from .config_file import ConfigAssertion, apply_all

logger = logging.getLogger(__name__)


def environment_block(cfg: InstallerConfig) -> List[ConfigAssertion]:
    """The login-shell variables the framework needs, in dependency order."""

    target = cfg.profile_script
    values = [
        ("XENOMAI_ROOT_DIR", cfg.xenomai_root),
        ("PATH", "$XENOMAI_ROOT_DIR/bin:$PATH"),
        ("LD_LIBRARY_PATH", "$XENOMAI_ROOT_DIR/lib:$LD_LIBRARY_PATH"),
        ("PKG_CONFIG_PATH", "$XENOMAI_ROOT_DIR/lib/pkgconfig:$PKG_CONFIG_PATH"),
    ]
    return [ConfigAssertion(key=k, value=v, target=target, syntax="shell", export=True) for k, v in values]


def install_environment_block(cfg: InstallerConfig, *, dry_run: bool = False) -> List[str]:
    changed = apply_all(environment_block(cfg), dry_run=dry_run)
    logger.info("Environment block in %s (%d updated)", cfg.profile_script, len(changed))
    return changed
