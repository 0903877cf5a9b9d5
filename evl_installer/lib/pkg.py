from __future__ import annotations

import logging
from typing import Sequence

from .command import run_cmd

logger = logging.getLogger(__name__)

APT_ENV = {"DEBIAN_FRONTEND": "noninteractive"}


def apt_update(*, dry_run: bool = False) -> None:
    run_cmd(["apt-get", "update"], env=APT_ENV, capture=False, dry_run=dry_run)


def apt_upgrade(*, dry_run: bool = False) -> None:
    run_cmd(["apt-get", "upgrade", "-y"], env=APT_ENV, capture=False, dry_run=dry_run)


def apt_install(packages: Sequence[str], *, dry_run: bool = False) -> None:
    if not packages:
        return
    run_cmd(["apt-get", "install", "-y", *packages], env=APT_ENV, capture=False, dry_run=dry_run)


def group_exists(group: str) -> bool:
    r = run_cmd(["getent", "group", group], check=False)
    return r.returncode == 0


def ensure_group(group: str, *, dry_run: bool = False) -> None:
    if not dry_run and group_exists(group):
        logger.info("Group %s already exists", group)
        return
    run_cmd(["groupadd", group], dry_run=dry_run)


def add_user_to_group(user: str, group: str, *, dry_run: bool = False) -> None:
    run_cmd(["usermod", "-aG", group, user], dry_run=dry_run)
