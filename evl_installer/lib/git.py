from __future__ import annotations

import logging
from pathlib import Path

from ..config import Repo
from .command import run_cmd

logger = logging.getLogger(__name__)


def clone_or_reuse(repo: Repo, *, dry_run: bool = False) -> Path:
    """Clone `repo` into its build dir; an existing checkout is reused."""

    build_dir = Path(repo.build_dir)
    src = repo.src_dir
    if not dry_run:
        build_dir.mkdir(parents=True, exist_ok=True)

    if (src / ".git").exists():
        logger.info("Reusing existing checkout %s", src)
    else:
        argv = ["git", "clone"]
        if repo.depth:
            argv += ["--depth", str(repo.depth)]
            if repo.ref:
                argv += ["--branch", repo.ref]
        argv.append(repo.url)
        run_cmd(argv, cwd=str(build_dir), capture=False, dry_run=dry_run)

    if repo.ref:
        run_cmd(["git", "checkout", repo.ref], cwd=str(src), dry_run=dry_run)
    return src
