from __future__ import annotations

import logging
import os
import shlex
import subprocess
from dataclasses import dataclass
from typing import Mapping, Sequence

from ..errors import CommandError

logger = logging.getLogger(__name__)

TERMINATE_GRACE_S = 10.0


@dataclass(frozen=True)
class CmdResult:
    argv: list[str]
    returncode: int
    stdout: str
    stderr: str


def _fmt_argv(argv: Sequence[str]) -> str:
    return " ".join(shlex.quote(a) for a in argv)


def _stop_child(p: subprocess.Popen) -> None:
    """Give an interrupted child a chance to exit before killing it."""

    if p.poll() is not None:
        return
    logger.warning("Terminating pid %s after interrupt", p.pid)
    p.terminate()
    try:
        p.wait(timeout=TERMINATE_GRACE_S)
    except subprocess.TimeoutExpired:
        p.kill()
        p.wait()


def run_cmd(
    argv: Sequence[str],
    *,
    check: bool = True,
    env: Mapping[str, str] | None = None,
    cwd: str | None = None,
    input_text: str | None = None,
    capture: bool = True,
    dry_run: bool = False,
) -> CmdResult:
    """Run a command with consistent logging.

    - Always logs the command.
    - capture=False inherits the installer's stdout/stderr so long builds
      stream their progress; stdout/stderr are then empty in the result.
    - A nonzero exit raises CommandError when check is set.
    - dry_run logs but does not execute.
    """

    argv_list = list(argv)
    logger.info("CMD %s%s", _fmt_argv(argv_list), f" (cwd={cwd})" if cwd else "")

    if dry_run:
        return CmdResult(argv=argv_list, returncode=0, stdout="", stderr="")

    pipe = subprocess.PIPE if capture else None
    p = subprocess.Popen(
        argv_list,
        stdin=subprocess.PIPE if input_text is not None else None,
        stdout=pipe,
        stderr=pipe,
        text=True,
        cwd=cwd,
        env=dict(os.environ, **(env or {})),
    )
    try:
        stdout, stderr = p.communicate(input=input_text)
    except BaseException:
        _stop_child(p)
        raise

    stdout = stdout or ""
    stderr = stderr or ""
    if stdout:
        logger.debug("STDOUT %s", stdout.strip())
    if stderr:
        logger.debug("STDERR %s", stderr.strip())

    if check and p.returncode != 0:
        raise CommandError(argv_list, p.returncode, stderr)

    return CmdResult(argv=argv_list, returncode=p.returncode, stdout=stdout, stderr=stderr)
