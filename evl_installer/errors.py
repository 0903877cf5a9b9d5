from __future__ import annotations

from typing import Sequence


class InstallerError(RuntimeError):
    """Base class for every fatal installer failure."""


class PrerequisiteError(InstallerError):
    pass


class DependencyInstallError(InstallerError):
    pass


class ConfigMutationError(InstallerError):
    pass


class ConfigVerificationError(InstallerError):
    def __init__(self, path: str, missing: Sequence[str]):
        self.path = path
        self.missing = list(missing)
        super().__init__(f"Missing {', '.join(self.missing)} in {path}")


class BuildError(InstallerError):
    pass


class CommandError(InstallerError):
    def __init__(self, argv: Sequence[str], returncode: int, stderr: str = ""):
        self.argv = list(argv)
        self.program = self.argv[0] if self.argv else ""
        self.args_list = self.argv[1:]
        self.returncode = returncode
        self.stderr = stderr
        msg = f"Command failed ({returncode}): {' '.join(self.argv)}"
        if stderr:
            msg += f"\n{stderr.strip()}"
        super().__init__(msg)


class StageError(InstallerError):
    """A stage failed; carries the stage id and chains the underlying error."""

    def __init__(self, stage_id: str, cause: BaseException):
        self.stage_id = stage_id
        self.cause = cause
        super().__init__(f"Stage {stage_id} failed: {cause}")


class InstallInterruptedError(InstallerError):
    pass


class VerificationWarning(UserWarning):
    """Raised by a verification predicate to report a non-fatal discrepancy."""
