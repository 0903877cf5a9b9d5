from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, List, Literal, Mapping, Optional, Sequence, Tuple

from ..errors import ConfigMutationError, ConfigVerificationError

logger = logging.getLogger(__name__)

Syntax = Literal["kconfig", "sysctl", "shell"]

_KCONFIG_SET = re.compile(r"^(CONFIG_\w+)=(.*)$")
_KCONFIG_UNSET = re.compile(r"^# (CONFIG_\w+) is not set\s*$")
_SYSCTL = re.compile(r"^\s*([\w.\-/]+)\s*=\s*(.*?)\s*$")
_SHELL = re.compile(r"^\s*(?:export\s+)?([A-Za-z_]\w*)=(.*?)\s*$")

# Self-references left behind by "VAR=\"$VAR extra\"" style appends.
_SELF_REF = re.compile(r"^\$\{?GRUB_CMDLINE_LINUX(_DEFAULT)?\}?$")


@dataclass(frozen=True)
class ConfigAssertion:
    """`key` must appear exactly once in `target`, set to `value`."""

    key: str
    value: str
    target: str
    syntax: Syntax = "kconfig"
    export: bool = False

    @property
    def normalized_key(self) -> str:
        return normalize_key(self.key, self.syntax)


def normalize_key(key: str, syntax: Syntax) -> str:
    if syntax == "kconfig" and not key.startswith("CONFIG_"):
        return f"CONFIG_{key}"
    return key


def _unquote(value: str) -> str:
    if len(value) >= 2 and value[0] == value[-1] and value[0] in {'"', "'"}:
        return value[1:-1]
    return value


def parse_line(line: str, syntax: Syntax) -> Optional[Tuple[str, str]]:
    """Return (key, value) if the line encodes a key in the given syntax."""

    if syntax == "kconfig":
        m = _KCONFIG_UNSET.match(line)
        if m:
            return m.group(1), "n"
        m = _KCONFIG_SET.match(line)
        if m:
            return m.group(1), m.group(2)
        return None

    stripped = line.lstrip()
    if not stripped or stripped[0] in "#;":
        return None

    if syntax == "sysctl":
        m = _SYSCTL.match(line)
        return (m.group(1), m.group(2)) if m else None

    if syntax == "shell":
        m = _SHELL.match(line)
        return (m.group(1), _unquote(m.group(2))) if m else None

    raise ValueError(f"Unknown config syntax: {syntax}")


def render_line(a: ConfigAssertion) -> str:
    key = a.normalized_key
    if a.syntax == "kconfig":
        if a.value == "n":
            return f"# {key} is not set"
        return f"{key}={a.value}"
    if a.syntax == "sysctl":
        return f"{key} = {a.value}"
    prefix = "export " if a.export else ""
    return f'{prefix}{key}="{a.value}"'


def _read(path: Path) -> str:
    try:
        return path.read_text(encoding="utf-8") if path.exists() else ""
    except OSError as e:
        raise ConfigMutationError(f"Unable to read {path}: {e}") from e


def read_values(path: str, key: str, syntax: Syntax) -> List[str]:
    """All values currently assigned to `key`, in file order."""

    key = normalize_key(key, syntax)
    out: List[str] = []
    for line in _read(Path(path)).splitlines():
        parsed = parse_line(line, syntax)
        if parsed and parsed[0] == key:
            out.append(parsed[1])
    return out


def apply_assertion(a: ConfigAssertion, *, dry_run: bool = False) -> bool:
    """Patch `a.target` so `a.key` appears exactly once with `a.value`.

    The first existing line for the key is replaced in place; further
    duplicates are dropped; a missing key is appended. Returns True if the
    file content changed.
    """

    p = Path(a.target)
    key = a.normalized_key
    original = _read(p)
    desired = render_line(a)

    out: List[str] = []
    found = False
    for line in original.splitlines():
        parsed = parse_line(line, a.syntax)
        if parsed and parsed[0] == key:
            if not found:
                out.append(desired)
                found = True
            continue
        out.append(line)
    if not found:
        out.append(desired)

    updated = "\n".join(out) + "\n"
    if updated == original:
        logger.debug("%s already set in %s", key, p)
        return False

    if dry_run:
        logger.info("Would set %s in %s", desired, p)
        return True

    try:
        p.parent.mkdir(parents=True, exist_ok=True)
        p.write_text(updated, encoding="utf-8")
    except OSError as e:
        raise ConfigMutationError(f"Unable to write {p}: {e}") from e

    logger.info("Set %s in %s", desired, p)
    return True


def apply_all(assertions: Iterable[ConfigAssertion], *, dry_run: bool = False) -> List[str]:
    """Apply each assertion independently; returns the keys that changed."""

    return [a.normalized_key for a in assertions if apply_assertion(a, dry_run=dry_run)]


def assert_present(path: str, expected: Mapping[str, str], *, syntax: Syntax = "kconfig") -> None:
    """Re-read `path` and require each key exactly once with its value."""

    counts = {normalize_key(k, syntax): 0 for k in expected}
    values: dict[str, str] = {}
    for line in _read(Path(path)).splitlines():
        parsed = parse_line(line, syntax)
        if parsed and parsed[0] in counts:
            counts[parsed[0]] += 1
            values[parsed[0]] = parsed[1]

    missing: List[str] = []
    for k, v in expected.items():
        key = normalize_key(k, syntax)
        if counts[key] != 1 or values.get(key) != v:
            missing.append(f"{key}={v}")

    if missing:
        raise ConfigVerificationError(path, missing)
    logger.info("Verified %d required keys in %s", len(expected), path)


def merge_cmdline(current: Sequence[str], fragments: Sequence[str]) -> str:
    """Merge kernel cmdline fragments into existing values, one token per parameter.

    ``current`` holds every assignment of the variable in file order. A value
    without a ``$GRUB_CMDLINE_LINUX`` self-reference replaces everything
    before it, so merging starts from the last such value.
    """

    start = 0
    for i, value in enumerate(current):
        if not any(_SELF_REF.match(tok) for tok in value.split()):
            start = i

    tokens: List[str] = []
    for value in current[start:]:
        for tok in value.split():
            if _SELF_REF.match(tok) or tok in tokens:
                continue
            tokens.append(tok)

    for fragment in fragments:
        for tok in fragment.split():
            name = tok.split("=", 1)[0]
            idx = next((i for i, t in enumerate(tokens) if t.split("=", 1)[0] == name), None)
            if idx is None:
                tokens.append(tok)
            else:
                tokens[idx] = tok
    return " ".join(tokens)
