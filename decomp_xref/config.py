"""
Resolver settings, read from the environment (optionally via a .env file).

XREF_LINK_IMPORTS      link import declarations to their classes (default 1)
XREF_MAX_CHAIN_DEPTH   deepest receiver chain a()...b() followed (default 32)
XREF_WORKERS           concurrent decompile-and-resolve tasks (default 4)
XREF_TRACE_PATH        JSON-lines trace file for pass-level spans (unset: off)
"""
from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Mapping, Optional

_TRUE = {"1", "true", "yes", "on"}
_FALSE = {"0", "false", "no", "off"}

_DOTENV_SEARCH_DEPTH = 5


def parse_dotenv(text: str) -> Dict[str, str]:
    """KEY=VALUE pairs from .env text.

    Blank lines, `#` comments and lines without `=` are skipped. A value may
    be quoted; an unquoted value ends at the first " #".
    """
    out: Dict[str, str] = {}
    for raw in text.splitlines():
        line = raw.strip()
        if not line or line.startswith("#") or "=" not in line:
            continue
        key, value = (part.strip() for part in line.split("=", 1))
        if not key:
            continue
        if value[:1] in ("'", '"'):
            if len(value) >= 2 and value[-1] == value[0]:
                value = value[1:-1]
        elif " #" in value:
            value = value.split(" #", 1)[0].rstrip()
        out[key] = value
    return out


def load_dotenv(path: str | Path = ".env", *, override: bool = False) -> bool:
    """Copy a .env file into os.environ; False when there is no such file.

    Variables that are already set to a non-empty value are kept unless
    *override* is true.
    """
    p = Path(path).expanduser()
    if not p.is_file():
        return False
    for key, value in parse_dotenv(p.read_text(encoding="utf-8", errors="ignore")).items():
        if override or not os.environ.get(key):
            os.environ[key] = value
    return True


def auto_load_dotenv(explicit_path: Optional[str] = None) -> Optional[str]:
    """Load the first .env found: *explicit_path*, then cwd and its parents."""
    candidates = [Path(explicit_path)] if explicit_path else []
    cur = Path.cwd()
    for _ in range(_DOTENV_SEARCH_DEPTH):
        candidates.append(cur / ".env")
        cur = cur.parent

    for c in candidates:
        try:
            if load_dotenv(c):
                return str(c)
        except OSError:
            # unreadable .env: settings fall back to defaults
            continue
    return None


def _env_bool(env: Mapping[str, str], key: str, default: bool) -> bool:
    raw = (env.get(key) or "").strip().lower()
    if raw in _TRUE:
        return True
    if raw in _FALSE:
        return False
    if raw:
        raise ValueError(f"{key} must be a boolean, got {raw!r}")
    return default


def _env_int(env: Mapping[str, str], key: str, default: int, minimum: int = 1) -> int:
    raw = (env.get(key) or "").strip()
    if not raw:
        return default
    try:
        value = int(raw)
    except ValueError as e:
        raise ValueError(f"{key} must be an integer, got {raw!r}") from e
    if value < minimum:
        raise ValueError(f"{key} must be >= {minimum}, got {value}")
    return value


@dataclass(frozen=True)
class XrefConfig:
    link_imports: bool = True
    max_chain_depth: int = 32
    workers: int = 4
    trace_path: Optional[str] = None

    @classmethod
    def from_env(cls, env: Optional[Mapping[str, str]] = None, *, dotenv: Optional[str] = None) -> "XrefConfig":
        if env is None:
            auto_load_dotenv(dotenv)
            env = os.environ
        return cls(
            link_imports=_env_bool(env, "XREF_LINK_IMPORTS", True),
            max_chain_depth=_env_int(env, "XREF_MAX_CHAIN_DEPTH", 32),
            workers=_env_int(env, "XREF_WORKERS", 4),
            trace_path=(env.get("XREF_TRACE_PATH") or "").strip() or None,
        )
