from __future__ import annotations

import os
from pathlib import Path


def load_env(path: Path | None = None) -> None:
    """
    Load KEY=value pairs from the project's .env files into os.environ.

    ``.env`` is read first and never overrides variables that are already set.
    ``.env.local`` is read afterwards and may override ``.env`` values, but
    variables exported by the shell always win.
    """
    shell_keys = set(os.environ.keys())

    env_path = path or _default_env_path()
    if env_path.exists():
        _apply_env_file(env_path, protected_keys=shell_keys, allow_override=False)

    if path is None:
        local_path = env_path.parent / ".env.local"
        if local_path.exists():
            _apply_env_file(local_path, protected_keys=shell_keys, allow_override=True)


def _apply_env_file(env_path: Path, *, protected_keys: set[str], allow_override: bool) -> None:
    for raw_line in env_path.read_text(encoding="utf-8").splitlines():
        line = raw_line.strip()
        if not line or line.startswith("#") or "=" not in line:
            continue
        if line.startswith("export "):
            line = line[len("export "):].lstrip()
        key, value = line.split("=", 1)
        key = key.strip()
        if not key or key in protected_keys:
            continue
        if not allow_override and key in os.environ:
            continue
        os.environ[key] = _unquote(value.strip())


def _default_env_path() -> Path:
    return Path(__file__).resolve().parents[2] / ".env"


def _unquote(value: str) -> str:
    if len(value) >= 2 and value[0] == value[-1] and value[0] in {'"', "'"}:
        return value[1:-1]
    return value


__all__ = ["load_env"]
