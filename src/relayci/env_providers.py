# env_providers.py
from __future__ import annotations

import re
import shlex
from typing import Iterable, Mapping

from .model import EnvProvider

# Ready-made providers. Each one is just a shell command; the runtime runs it
# and reads KEY=VALUE lines from stdout like any custom provider.

_NAME = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


def _check_name(key: str) -> str:
    if not _NAME.match(key):
        raise ValueError(f"Invalid environment variable name: {key!r}")
    return key


def static(env: Mapping[str, object], *, name: str = "static") -> EnvProvider:
    """Emit a fixed set of variables."""
    lines = [f"export {_check_name(k)}={shlex.quote(str(v))}" for k, v in env.items()]
    if not lines:
        return EnvProvider(name=name, command="true")
    cmd = "printf '%s\\n' " + " ".join(shlex.quote(line) for line in lines)
    return EnvProvider(name=name, command=cmd)


def dotenv_file(path: str, *, required: bool = False, name: str | None = None) -> EnvProvider:
    """
    Emit the assignments of a .env file.

    A missing file is an error only when required=True.
    """
    q = shlex.quote(path)
    missing = (
        f"echo 'Error: Required env file not found: '{q} >&2; exit 1"
        if required
        else "exit 0"
    )
    cmd = f"if [ -f {q} ]; then cat {q}; else {missing}; fi"
    return EnvProvider(name=name or f"file:{path}", command=cmd)


def required(names: Iterable[str], *, name: str = "required") -> EnvProvider:
    """Emit nothing; fail if any of `names` is unset at this point."""
    checks = [f'[ -n "${{{_check_name(n)}+x}}" ] || missing="$missing {n}"' for n in names]
    cmd = "; ".join(
        ['missing=""']
        + checks
        + [
            'if [ -n "$missing" ]; then '
            'echo "Error: Required environment variables not set:$missing" >&2; exit 1; fi'
        ]
    )
    return EnvProvider(name=name, command=cmd)
