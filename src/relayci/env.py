# env.py
from __future__ import annotations

import os
import re
import shlex
import subprocess
from typing import Callable, Dict, Iterable, Mapping, Optional

from .errors import ProviderFailure
from .model import EnvProvider

# ---------------------------------------------------------------------
# Precedence, lowest first:
#   1. workflow defaults
#   2. job variables
#   3. provider variables (workflow providers, then job providers,
#      each in declaration order; later wins)
#   4. JOB_ENV file written by earlier actions of the same job
#   5. action variables
#   6. the runtime's own environment (captured once, never overridden)
# ---------------------------------------------------------------------

_ASSIGNMENT = re.compile(r"^\s*(?:export\s+)?([A-Za-z_][A-Za-z0-9_]*)=(.*)$")


def parse_assignments(text: str) -> Dict[str, str]:
    """
    Parse KEY=VALUE (or `export KEY=VALUE`) lines.

    Values are shell-unquoted. Comments, blank lines and anything that is not
    an assignment are ignored. Later assignments win.
    """
    out: Dict[str, str] = {}
    for line in text.splitlines():
        m = _ASSIGNMENT.match(line)
        if not m:
            continue
        key, raw = m.group(1), m.group(2).strip()
        try:
            parts = shlex.split(raw, comments=False, posix=True)
            value = " ".join(parts) if parts else ""
        except ValueError:
            # unbalanced quotes: keep the literal text
            value = raw
        out[key] = value
    return out


class EnvironmentLayer:
    """
    Builds the variables a job/action sees on top of the runtime environment.

    The runtime environment is snapshotted at construction. build() returns
    only the layered variables (never one whose key is in the snapshot);
    merged() adds the snapshot back for host processes.
    """

    def __init__(self, runtime: Optional[Mapping[str, str]] = None):
        self.runtime: Dict[str, str] = dict(os.environ if runtime is None else runtime)

    def build(
        self,
        *,
        defaults: Optional[Mapping[str, str]] = None,
        job: Optional[Mapping[str, str]] = None,
        providers: Optional[Mapping[str, str]] = None,
        shared: Optional[Mapping[str, str]] = None,
        action: Optional[Mapping[str, str]] = None,
    ) -> Dict[str, str]:
        layered: Dict[str, str] = {}
        for layer in (defaults, job, providers, shared, action):
            for k, v in (layer or {}).items():
                layered[k] = str(v)
        return {k: v for k, v in layered.items() if k not in self.runtime}

    def merged(self, layered: Mapping[str, str]) -> Dict[str, str]:
        env = dict(layered)
        env.update(self.runtime)
        return env

    def load_providers(
        self,
        providers: Iterable[EnvProvider],
        *,
        base: Optional[Mapping[str, str]] = None,
        on_loaded: Optional[Callable[[EnvProvider, int, int], None]] = None,
        on_failed: Optional[Callable[[ProviderFailure], None]] = None,
    ) -> Dict[str, str]:
        """
        Run providers in order and collect their assignments.

        Each provider sees the runtime environment plus whatever `base` and the
        previous providers set. Raises ProviderFailure on a non-zero exit.
        on_loaded(provider, vars_set, vars_skipped) is called after each one.
        """
        loaded: Dict[str, str] = {}
        for provider in providers:
            env = self.merged({**(base or {}), **loaded})
            proc = subprocess.run(
                provider.command,
                shell=True,
                env=env,
                text=True,
                capture_output=True,
            )
            if proc.returncode != 0:
                failure = ProviderFailure(
                    provider=provider.name,
                    exit_code=proc.returncode,
                    output=(proc.stderr or proc.stdout)[-4000:],
                )
                if on_failed is not None:
                    on_failed(failure)
                raise failure

            assigned = parse_assignments(proc.stdout)
            skipped = [k for k in assigned if k in self.runtime]
            for k, v in assigned.items():
                if k not in self.runtime:
                    loaded[k] = v
            if on_loaded is not None:
                on_loaded(provider, len(assigned) - len(skipped), len(skipped))
        return loaded
