from __future__ import annotations

import os
import subprocess
from dataclasses import dataclass
from pathlib import Path

DEFAULT_ENV = {
    "NO_COLOR": "1",
}


@dataclass(frozen=True)
class ExecResult:
    name: str
    command: list[str]
    returncode: int
    stdout: str
    stderr: str

    @property
    def ok(self) -> bool:
        return self.returncode == 0


def build_env(extra_env: dict[str, str] | None = None) -> dict[str, str]:
    env = dict(os.environ)
    for key, value in DEFAULT_ENV.items():
        env.setdefault(key, value)
    if extra_env:
        env.update(extra_env)
    return env


def run_command(
    name: str,
    command: list[str],
    cwd: Path | None = None,
    *,
    timeout: float | None = None,
) -> ExecResult:
    """Run ``command`` without a shell and capture its output.

    A missing binary, an OS error or a timeout become a non-zero result;
    the caller decides what a failure means.
    """
    try:
        proc = subprocess.run(
            command,
            cwd=cwd,
            env=build_env(),
            capture_output=True,
            text=True,
            encoding="utf-8",
            errors="replace",
            timeout=timeout,
            check=False,
        )
        return ExecResult(name=name, command=command, returncode=proc.returncode, stdout=proc.stdout, stderr=proc.stderr)
    except FileNotFoundError:
        binary = command[0] if command else "<empty>"
        return ExecResult(name=name, command=command, returncode=127, stdout="", stderr=f"ENOENT:{binary}")
    except subprocess.TimeoutExpired:
        return ExecResult(name=name, command=command, returncode=124, stdout="", stderr=f"TIMEOUT:{timeout}")
    except OSError as exc:
        binary = command[0] if command else "<empty>"
        return ExecResult(name=name, command=command, returncode=127, stdout="", stderr=f"OSERROR:{binary}:{exc}")
