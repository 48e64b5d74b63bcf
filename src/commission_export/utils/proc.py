from __future__ import annotations

import subprocess
from dataclasses import dataclass
from typing import Callable, Optional, Sequence


@dataclass(frozen=True)
class ToolResult:
    returncode: int
    output: str

    @property
    def ok(self) -> bool:
        return self.returncode == 0


ToolRunner = Callable[[Sequence[str], Optional[float]], ToolResult]


def run_tool(argv: Sequence[str], timeout_s: Optional[float] = None) -> ToolResult:
    """Run an external tool and capture its combined stdout/stderr.

    Never raises for tool failures: a missing executable is reported as exit
    code 127 and a timeout as 124, mirroring what a shell would return.
    """
    args = [str(arg) for arg in argv]
    try:
        proc = subprocess.run(
            args,
            stdout=subprocess.PIPE,
            stderr=subprocess.STDOUT,
            text=True,
            timeout=timeout_s,
            check=False,
        )
    except FileNotFoundError as exc:
        return ToolResult(returncode=127, output=str(exc))
    except subprocess.TimeoutExpired as exc:
        partial = exc.output or ""
        if isinstance(partial, bytes):
            partial = partial.decode("utf-8", errors="replace")
        return ToolResult(
            returncode=124,
            output=f"{partial}\nTimed out after {timeout_s}s: {' '.join(args)}",
        )
    return ToolResult(returncode=proc.returncode, output=proc.stdout or "")


__all__ = ["ToolResult", "ToolRunner", "run_tool"]
