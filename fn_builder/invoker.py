"""Build invoker: run one external command to completion.

Output (stdout and stderr combined) is streamed line by line to this
process's stderr and the debug log as it arrives, and the tail is kept for
error reports. There is no retry and no timeout here; a caller that needs a
deadline wraps the whole pipeline.
"""

from __future__ import annotations

import logging
import os
import shlex
import shutil
import subprocess
import sys
import time
from collections import deque
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass
from pathlib import Path
from typing import TextIO

from fn_builder.errors import BuildToolError

logger = logging.getLogger(__name__)

OUTPUT_TAIL_LINES = 200


@dataclass
class InvokeResult:
    tool: str
    command: str
    exit_code: int
    output: str
    duration: float


def spawn_env(
    base: Mapping[str, str] | None = None,
    overrides: Mapping[str, str] | None = None,
    bin_dirs: Iterable[Path | str] = (),
) -> dict[str, str]:
    """Return a child environment with *bin_dirs* prepended to ``PATH``."""
    env = dict(os.environ if base is None else base)
    env.update(overrides or {})
    parts = [str(d) for d in bin_dirs if d] + [env.get("PATH", "")]
    env["PATH"] = os.pathsep.join(p for p in parts if p)
    return env


def invoke(
    tool: str,
    args: Sequence[str],
    cwd: Path,
    env: Mapping[str, str] | None = None,
    stream: TextIO | None = None,
) -> InvokeResult:
    """Run ``tool args...`` in *cwd*; raise BuildToolError on non-zero exit.

    *tool* is looked up on the ``PATH`` of *env* (not of this process) unless
    it already is a path. A tool that cannot be started reports exit code 127.
    """
    env = dict(os.environ if env is None else env)
    exe = tool if os.sep in tool else (shutil.which(tool, path=env.get("PATH")) or tool)
    cmd = [exe, *args]
    cmd_str = shlex.join([tool, *args])
    out = stream if stream is not None else sys.stderr
    tail: deque[str] = deque(maxlen=OUTPUT_TAIL_LINES)

    logger.info("running: %s (cwd=%s)", cmd_str, cwd)
    started = time.monotonic()
    try:
        proc = subprocess.Popen(
            cmd,
            cwd=cwd,
            env=env,
            stdout=subprocess.PIPE,
            stderr=subprocess.STDOUT,
            text=True,
            errors="replace",
        )
    except OSError as e:
        logger.error("cannot start %s: %s", tool, e)
        raise BuildToolError(tool, 127, str(e)) from e

    with proc:
        for line in proc.stdout or ():
            text = line.rstrip("\n")
            tail.append(text)
            logger.debug("%s: %s", tool, text)
            out.write(line)
            out.flush()
        exit_code = proc.wait()

    duration = time.monotonic() - started
    output = "\n".join(tail)
    if exit_code != 0:
        logger.error("%s failed with exit code %s after %.1fs", cmd_str, exit_code, duration)
        raise BuildToolError(tool, exit_code, output)
    logger.info("%s finished in %.1fs", cmd_str, duration)
    return InvokeResult(
        tool=tool, command=cmd_str, exit_code=exit_code, output=output, duration=duration
    )


__all__ = ["InvokeResult", "invoke", "spawn_env"]
