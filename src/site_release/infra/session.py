"""Subprocess session for the infrastructure engine."""

from __future__ import annotations

import os
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional, Sequence

from ..utils.logging import get_logger

logger = get_logger(__name__)


@dataclass
class InfraCommandResult:
    """Raw result of one engine invocation."""

    command: List[str]
    exit_code: int
    stdout: str
    stderr: str

    @property
    def ok(self) -> bool:
        return self.exit_code == 0


class EngineSession:
    """
    Runs engine commands (``tofu init``, ``tofu plan`` ...) inside the infra directory.

    Output is captured unless ``verbose`` is set, in which case the engine
    writes straight to the terminal. Commands that may prompt the operator
    can request the same passthrough explicitly.
    """

    def __init__(self, working_dir: Path, binary: str = "tofu", verbose: bool = False) -> None:
        self.working_dir = Path(working_dir)
        self.binary = binary
        self.verbose = verbose

    def run(self, args: Sequence[str], *, passthrough: Optional[bool] = None) -> InfraCommandResult:
        """
        Execute ``<binary> <args>`` synchronously.

        Args:
            args: Engine sub-command and its flags
            passthrough: True inherits stdio, False always captures,
                None follows the session's verbose setting

        Returns:
            InfraCommandResult; a missing binary is reported as exit code 127
        """
        command = [self.binary, *args]
        inherit = self.verbose if passthrough is None else passthrough
        logger.debug("Running: %s (cwd=%s)", " ".join(command), self.working_dir)

        try:
            process = subprocess.run(
                command,
                cwd=str(self.working_dir),
                capture_output=not inherit,
                text=True,
                env=self._get_env(),
                check=False,
            )
        except FileNotFoundError:
            return InfraCommandResult(
                command=command,
                exit_code=127,
                stdout="",
                stderr=f"{self.binary} not found or failed to execute",
            )
        except OSError as exc:
            return InfraCommandResult(
                command=command,
                exit_code=-1,
                stdout="",
                stderr=str(exc),
            )

        return InfraCommandResult(
            command=command,
            exit_code=process.returncode,
            stdout=(process.stdout or "").strip(),
            stderr=(process.stderr or "").strip(),
        )

    def _get_env(self) -> dict:
        """Get environment variables for subprocess."""
        env = os.environ.copy()
        # 省略引擎输出里的"下一步"提示
        env.setdefault("TF_IN_AUTOMATION", "1")
        return env
