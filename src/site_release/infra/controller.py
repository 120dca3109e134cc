"""Lifecycle controller for the infrastructure engine.

Drives ``validate -> init -> plan -> apply/destroy -> output`` and turns the
engine's exit codes into domain results. The plan stage overloads exit code 2
to mean "changes pending"; that is reported as ``PlanStatus.CHANGES_PENDING``
and never raised.
"""

from __future__ import annotations

import json
import threading
from collections.abc import Mapping
from contextlib import contextmanager
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Dict, FrozenSet, Iterator, List, Optional, Sequence

from ..config import InfraConfig
from ..errors import (
    ConfigurationError,
    EngineBusyError,
    OutputParseError,
    ReleaseError,
    ToolExecutionError,
    UserAbort,
)
from ..utils.logging import get_logger
from .confirm import ConfirmationStrategy, KeypressConfirmation
from .session import EngineSession, InfraCommandResult

logger = get_logger(__name__)

PLAN_EXIT_NO_CHANGES = 0
PLAN_EXIT_CHANGES_PENDING = 2


class InfraStage(Enum):
    """Where the controller is in the provisioning lifecycle."""
    UNINITIALIZED = "uninitialized"
    VALIDATED = "validated"
    INITIALIZED = "initialized"
    PLAN_CLEAN = "plan_clean"
    PLAN_PENDING = "plan_pending"
    APPLIED = "applied"
    DESTROYED = "destroyed"
    OUTPUTS_FETCHED = "outputs_fetched"
    FAILED = "failed"


class PlanStatus(Enum):
    """Outcome of ``plan -detailed-exitcode``; errors are raised instead."""
    NO_CHANGES = "no_changes"
    CHANGES_PENDING = "changes_pending"


@dataclass
class PlanResult:
    status: PlanStatus
    result: InfraCommandResult

    @property
    def has_changes(self) -> bool:
        return self.status is PlanStatus.CHANGES_PENDING


def interpret_plan_exit(result: InfraCommandResult) -> PlanResult:
    """Map a plan exit code onto ``PlanStatus``; anything but 0 or 2 raises."""
    if result.exit_code == PLAN_EXIT_NO_CHANGES:
        return PlanResult(PlanStatus.NO_CHANGES, result)
    if result.exit_code == PLAN_EXIT_CHANGES_PENDING:
        return PlanResult(PlanStatus.CHANGES_PENDING, result)
    raise ToolExecutionError(result.command, result.exit_code, result.stderr, result.stdout)


class InfraOutputs(Mapping):
    """Engine outputs as ``name -> string value``.

    Built only through :meth:`parse`, which either accepts the whole payload
    or raises; there is no partially parsed state.
    """

    def __init__(self, values: Dict[str, str], sensitive: FrozenSet[str] = frozenset()) -> None:
        self._values = dict(values)
        self.sensitive = frozenset(sensitive)

    def __getitem__(self, key: str) -> str:
        return self._values[key]

    def __iter__(self) -> Iterator[str]:
        return iter(self._values)

    def __len__(self) -> int:
        return len(self._values)

    def __repr__(self) -> str:
        return f"InfraOutputs({sorted(self._values)})"

    def display_value(self, key: str) -> str:
        return "<sensitive>" if key in self.sensitive else self._values[key]

    @classmethod
    def parse(cls, stdout: str, command: Sequence[str] = ("output", "-json")) -> "InfraOutputs":
        if not stdout.strip():
            return cls({})
        try:
            payload = json.loads(stdout)
        except json.JSONDecodeError as exc:
            raise OutputParseError(command, f"invalid JSON: {exc}", stdout) from exc
        if not isinstance(payload, dict):
            raise OutputParseError(command, "expected a JSON object", stdout)

        values: Dict[str, str] = {}
        sensitive = set()
        for name, entry in payload.items():
            if not isinstance(entry, dict) or "value" not in entry:
                raise OutputParseError(command, f"output {name!r} has no value", stdout)
            value = entry["value"]
            if value is None:
                continue
            values[name] = value if isinstance(value, str) else json.dumps(value, sort_keys=True)
            if entry.get("sensitive"):
                sensitive.add(name)
        return cls(values, frozenset(sensitive))


@dataclass
class ApplyResult:
    """What ``apply`` did: a real apply with outputs, or a dry-run plan."""

    applied: bool
    plan: Optional[PlanResult] = None
    outputs: Optional[InfraOutputs] = None


class InfraController:
    """Runs the engine through its lifecycle, one command at a time."""

    def __init__(
        self,
        config: InfraConfig,
        session: Optional[EngineSession] = None,
        confirmation: Optional[ConfirmationStrategy] = None,
        verbose: bool = False,
    ) -> None:
        self.infra_dir = Path(config.infra_dir)
        self.required_files: List[str] = list(config.required_files)
        self.plan_file = config.plan_file
        self.verbose = verbose
        self.session = session or EngineSession(self.infra_dir, binary=config.engine_binary, verbose=verbose)
        self.confirmation = confirmation or KeypressConfirmation()
        self.stage = InfraStage.UNINITIALIZED
        self.last_outputs: Optional[InfraOutputs] = None
        self._lock = threading.Lock()

    # ------------------------------------------------------------------ public

    def validate(self) -> None:
        with self._exclusive():
            self._validate()

    def init(self) -> None:
        with self._exclusive():
            self._validate()
            self._init()

    def plan(self) -> PlanResult:
        with self._exclusive():
            return self._plan()

    def apply(self, auto_approve: bool = False, dry_run: bool = False) -> ApplyResult:
        """
        Apply the saved plan artifact, then fetch outputs.

        Without ``auto_approve`` the confirmation strategy is asked after the
        plan is written and before the engine touches anything.

        With ``dry_run`` the apply is replaced by a plan; nothing is changed.
        """
        with self._exclusive():
            if dry_run:
                logger.warning("DRY RUN mode - running plan instead of apply")
                return ApplyResult(applied=False, plan=self._plan())

            self._validate()
            self._init()

            plan_args = ["plan", "-input=false", f"-out={self.plan_file}"]
            plan_result = self._run(plan_args + self._color_args())
            logger.info("Deployment plan generated: %s", self.plan_file)

            # 引擎执行已保存的计划时不会再询问，这里必须先确认
            if not auto_approve:
                if plan_result.stdout:
                    logger.info("%s", plan_result.stdout)
                logger.warning("The saved plan will be applied to live infrastructure")
                logger.warning("Use --auto-approve to skip this confirmation")
                if not self.confirmation.confirm():
                    raise UserAbort("Apply was not confirmed")

            apply_args = ["apply"]
            if auto_approve:
                apply_args.append("-auto-approve")
            apply_args.extend(self._color_args())
            apply_args.append(self.plan_file)
            logger.info("Applying infrastructure changes...")
            self._run(apply_args)
            self.stage = InfraStage.APPLIED
            logger.info("Infrastructure changes applied successfully")

            logger.info("Fetching infrastructure outputs...")
            return ApplyResult(applied=True, outputs=self._outputs())

    def destroy(self, auto_approve: bool = False) -> None:
        """Destroy every managed resource; asks first unless ``auto_approve``."""
        with self._exclusive():
            if not auto_approve:
                logger.warning("This will destroy all infrastructure resources!")
                logger.warning("Use --auto-approve to skip this confirmation")
                if not self.confirmation.confirm():
                    raise UserAbort("Destroy was not confirmed")

            self._validate()
            self._init()

            destroy_args = ["destroy"]
            if auto_approve:
                destroy_args.append("-auto-approve")
            destroy_args.extend(self._color_args())
            logger.info("Destroying infrastructure...")
            self._run(destroy_args, passthrough=None if auto_approve else True)
            self.stage = InfraStage.DESTROYED
            logger.info("Infrastructure destroyed successfully")

    def outputs(self) -> InfraOutputs:
        with self._exclusive():
            return self._outputs()

    # ---------------------------------------------------------------- internal

    @contextmanager
    def _exclusive(self) -> Iterator[None]:
        # 引擎持有状态文件锁，同一目录不允许并发调用
        if not self._lock.acquire(blocking=False):
            raise EngineBusyError(f"Another engine command is already running in {self.infra_dir}")
        try:
            yield
        except ReleaseError:
            self.stage = InfraStage.FAILED
            raise
        finally:
            self._lock.release()

    def _validate(self) -> None:
        if not self.infra_dir.is_dir():
            raise ConfigurationError(f"Infrastructure directory not found: {self.infra_dir}")
        missing = [name for name in self.required_files if not (self.infra_dir / name).is_file()]
        if missing:
            raise ConfigurationError("Missing required files", missing)
        self.stage = InfraStage.VALIDATED
        logger.info("Infrastructure directory validated")
        logger.debug("Infrastructure directory: %s", self.infra_dir)

    def _init(self) -> None:
        self._run(["init", "-upgrade", "-input=false"])
        self.stage = InfraStage.INITIALIZED
        logger.info("Infrastructure initialized successfully")

    def _plan(self) -> PlanResult:
        self._validate()
        self._init()
        args = ["plan", "-detailed-exitcode", "-input=false", f"-out={self.plan_file}"]
        result = self.session.run(args + self._color_args())
        plan = interpret_plan_exit(result)
        if plan.has_changes:
            self.stage = InfraStage.PLAN_PENDING
            logger.info("Infrastructure changes detected")
        else:
            self.stage = InfraStage.PLAN_CLEAN
            logger.info("No infrastructure changes needed")
        return plan

    def _outputs(self) -> InfraOutputs:
        args = ["output", "-json"]
        result = self._run(args, passthrough=False)
        outputs = InfraOutputs.parse(result.stdout, result.command)
        self.last_outputs = outputs
        self.stage = InfraStage.OUTPUTS_FETCHED
        if not outputs:
            logger.info("No infrastructure outputs available")
        for name in outputs:
            logger.debug("Output %s=%s", name, outputs.display_value(name))
        return outputs

    def _run(self, args: List[str], passthrough: Optional[bool] = None) -> InfraCommandResult:
        result = self.session.run(args, passthrough=passthrough)
        if not result.ok:
            raise ToolExecutionError(result.command, result.exit_code, result.stderr, result.stdout)
        return result

    def _color_args(self) -> List[str]:
        # 捕获输出时去掉 ANSI 颜色
        return [] if self.verbose else ["-no-color"]
