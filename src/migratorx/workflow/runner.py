"""Sequential execution of idempotent steps with checkpointing."""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field

from migratorx.domain.context import RunContext
from migratorx.domain.findings import Finding, Summary, has_block, summarize
from migratorx.errors import ConfigurationError, OperationFailed, RunCancelledError
from migratorx.state.base import CheckpointState, MemoryState


@dataclass
class StepResult:
    findings: list[Finding] = field(default_factory=list)


class Step(ABC):
    """A single unit of work in a migration plan.

    The runner refuses to start unless every step is idempotent, and only runs
    steps that mutate target systems when mutations are explicitly allowed.
    """

    @property
    @abstractmethod
    def name(self) -> str: ...

    @property
    @abstractmethod
    def idempotent(self) -> bool: ...

    @property
    @abstractmethod
    def mutates(self) -> bool: ...

    @abstractmethod
    def run(self, ctx: RunContext, state: CheckpointState) -> StepResult: ...


StepFn = Callable[[RunContext, CheckpointState], StepResult]


class _FunctionStep(Step):
    _mutates = False

    def __init__(self, name: str, run_fn: StepFn) -> None:
        self._name = name
        self._run_fn = run_fn

    @property
    def name(self) -> str:
        return self._name

    @property
    def idempotent(self) -> bool:
        return True

    @property
    def mutates(self) -> bool:
        return self._mutates

    def run(self, ctx: RunContext, state: CheckpointState) -> StepResult:
        return self._run_fn(ctx, state)


class ReadOnlyStep(_FunctionStep):
    """Step that only inspects target systems."""


class MutatingStep(_FunctionStep):
    """Step that changes target systems; blocked unless mutations are allowed."""

    _mutates = True


class WorkflowRunner:
    """Runs steps in order and halts on the first BLOCK.

    For each step: stop if the context is done, skip it if its completion is
    already checkpointed, BLOCK if it mutates and mutations are not allowed,
    otherwise run it. Only a step with no BLOCK findings is marked completed.
    WARN and INFO findings are recorded and do not stop the run.
    """

    def __init__(
        self,
        steps: Sequence[Step],
        state: CheckpointState | None = None,
        allow_mutations: bool = False,
        logger: logging.Logger | None = None,
    ) -> None:
        self._steps = list(steps)
        self._state = state if state is not None else MemoryState()
        self._allow_mutations = allow_mutations
        self._logger = logger or logging.getLogger(__name__)
        self._results: dict[str, StepResult] = {}
        self._halted_at: str | None = None

    @property
    def state(self) -> CheckpointState:
        return self._state

    @property
    def halted_at(self) -> str | None:
        """Name of the step that produced the halting BLOCK, if any."""
        return self._halted_at

    def results(self) -> dict[str, StepResult]:
        return {name: StepResult(list(result.findings)) for name, result in self._results.items()}

    def findings(self) -> list[Finding]:
        """All recorded findings in step order, tagged with their step name."""
        return [
            finding.with_meta(step=name)
            for name, result in self._results.items()
            for finding in result.findings
        ]

    def run(self, ctx: RunContext) -> Summary:
        for step in self._steps:
            if not step.idempotent:
                raise ConfigurationError(
                    f"step {step.name!r} is not idempotent; all steps must be idempotent"
                )

        self._results = {}
        self._halted_at = None
        summary = Summary()

        for step in self._steps:
            if ctx.done:
                self._logger.warning("run %s before step %s", ctx.reason, step.name)
                raise RunCancelledError(step.name, summary, ctx.reason or "cancelled")

            if self._state.is_completed(step.name):
                self._logger.info("skipping completed step: %s", step.name)
                continue

            if step.mutates and not self._allow_mutations:
                block = Finding.block(
                    "mutating step blocked by configuration", step=step.name
                )
                self._results[step.name] = StepResult([block])
                self._halted_at = step.name
                self._logger.warning(
                    "BLOCK: step %s mutates but mutations are not allowed", step.name
                )
                return summary + summarize([block])

            self._logger.info("running step: %s", step.name)
            findings = self._run_step(ctx, step)
            step_summary = summarize(findings)
            summary = summary + step_summary
            self._results[step.name] = StepResult(findings)

            if has_block(findings):
                self._halted_at = step.name
                self._logger.warning("BLOCK encountered in step %s; halting plan execution", step.name)
                return summary

            self._state.mark_completed(step.name)
            self._logger.info(
                "completed step: %s (INFO=%d WARN=%d BLOCK=%d)",
                step.name,
                step_summary.info,
                step_summary.warn,
                step_summary.block,
            )

        return summary

    def _run_step(self, ctx: RunContext, step: Step) -> list[Finding]:
        try:
            result = step.run(ctx, self._state)
        except OperationFailed as exc:
            return [*exc.findings, Finding.block(f"step error: {exc}", step=step.name)]
        except Exception as exc:
            self._logger.error("step %s raised: %s", step.name, exc)
            return [Finding.block(f"step error: {exc}", step=step.name)]
        return list(result.findings) if result is not None else []
