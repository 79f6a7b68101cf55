"""Step sequencing, promotion gating and plan-driven pipelines."""

from migratorx.workflow.runner import MutatingStep, ReadOnlyStep, Step, StepResult, WorkflowRunner

__all__ = ["MutatingStep", "ReadOnlyStep", "Step", "StepResult", "WorkflowRunner"]
