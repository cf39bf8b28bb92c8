"""
Step Runner

Runs an ordered list of async steps over a shared context. A fatal step that
raises stops the run; a best-effort step that raises is logged and recorded
as a warning, and the run continues.
"""

import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Generic, TypeVar

logger = logging.getLogger(__name__)

ContextT = TypeVar("ContextT")


@dataclass
class Step(Generic[ContextT]):
    name: str
    action: Callable[[ContextT], Awaitable[None]]
    fatal: bool = True
    condition: Callable[[ContextT], bool] | None = None  # Skipped when it returns False


@dataclass
class StepRunReport:
    completed: list[str] = field(default_factory=list)
    skipped: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    failed_step: str | None = None
    error: Exception | None = None

    @property
    def success(self) -> bool:
        return self.failed_step is None


class StepRunner(Generic[ContextT]):
    """Executes steps in order, honouring fatal vs best-effort semantics."""

    def __init__(self, steps: list[Step[ContextT]], name: str = "steps"):
        self.steps = steps
        self.name = name

    async def run(self, context: ContextT) -> StepRunReport:
        report = StepRunReport()

        for step in self.steps:
            if step.condition is not None and not step.condition(context):
                logger.debug(f"[{self.name}] Skipping step {step.name}")
                report.skipped.append(step.name)
                continue

            try:
                await step.action(context)
            except Exception as e:
                if step.fatal:
                    logger.error(
                        f"[{self.name}] Step {step.name} failed: {e}",
                        extra={"step": step.name},
                        exc_info=True,
                    )
                    report.failed_step = step.name
                    report.error = e
                    return report

                logger.warning(
                    f"[{self.name}] Best-effort step {step.name} failed: {e}",
                    extra={"step": step.name},
                )
                report.warnings.append(f"{step.name}: {e}")
                continue

            report.completed.append(step.name)

        return report
