"""
Pipeline Orchestrator Base Class

Foundation for the engine's step pipelines:
- steps run strictly in order, none skipped
- each step returns an evidence dict kept for later steps and the report
- an optional JSON audit record is written outside the artifact tree

Subclasses declare their steps and run each one; `run()` raises typed
errors for programmatic callers, `execute()` wraps it for the CLI.
"""

import json
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from scenario_engine.console import console
from scenario_engine.error_handling import ErrorClassifier, WorkflowError, format_error_with_guidance
from scenario_engine.progress import print_error, print_step_header, print_warning

logger = logging.getLogger(__name__)

AUDIT_DIR = Path(".scenario-engine") / "audit"


class ExecutionMode(Enum):
    """How questions to the user are answered."""
    INTERACTIVE = "interactive"          # Disambiguation through the console
    NON_INTERACTIVE = "non_interactive"  # Any question fails the invocation


@dataclass(frozen=True)
class PipelineStep:
    """One named step of a pipeline."""
    id: str
    name: str


class AuditTrail:
    """
    Timestamped events of one pipeline invocation.

    Usage:
        trail = AuditTrail()
        trail.record("step_completed", step_id="1-resolve")
        trail.save(project_root / AUDIT_DIR, "generate", summary)
    """

    def __init__(self):
        self.events: List[Dict[str, Any]] = []

    def record(self, event_type: str, **data: Any) -> None:
        self.events.append({
            "timestamp": datetime.now().isoformat(),
            "event_type": event_type,
            "data": data,
        })

    def save(self, directory: Path, name: str, summary: Dict[str, Any]) -> Path:
        """
        Write the summary plus every event as one JSON document.

        The document is written to a temporary file and renamed into place.

        Returns:
            Path of the record
        """
        directory.mkdir(parents=True, exist_ok=True)
        target = directory / f"{name}-{datetime.now().strftime('%Y%m%d-%H%M%S-%f')}.json"
        temp = target.with_suffix(".json.tmp")
        with open(temp, "w", encoding="utf-8") as f:
            json.dump({**summary, "audit_log": self.events}, f, indent=2, default=str)
        temp.replace(target)
        return target


class WorkflowOrchestrator(ABC):
    """
    Base class for engine pipelines.

    Subclasses must implement:
    - _define_steps(): the ordered PipelineStep list
    - _execute_step(): run one step and return its evidence

    Example:
        class RebuildWorkflow(WorkflowOrchestrator):
            def _define_steps(self):
                return [PipelineStep("1-conventions", "Detect Conventions"),
                        PipelineStep("2-rebuild", "Rebuild Catalogs")]

            def _execute_step(self, step, prior_evidence):
                ...
    """

    def __init__(
        self,
        workflow_name: str,
        workflow_id: str,
        project_root: Union[str, Path],
        mode: ExecutionMode = ExecutionMode.INTERACTIVE,
        audit: bool = False,
        quiet_mode: bool = False
    ):
        """
        Initialize the orchestrator.

        Args:
            workflow_name: Pipeline name, used for the audit record (e.g. "generate")
            workflow_id: Identity of this invocation (e.g. the feature reference)
            project_root: Project whose artifact tree the pipeline works on
            mode: INTERACTIVE or NON_INTERACTIVE
            audit: Write a JSON audit record when the pipeline finishes
            quiet_mode: Suppress banners and step headers
        """
        self.workflow_name = workflow_name
        self.workflow_id = workflow_id
        self.project_root = Path(project_root)
        self.mode = mode
        self.audit = audit
        self.quiet_mode = quiet_mode

        self.steps_completed: List[str] = []
        self.step_evidence: Dict[str, Dict[str, Any]] = {}
        self.start_time = datetime.now()
        self.last_error: Optional[Exception] = None
        self.trail = AuditTrail()
        self._steps: List[PipelineStep] = []

    @abstractmethod
    def _define_steps(self) -> List[PipelineStep]:
        """Ordered steps of the pipeline."""

    @abstractmethod
    def _execute_step(self, step: PipelineStep, prior_evidence: Dict[str, Dict[str, Any]]) -> Dict[str, Any]:
        """
        Run one step.

        Args:
            step: Step to run
            prior_evidence: Evidence of the steps already completed, by step id

        Returns:
            Evidence dict (JSON-serializable values)

        Raises:
            WorkflowError: If the step cannot complete
        """

    @property
    def current_step(self) -> Optional[PipelineStep]:
        """First step not yet completed."""
        return next((s for s in self._steps if s.id not in self.steps_completed), None)

    def run(self) -> None:
        """
        Run every step in order.

        Raises:
            WorkflowError: The first typed failure of any step
        """
        self._steps = self._define_steps()
        self.trail.record(
            "workflow_started",
            workflow_name=self.workflow_name,
            workflow_id=self.workflow_id,
            mode=self.mode.value,
            total_steps=len(self._steps),
        )
        try:
            for position, step in enumerate(self._steps, 1):
                self._run_step(position, step)
        except Exception as e:
            self.last_error = e
            self._finish("failed", str(e))
            raise
        self._finish("completed")

    def execute(self) -> bool:
        """
        Run the pipeline for the CLI, printing guidance on failure.

        Returns:
            True if every step completed
        """
        if not self.quiet_mode:
            console.rule(f"{self.workflow_name.upper()} {self.workflow_id or ''}".strip(), style="accent1")
            console.print(f"Mode: {self.mode.value}", style="secondary")

        try:
            self.run()
        except KeyboardInterrupt:
            print_warning("Interrupted by user (Ctrl+C); nothing was written")
            return False
        except (WorkflowError, OSError) as e:
            step = self.current_step
            print_error(str(e))
            console.print(
                format_error_with_guidance(
                    e,
                    context=getattr(e, "context", None),
                    workflow_name=self.workflow_name,
                    step_name=step.name if step else "",
                ),
                style="secondary",
                markup=False,
            )
            return False

        if not self.quiet_mode:
            duration = (datetime.now() - self.start_time).total_seconds()
            console.rule(
                f"Done in {duration:.1f}s ({len(self.steps_completed)}/{len(self._steps)} steps)",
                style="success",
            )
        return True

    def _run_step(self, position: int, step: PipelineStep) -> None:
        if not self.quiet_mode:
            print_step_header(position, step.name, len(self._steps))
        self.trail.record("step_started", step_id=step.id, step_name=step.name)
        logger.debug("Step %s started", step.id)

        try:
            evidence = self._execute_step(step, dict(self.step_evidence))
            if not isinstance(evidence, dict):
                raise TypeError(f"Step '{step.id}' returned {type(evidence).__name__}, expected dict")
        except Exception as e:
            self.trail.record(
                "step_failed",
                step_id=step.id,
                error=str(e),
                error_type=ErrorClassifier.classify(e).value,
            )
            logger.debug("Step %s failed: %s", step.id, e)
            raise

        self.step_evidence[step.id] = evidence
        self.steps_completed.append(step.id)
        self.trail.record("step_completed", step_id=step.id, evidence_keys=sorted(evidence))

    def _finish(self, status: str, error: Optional[str] = None) -> None:
        self.trail.record(
            "workflow_finalized",
            status=status,
            error=error,
            steps_completed=len(self.steps_completed),
            total_steps=len(self._steps),
        )
        if not self.audit:
            return

        now = datetime.now()
        summary = {
            "workflow": self.workflow_name,
            "workflow_id": self.workflow_id,
            "mode": self.mode.value,
            "status": status,
            "start_time": self.start_time.isoformat(),
            "end_time": now.isoformat(),
            "duration_seconds": (now - self.start_time).total_seconds(),
            "steps_completed": self.steps_completed,
            "step_evidence": self.step_evidence,
        }
        if error:
            summary["error"] = error
        try:
            path = self.trail.save(self.project_root / AUDIT_DIR, self.workflow_name, summary)
        except OSError as e:
            logger.warning("Failed to write audit record: %s", e)
            return
        logger.info("Audit record written to %s", path)
        if not self.quiet_mode:
            console.print(f"Audit record: {path}", style="secondary", markup=False)
