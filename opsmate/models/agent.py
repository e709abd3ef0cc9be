"""
Data models for the autonomous diagnostic loop.

Represents the think-act-observe history, the loop status and the state a
single AgentLoop owns for the duration of a run.
"""

import time
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from opsmate.models.risk import RiskLevel
from opsmate.models.tool import ErrorExplanation, ExecutionResult


class StepType(Enum):
    """Kind of entry in the agent history."""

    THOUGHT = "thought"
    ACTION = "action"
    OBSERVATION = "observation"


@dataclass(frozen=True)
class Step:
    """One immutable entry in the agent history."""

    step_number: int
    step_type: StepType
    content: str
    tool_used: Optional[str] = None
    success: Optional[bool] = None
    risk_level: Optional[RiskLevel] = None
    execution: Optional[ExecutionResult] = None
    explanation: Optional[ErrorExplanation] = None
    timestamp: datetime = field(default_factory=datetime.now)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "step_number": self.step_number,
            "step_type": self.step_type.value,
            "content": self.content,
            "tool_used": self.tool_used,
            "success": self.success,
            "risk_level": self.risk_level.as_str() if self.risk_level else None,
            "execution": self.execution.to_dict() if self.execution else None,
            "explanation": self.explanation.to_dict() if self.explanation else None,
            "timestamp": self.timestamp.isoformat(),
        }


class AgentPhase(Enum):
    RUNNING = "running"
    COMPLETED = "completed"
    STOPPED = "stopped"


@dataclass(frozen=True)
class AgentStatus:
    """Loop status; STOPPED carries the reason the loop ended."""

    phase: AgentPhase
    reason: Optional[str] = None

    @classmethod
    def running(cls) -> "AgentStatus":
        return cls(AgentPhase.RUNNING)

    @classmethod
    def completed(cls) -> "AgentStatus":
        return cls(AgentPhase.COMPLETED)

    @classmethod
    def stopped(cls, reason: str) -> "AgentStatus":
        return cls(AgentPhase.STOPPED, reason)

    @property
    def is_terminal(self) -> bool:
        return self.phase != AgentPhase.RUNNING

    def __str__(self) -> str:
        if self.phase == AgentPhase.STOPPED:
            return f"STOPPED({self.reason})"
        return self.phase.name


# Reasons the loop records when it stops without a root cause
STOP_MAX_ITERATIONS = "max_iterations"
STOP_TIMEOUT = "timeout"
STOP_INFERENCE_ERROR = "inference_error"
STOP_EXECUTION_ERROR = "execution_error"


@dataclass
class AgentState:
    """Mutable state of one diagnostic run."""

    task: str
    max_iterations: int = 20
    max_duration: float = 300.0  # seconds
    iteration: int = 0
    history: List[Step] = field(default_factory=list)
    collected_info: List[Tuple[str, str]] = field(default_factory=list)
    status: AgentStatus = field(default_factory=AgentStatus.running)
    root_cause: Optional[str] = None
    started_at: float = field(default_factory=time.monotonic)

    @property
    def elapsed(self) -> float:
        return time.monotonic() - self.started_at

    def should_continue(self) -> bool:
        """True while running and under both the iteration and the time bound."""
        return (
            self.status.phase == AgentPhase.RUNNING
            and self.iteration < self.max_iterations
            and self.elapsed < self.max_duration
        )

    def next_step_number(self) -> int:
        return len(self.history) + 1

    def add_step(self, step: Step) -> None:
        """
        Append a step to the history.

        Raises:
            RuntimeError: If the run has already completed or stopped.
        """
        if self.status.is_terminal:
            raise RuntimeError(f"Cannot add step to a finished run ({self.status})")
        self.history.append(step)

    def add_info(self, source: str, value: str) -> None:
        self.collected_info.append((source, value))

    def get_recent_steps(self, step_type: StepType, n: int) -> List[Step]:
        """Return up to the last n steps of the given type, oldest first."""
        if n <= 0:
            return []
        matching = [s for s in self.history if s.step_type == step_type]
        return matching[-n:]

    def complete(self, root_cause: str) -> None:
        if self.status.is_terminal:
            raise RuntimeError(f"Run already finished ({self.status})")
        self.root_cause = root_cause
        self.status = AgentStatus.completed()

    def stop(self, reason: str) -> None:
        if self.status.is_terminal:
            raise RuntimeError(f"Run already finished ({self.status})")
        self.status = AgentStatus.stopped(reason)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "task": self.task,
            "iteration": self.iteration,
            "max_iterations": self.max_iterations,
            "status": self.status.phase.name,
            "stop_reason": self.status.reason,
            "root_cause": self.root_cause,
            "elapsed": round(self.elapsed, 3),
            "history": [s.to_dict() for s in self.history],
            "collected_info": [
                {"source": source, "value": value}
                for source, value in self.collected_info
            ],
        }
