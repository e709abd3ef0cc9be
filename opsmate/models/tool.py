"""
Data models shared by tool adapters, the command engine and the agent loop.

Represents translated commands, execution context and outcomes, and the
structured error explanations produced on failure.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Union

from opsmate.models.risk import RiskLevel


@dataclass
class Translation:
    """A candidate command produced from user intent."""

    command: str
    confidence: int = 0  # 0 - 100
    reasoning: str = ""
    tool_name: str = ""
    requires_files: List[str] = field(default_factory=list)

    def __post_init__(self) -> None:
        """Clamp confidence into the 0-100 range."""
        self.confidence = max(0, min(100, int(self.confidence)))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "command": self.command,
            "confidence": self.confidence,
            "reasoning": self.reasoning,
            "tool_name": self.tool_name,
            "requires_files": list(self.requires_files),
        }


@dataclass(frozen=True)
class ToolContext:
    """Execution environment flags, fixed for one classification or execution."""

    is_production: bool = False
    environment: str = "unknown"  # "development" | "staging" | "production" | "unknown"
    working_directory: str = "."
    kube_context: Optional[str] = None
    docker_host: Optional[str] = None

    @staticmethod
    def environment_from_name(name: str) -> str:
        """Guess the environment type from a cluster context or host name."""
        lower = name.lower()
        if "prod" in lower:
            return "production"
        if "stag" in lower:
            return "staging"
        if "dev" in lower:
            return "development"
        return "unknown"

    @classmethod
    def from_context_name(cls, name: str, **kwargs: Any) -> "ToolContext":
        """Build a context whose production flag follows the context name."""
        environment = cls.environment_from_name(name)
        return cls(
            is_production=environment == "production",
            environment=environment,
            kube_context=name,
            **kwargs,
        )


@dataclass
class ExecutionResult:
    """Outcome of running a command, produced by the execution collaborator."""

    exit_code: int
    stdout: str = ""
    stderr: str = ""
    duration: float = 0.0  # seconds

    @property
    def success(self) -> bool:
        return self.exit_code == 0

    @property
    def output(self) -> str:
        """Stdout when there is any, otherwise stderr."""
        return self.stdout if self.stdout else self.stderr

    def to_dict(self) -> Dict[str, Any]:
        return {
            "exit_code": self.exit_code,
            "stdout": self.stdout,
            "stderr": self.stderr,
            "duration": round(self.duration, 4),
        }


@dataclass(frozen=True)
class Solution:
    """One remediation option."""

    description: str
    command: Optional[str] = None
    risk_level: RiskLevel = RiskLevel.LOW

    def to_dict(self) -> Dict[str, Any]:
        return {
            "description": self.description,
            "command": self.command,
            "risk_level": self.risk_level.as_str(),
        }


@dataclass
class ErrorExplanation:
    """Structured diagnosis of a failure, solutions ordered best-first."""

    error_type: str
    reason: str
    possible_causes: List[str] = field(default_factory=list)
    solutions: List[Solution] = field(default_factory=list)
    recommended_solution: int = 0
    documentation_links: List[str] = field(default_factory=list)

    def __post_init__(self) -> None:
        if not 0 <= self.recommended_solution < len(self.solutions):
            raise ValueError(
                f"recommended_solution {self.recommended_solution} out of range "
                f"for {len(self.solutions)} solution(s) in '{self.error_type}'"
            )

    @property
    def recommended(self) -> Solution:
        return self.solutions[self.recommended_solution]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "error_type": self.error_type,
            "reason": self.reason,
            "possible_causes": list(self.possible_causes),
            "solutions": [s.to_dict() for s in self.solutions],
            "recommended_solution": self.recommended_solution,
            "documentation_links": list(self.documentation_links),
        }


@dataclass
class Executed:
    """The command ran and exited with status zero."""

    translation: Translation
    execution: ExecutionResult
    risk_level: RiskLevel = RiskLevel.LOW

    def to_dict(self) -> Dict[str, Any]:
        return {
            "result": "executed",
            "translation": self.translation.to_dict(),
            "execution": self.execution.to_dict(),
            "risk_level": self.risk_level.as_str(),
        }


@dataclass
class Cancelled:
    """The operator declined a command that required confirmation."""

    translation: Translation
    risk_level: RiskLevel = RiskLevel.LOW

    def to_dict(self) -> Dict[str, Any]:
        return {
            "result": "cancelled",
            "translation": self.translation.to_dict(),
            "risk_level": self.risk_level.as_str(),
        }


@dataclass
class ErrorExplained:
    """The command failed; the raw result is kept next to its explanation."""

    explanation: ErrorExplanation
    translation: Optional[Translation] = None
    execution: Optional[ExecutionResult] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "result": "error_explained",
            "explanation": self.explanation.to_dict(),
            "translation": self.translation.to_dict() if self.translation else None,
            "execution": self.execution.to_dict() if self.execution else None,
        }


CommandResult = Union[Executed, Cancelled, ErrorExplained]
