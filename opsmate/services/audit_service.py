"""
Audit sink for risk decisions and executed actions.

The core only ever writes to the sink. The default implementation emits one
JSON object per line through the dedicated audit logger.
"""

import getpass
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from opsmate.models.risk import RiskLevel
from opsmate.utils.logger import setup_audit_logger, setup_logger

logger = setup_logger(__name__)


class AuditEventType(Enum):
    RISK_CLASSIFIED = "risk_classified"
    COMMAND_EXECUTED = "command_executed"
    COMMAND_CANCELLED = "command_cancelled"
    AGENT_ACTION = "agent_action"


class ConfirmationOutcome(Enum):
    NOT_REQUIRED = "not_required"
    CONFIRMED = "confirmed"
    DECLINED = "declined"


def _current_user() -> str:
    try:
        return getpass.getuser()
    except (KeyError, OSError):
        return "unknown"


@dataclass
class AuditEvent:
    """One audit record."""

    event: AuditEventType
    command: str
    risk_level: RiskLevel
    tool: Optional[str] = None
    confirmation: Optional[ConfirmationOutcome] = None
    exit_code: Optional[int] = None
    environment: str = "unknown"
    user_input: Optional[str] = None
    confidence: Optional[int] = None
    user: str = field(default_factory=_current_user)
    recorded_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    id: str = field(default_factory=lambda: str(uuid.uuid4()))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "event": self.event.value,
            "command": self.command,
            "risk_level": self.risk_level.as_str(),
            "tool": self.tool,
            "confirmation": self.confirmation.value if self.confirmation else None,
            "exit_code": self.exit_code,
            "environment": self.environment,
            "user_input": self.user_input,
            "confidence": self.confidence,
            "user": self.user,
            "recorded_at": self.recorded_at.isoformat(),
        }


class AuditSink(ABC):
    """Write-only destination for audit events."""

    @abstractmethod
    def record(self, event: AuditEvent) -> None:
        ...


class NullAuditSink(AuditSink):
    def record(self, event: AuditEvent) -> None:
        pass


class InMemoryAuditSink(AuditSink):
    """Keeps events in memory, oldest first."""

    def __init__(self) -> None:
        self.events: List[AuditEvent] = []

    def record(self, event: AuditEvent) -> None:
        self.events.append(event)


class LoggingAuditSink(AuditSink):
    """Appends events as JSON lines to the audit log file."""

    def __init__(self, log_file: Optional[str] = None):
        self.logger = setup_audit_logger(log_file)

    def record(self, event: AuditEvent) -> None:
        self.logger.info(event.event.value, extra=event.to_dict())


def create_audit_sink(enabled: bool, log_file: Optional[str] = None) -> AuditSink:
    if not enabled:
        logger.info("Audit logging disabled")
        return NullAuditSink()
    return LoggingAuditSink(log_file)
