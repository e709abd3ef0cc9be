"""
Risk levels and the confirmation policy derived from them.
"""

from enum import IntEnum


class RiskLevel(IntEnum):
    """Ordinal danger class of a command."""

    LOW = 1  # Read-only (get, describe, logs, SELECT)
    MEDIUM = 2  # State-modifying (apply, scale, INSERT, UPDATE ... WHERE)
    HIGH = 3  # Destructive on a single target (delete pod, drain, docker rm)
    CRITICAL = 4  # Batch destructive (delete namespace, DROP, DELETE without WHERE)

    def as_str(self) -> str:
        return self.name

    def __str__(self) -> str:
        return self.name

    @classmethod
    def from_str(cls, value: str) -> "RiskLevel":
        """Parse a level name case-insensitively ("high" -> HIGH)."""
        try:
            return cls[value.strip().upper()]
        except KeyError:
            raise ValueError(f"Unknown risk level: {value!r}") from None

    def requires_confirmation(self) -> bool:
        """Anything above LOW needs the operator's consent."""
        return self > RiskLevel.LOW

    def requires_typed_confirmation(self, is_production: bool) -> bool:
        """Whether a yes/no prompt is not enough and the operator must retype a phrase."""
        if self == RiskLevel.CRITICAL:
            return True
        if self == RiskLevel.HIGH:
            return is_production
        return False
