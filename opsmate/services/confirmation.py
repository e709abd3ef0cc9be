"""
Confirmation policy helpers.

The level decides how much consent a command needs: none for LOW, a yes/no
answer for MEDIUM (and HIGH outside production), and a retyped phrase for
CRITICAL (and HIGH in production).
"""

import inspect
from dataclasses import dataclass
from enum import Enum
from typing import Awaitable, Callable, Optional, Union

from opsmate.models.risk import RiskLevel
from opsmate.models.tool import Translation


class ConfirmationType(Enum):
    NONE = "none"
    YES_NO = "yes_no"
    TYPED = "typed"


def confirmation_type(risk_level: RiskLevel, is_production: bool) -> ConfirmationType:
    if not risk_level.requires_confirmation():
        return ConfirmationType.NONE
    if risk_level.requires_typed_confirmation(is_production):
        return ConfirmationType.TYPED
    return ConfirmationType.YES_NO


def confirmation_phrase(command: str, is_production: bool) -> str:
    """
    Text the operator must retype to confirm a command.

    "kubectl delete deployment nginx" -> "nginx", "kubectl drain node-01" ->
    "node-01". Without a resource name this is "production" in production,
    otherwise the first word after the tool.
    """
    parts = command.split()
    for i in range(1, len(parts)):
        if parts[i - 1] not in ("delete", "drain"):
            continue
        if parts[i].startswith("-") or parts[i] == "all":
            continue
        if i + 1 < len(parts) and not parts[i + 1].startswith("-"):
            return parts[i + 1]
        return parts[i]

    if is_production:
        return "production"
    return parts[1] if len(parts) > 1 else "confirm"


@dataclass(frozen=True)
class ConfirmationRequest:
    """What the confirm callback is asked to approve."""

    translation: Translation
    risk_level: RiskLevel
    is_production: bool = False

    @property
    def kind(self) -> ConfirmationType:
        return confirmation_type(self.risk_level, self.is_production)

    @property
    def typed(self) -> bool:
        return self.kind == ConfirmationType.TYPED

    @property
    def phrase(self) -> Optional[str]:
        if not self.typed:
            return None
        return confirmation_phrase(self.translation.command, self.is_production)

    def accepts(self, answer: str) -> bool:
        """Check an operator's answer against the required confirmation."""
        answer = answer.strip()
        if self.kind == ConfirmationType.NONE:
            return True
        if self.typed:
            return answer == self.phrase
        return answer.lower() in ("y", "yes")


ConfirmCallback = Callable[[ConfirmationRequest], Union[bool, Awaitable[bool]]]


async def request_confirmation(
    confirm: Optional[ConfirmCallback], request: ConfirmationRequest
) -> bool:
    """Ask the callback; no callback means the command is not confirmed."""
    if request.kind == ConfirmationType.NONE:
        return True
    if confirm is None:
        return False
    answer = confirm(request)
    if inspect.isawaitable(answer):
        answer = await answer
    return bool(answer)


def auto_confirm(request: ConfirmationRequest) -> bool:
    """Callback that approves everything; for --yes and trusted automation."""
    return True
