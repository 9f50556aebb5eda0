"""
Per-item processing results.

Failures are reported here instead of being swallowed: `recoverable`
means best-effort work failed, `fatal` means the item's critical path
failed and the end user got an apology (if anything).
"""

from collections import Counter
from dataclasses import dataclass, field
from typing import Dict, List, Literal, Optional

OutcomeStatus = Literal["processed", "skipped", "recoverable", "fatal"]


@dataclass
class MessageOutcome:
    status: OutcomeStatus
    tenant_id: str
    wa_message_id: str
    reason: Optional[str] = None
    reply_sent: bool = False


@dataclass
class StatusOutcome:
    status: OutcomeStatus
    tenant_id: str
    wa_message_id: str
    delivery_status: str
    reason: Optional[str] = None


@dataclass
class DeliveryReport:
    """Everything that happened for one webhook delivery."""

    messages: List[MessageOutcome] = field(default_factory=list)
    statuses: List[StatusOutcome] = field(default_factory=list)
    skipped_changes: int = 0
    failed_changes: int = 0

    def message_counts(self) -> Dict[str, int]:
        return dict(Counter(outcome.status for outcome in self.messages))

    def status_counts(self) -> Dict[str, int]:
        return dict(Counter(outcome.status for outcome in self.statuses))
