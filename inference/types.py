from dataclasses import dataclass, field
from typing import Any, Dict, List, Literal, Optional

ReplyStatus = Literal["success", "recoverable_error", "fatal_error"]


@dataclass
class ReplyResult:
    status: ReplyStatus
    reply_text: Optional[str] = None
    citations: List[Any] = field(default_factory=list)
    error_type: Optional[str] = None   # timeout | http_error | invalid_output | backend_unavailable
    latency_ms: int = 0
    metadata: Optional[Dict[str, Any]] = None

    @property
    def success(self) -> bool:
        return self.status == "success"
