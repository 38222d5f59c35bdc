from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from journey.core.errors import JourneyError

STATUS_SUCCESS = "success"
STATUS_ERROR = "error"


@dataclass(frozen=True)
class OperationResult:
    """
    What a UI needs after an operation: status text plus updated values.
    Failed operations carry the ValidationError/PreconditionError that stopped them.
    """

    ok: bool
    status: str
    message: str
    data: dict[str, Any] = field(default_factory=dict)
    error: JourneyError | None = None

    @classmethod
    def success(cls, message: str, **data: Any) -> OperationResult:
        return cls(ok=True, status=STATUS_SUCCESS, message=message, data=data)

    @classmethod
    def failure(cls, error: JourneyError, message: str | None = None) -> OperationResult:
        return cls(ok=False, status=STATUS_ERROR, message=message or str(error), error=error)
