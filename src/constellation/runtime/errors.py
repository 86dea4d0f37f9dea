from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict

# Stable numeric identifiers; clients match on these rather than on the
# string codes.
ERROR_CODES: Dict[str, int] = {
    "invalid_value": 400,
    "invalid_payload": 400,
    "permission_denied": 403,
    "forbidden": 403,
    "not_found": 404,
    "conflict": 409,
    "precondition_failed": 412,
    "cycle_not_finished": 4121,
    "already_claimed": 4122,
    "no_allocation": 4123,
    "prize_pool_empty": 4124,
    "winner_not_recorded": 4125,
    "expiration_period_not_met": 4131,
    "no_unclaimed_prize": 4132,
    "transfer_failed": 4201,
}


def error_number(code: str) -> int:
    return int(ERROR_CODES.get(str(code or "").strip(), 500))


@dataclass
class ApplyError(Exception):
    """Canonical error type for domain apply and dispatch failures."""

    code: str
    reason: str
    details: Any | None = None

    @property
    def number(self) -> int:
        return error_number(self.code)

    def to_json(self) -> Dict[str, Any]:
        return {
            "code": self.code,
            "number": self.number,
            "reason": self.reason,
            "details": self.details if self.details is not None else {},
        }

    def __str__(self) -> str:  # pragma: no cover
        if self.details is None:
            return f"{self.code}:{self.reason}"
        return f"{self.code}:{self.reason}:{self.details}"
