"""
Tri-state result of an access check.
"""
from dataclasses import dataclass
from typing import Optional
import enum


class Verdict(str, enum.Enum):
    ALLOWED = "allowed"
    FORBIDDEN = "forbidden"
    # No opinion, the caller's default entity access applies
    NEUTRAL = "neutral"


@dataclass(frozen=True)
class AccessResult:
    verdict: Verdict
    reason: Optional[str] = None

    @classmethod
    def allowed(cls, reason: Optional[str] = None) -> "AccessResult":
        return cls(Verdict.ALLOWED, reason)

    @classmethod
    def forbidden(cls, reason: Optional[str] = None) -> "AccessResult":
        return cls(Verdict.FORBIDDEN, reason)

    @classmethod
    def neutral(cls, reason: Optional[str] = None) -> "AccessResult":
        return cls(Verdict.NEUTRAL, reason)

    def is_allowed(self) -> bool:
        return self.verdict == Verdict.ALLOWED

    def is_forbidden(self) -> bool:
        return self.verdict == Verdict.FORBIDDEN

    def is_neutral(self) -> bool:
        return self.verdict == Verdict.NEUTRAL

    def to_dict(self) -> dict:
        return {"verdict": self.verdict.value, "reason": self.reason}
