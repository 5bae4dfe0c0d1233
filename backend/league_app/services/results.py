"""
Result types returned by the rules engine.

Engine operations never raise past their module boundary; they return one of
these objects instead. Routes translate ErrorKind into HTTP status codes.
"""
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional


class ErrorKind(str, Enum):
    VALIDATION = "validation"
    UNAUTHORIZED = "unauthorized"
    NOT_FOUND = "not_found"
    STORE = "store"
    PROPAGATION = "propagation"


@dataclass
class OperationResult:
    success: bool
    message: str = ""
    error: Optional[str] = None
    error_kind: Optional[ErrorKind] = None

    @classmethod
    def ok(cls, message: str) -> "OperationResult":
        return cls(success=True, message=message)

    @classmethod
    def fail(cls, kind: ErrorKind, error: str) -> "OperationResult":
        return cls(success=False, error=error, error_kind=kind)


@dataclass
class SubmitResult(OperationResult):
    # Non-fatal problems in steps after the match row was persisted
    warnings: List[str] = field(default_factory=list)
    advancement: Optional["AdvanceResult"] = None
    cards_appended: int = 0
    cards_retracted: int = 0

    @classmethod
    def fail(cls, kind: ErrorKind, error: str) -> "SubmitResult":
        return cls(success=False, error=error, error_kind=kind)


class AdvanceReason(str, Enum):
    NOT_CUP_MATCH = "not_cup_match"
    NOT_BRACKET = "not_bracket"
    FINAL = "final"
    INCOMPLETE = "incomplete"
    DECISION_REQUIRED = "decision_required"
    MISSING_TEAM = "missing_team"
    NEXT_MATCH_MISSING = "next_match_missing"
    NOT_FOUND = "not_found"
    STORE_ERROR = "store_error"


@dataclass
class AdvanceResult:
    advanced: bool
    message: str = ""
    reason: Optional[AdvanceReason] = None
    next_token: Optional[str] = None
    side: Optional[str] = None
    team_id: Optional[int] = None
    # False when the slot already held the winner (idempotent resubmit)
    wrote: bool = False
    cleared_tokens: List[str] = field(default_factory=list)

    @property
    def is_failure(self) -> bool:
        """True for problems worth surfacing as a propagation warning."""
        return self.reason in (AdvanceReason.NEXT_MATCH_MISSING, AdvanceReason.STORE_ERROR, AdvanceReason.MISSING_TEAM)


@dataclass
class ClearResult:
    success: bool
    message: str = ""
    # Tokens of the matches whose slot was emptied, in cascade order
    cleared_tokens: List[str] = field(default_factory=list)
    error: Optional[str] = None


@dataclass
class EligibilityResult:
    eligibility: Dict[int, bool] = field(default_factory=dict)
    errors: List[str] = field(default_factory=list)

    @property
    def degraded(self) -> bool:
        return bool(self.errors)
