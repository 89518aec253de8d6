"""
Error taxonomy for the draft services.

Each error carries a stable `code` and a `to_dict()` payload so the HTTP layer can
report it without string matching. Families:
  ValidationError     malformed input or rule violation, nothing written
  AuthorizationError  role or turn does not permit the action
  NotFoundError       unknown event / player / claimant / trade
  ConflictError       state changed under the caller; refresh and resubmit
  AllocationError     no open slot within the bounded scan; operator must intervene
"""
from __future__ import annotations

from typing import Any


class DraftError(Exception):
    """Base for all service-level errors."""

    code = "draft_error"

    def to_dict(self) -> dict[str, Any]:
        return {"error": str(self), "code": self.code}


# ---------- Validation ----------


class ValidationError(DraftError, ValueError):
    """Malformed or missing input. `field` names the offending request field."""

    code = "validation_error"

    def __init__(self, message: str, field: str | None = None) -> None:
        super().__init__(message)
        self.field = field

    def to_dict(self) -> dict[str, Any]:
        d = super().to_dict()
        if self.field is not None:
            d["field"] = self.field
        return d


class IneligiblePlayerError(ValidationError):
    code = "player_ineligible"


class FairnessError(ValidationError):
    """Average draft rounds of the two sides differ by more than the allowed delta."""

    code = "trade_unfair"

    def __init__(
        self,
        message: str,
        from_avg_round: float | None,
        to_avg_round: float | None,
        round_delta: float | None,
    ) -> None:
        super().__init__(message)
        self.from_avg_round = from_avg_round
        self.to_avg_round = to_avg_round
        self.round_delta = round_delta

    def to_dict(self) -> dict[str, Any]:
        d = super().to_dict()
        d.update({
            "from_avg_round": self.from_avg_round,
            "to_avg_round": self.to_avg_round,
            "round_delta": self.round_delta,
        })
        return d


# ---------- Authorization ----------


class AuthorizationError(DraftError):
    code = "forbidden"


class NotYourTurnError(AuthorizationError):
    code = "not_your_turn"


# ---------- Not found ----------


class NotFoundError(DraftError):
    code = "not_found"


# ---------- Conflict ----------


class ConflictError(DraftError):
    """Retryable by resubmission against fresh state."""

    code = "conflict"


class SlotFilledError(ConflictError):
    code = "slot_filled"


class PlayerAlreadyDraftedError(ConflictError):
    code = "player_already_drafted"


class RosterChangedError(ConflictError):
    code = "roster_changed"


class TradeStateError(ConflictError):
    code = "trade_not_pending"


class DraftStateError(ConflictError):
    """Event is in the wrong phase for the requested operation."""

    code = "invalid_draft_state"


class DraftNotLiveError(DraftStateError):
    code = "draft_not_live"


class DraftPausedError(DraftStateError):
    code = "draft_paused"


# ---------- Fatal ----------


class AllocationError(DraftError):
    """No open slot found within the bounded scan."""

    code = "allocation_failed"
