"""Error taxonomy shared by the engines and the cogs.

Every error carries a short, user-facing ``message``. The cogs reply with it
as-is (ephemeral), so keep these readable by racers and race directors.
"""

from __future__ import annotations

from typing import Optional


class RaceMasterError(Exception):
    """Base class for every expected failure surfaced to the actor."""

    default_message = "Something went wrong."

    def __init__(self, message: Optional[str] = None):
        self.message = message or self.default_message
        super().__init__(self.message)


# -----------------------------
# Validation (bad/missing input, never retried)
# -----------------------------
class ValidationError(RaceMasterError):
    default_message = "Invalid input."


class InsufficientRacers(ValidationError):
    default_message = "Need at least 2 racers. Paste 2+ names (one per line)."


class TooManyRacers(ValidationError):
    default_message = "Too many racers for one ladder message."


class InvalidMatchIndex(ValidationError):
    default_message = "Invalid match."


class InvalidSide(ValidationError):
    default_message = "Invalid side. Pick racer a or b."


class InvalidValue(ValidationError):
    default_message = "Value must be a positive number."


class InvalidCategory(ValidationError):
    default_message = "Category must be track or street."


class InvalidDecision(ValidationError):
    default_message = "Decision must be approve or deny."


class ProofRequired(ValidationError):
    default_message = "A proof screenshot is required for Top 10 submissions."


class InvalidRange(ValidationError):
    default_message = "Invalid range."


# -----------------------------
# State conflicts (surfaced with actionable detail)
# -----------------------------
class StateConflictError(RaceMasterError):
    default_message = "That action conflicts with the current state."


class AlreadyComplete(StateConflictError):
    default_message = "This ladder is already complete."


class NotAllDecided(StateConflictError):
    default_message = "Not all matches have a winner yet."


class DuplicatePending(StateConflictError):
    default_message = "You already have a submission waiting for approval in this category."


class CooldownActive(StateConflictError):
    default_message = "You are on cooldown for this category."

    def __init__(self, remaining_ms: int, message: Optional[str] = None):
        self.remaining_ms = max(0, int(remaining_ms))
        super().__init__(message)


# -----------------------------
# Not found (recoverable by re-issuing the command)
# -----------------------------
class NotFoundError(RaceMasterError):
    default_message = "Not found."


class SlipNotFound(NotFoundError):
    default_message = "That submission was already handled or no longer exists."


class LadderNotFound(NotFoundError):
    default_message = "No active ladder. Use `/pair` first."


# -----------------------------
# Exhausted random space
# -----------------------------
class ResourceExhaustedError(RaceMasterError):
    default_message = "No values left to draw."

    def __init__(self, total_possible: int, message: Optional[str] = None):
        self.total_possible = int(total_possible)
        super().__init__(message)


class Exhausted(ResourceExhaustedError):
    default_message = "Every value in that range was drawn recently."


class TemporarilyExhausted(ResourceExhaustedError):
    default_message = "Could not find an unused value right now. Try again."


# -----------------------------
# Collaborators (logged, never surfaced once state is committed)
# -----------------------------
class CollaboratorError(RaceMasterError):
    default_message = "External call failed."
