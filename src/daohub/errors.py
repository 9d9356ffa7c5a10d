"""Error taxonomy for the governance engine.

Every rejected call raises exactly one DaoError subclass. The service
layer converts these into a failed ServiceResult carrying the error kind;
engines never catch them.

ArithmeticOverflow sits outside the DaoError family: it is a
fatal condition, not a caller mistake.
"""

from __future__ import annotations

import enum


class ErrorKind(str, enum.Enum):
    """Classification of rejected calls."""
    NOT_FOUND = "not_found"
    UNAUTHORIZED = "unauthorized"
    INVALID_PARAMS = "invalid_params"
    INSUFFICIENT_BALANCE = "insufficient_balance"
    DAO_INACTIVE = "dao_inactive"
    VOTING_ENDED = "voting_ended"
    ALREADY_VOTED = "already_voted"


class DaoError(Exception):
    """Base class for rejected calls."""
    kind: ErrorKind = ErrorKind.INVALID_PARAMS


class NotFound(DaoError):
    """Organization, proposal, member or settings record absent."""
    kind = ErrorKind.NOT_FOUND


class Unauthorized(DaoError):
    """Caller lacks membership or the administrator role."""
    kind = ErrorKind.UNAUTHORIZED


class InvalidParams(DaoError):
    """Malformed input, or an action attempted in the wrong state."""
    kind = ErrorKind.INVALID_PARAMS


class InsufficientBalance(DaoError):
    """Weight, treasury funds or asserted token balance below a floor."""
    kind = ErrorKind.INSUFFICIENT_BALANCE


class DaoInactive(DaoError):
    """Organization exists but is not active."""
    kind = ErrorKind.DAO_INACTIVE


class VotingEnded(DaoError):
    """Deadline rejection.

    Raised both when a vote arrives at or after the deadline and when
    finalization is attempted before it. The message says which.
    """
    kind = ErrorKind.VOTING_ENDED


class AlreadyVoted(DaoError):
    """A vote already exists for (organization, proposal, account)."""
    kind = ErrorKind.ALREADY_VOTED


class ArithmeticOverflow(ArithmeticError):
    """Weighted arithmetic exceeded the unsigned 128-bit ceiling."""
