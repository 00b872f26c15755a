# compensation/exceptions.py


class CompensationError(Exception):
    """Base class for every error raised by the compensation engine."""


class PlacementError(CompensationError):
    """
    Placement could not be resolved.

    code:
      - NoAvailableSlot     both legs of the sponsor are full (manual mode)
      - UnknownSponsor      sponsor has no tree node in this company
      - DuplicatePlacement  a second root was requested for the company
      - InvalidSide         requested side is not left/right
    """

    NO_AVAILABLE_SLOT = "NoAvailableSlot"
    UNKNOWN_SPONSOR = "UnknownSponsor"
    DUPLICATE_PLACEMENT = "DuplicatePlacement"
    INVALID_SIDE = "InvalidSide"

    def __init__(self, code: str, message: str = ""):
        self.code = code
        super().__init__(f"{code}: {message}" if message else code)


class InvariantViolation(CompensationError):
    """Tree or ledger state would become invalid. Fatal for the pipeline run."""


class ConfigurationError(CompensationError):
    """Contradictory or malformed MLM configuration, rejected on write."""


class ConcurrencyConflict(CompensationError):
    """Optimistic version check failed; safe to retry."""
