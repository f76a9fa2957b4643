"""Error kinds raised by the engine.

Every error carries a stable ``code`` so callers can react to the kind of
failure (redirect to KYC, show a funds banner, ...) instead of parsing text.
"""


class CasinoError(Exception):
    code = "CASINO_ERROR"
    status_code = 400

    def __init__(self, detail: str | None = None):
        self.detail = detail or self.__class__.__name__
        super().__init__(self.detail)


class InsufficientFunds(CasinoError):
    code = "INSUFFICIENT_FUNDS"
    status_code = 402


class InvalidWager(CasinoError):
    code = "INVALID_WAGER"
    status_code = 422


class LocationBlocked(CasinoError):
    code = "LOCATION_BLOCKED"
    status_code = 403

    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(f"Real-currency play blocked: {reason}")


class DeckDepleted(CasinoError):
    code = "DECK_DEPLETED"
    status_code = 409


class InvalidRoundState(CasinoError):
    code = "INVALID_ROUND_STATE"
    status_code = 409


class RoundNotFound(InvalidRoundState):
    """The round does not exist or belongs to another player."""

    code = "ROUND_NOT_FOUND"
    status_code = 404


class AccountNotFound(CasinoError):
    code = "ACCOUNT_NOT_FOUND"
    status_code = 404


class RedemptionRefused(CasinoError):
    code = "REDEMPTION_REFUSED"
    status_code = 403


class IdempotencyConflict(CasinoError):
    """The idempotency key was already used for a different user or activity."""

    code = "IDEMPOTENCY_CONFLICT"
    status_code = 409


class DataIntegrityError(CasinoError):
    code = "DATA_INTEGRITY_ERROR"
    status_code = 500


class RNGUnavailable(CasinoError):
    code = "RNG_UNAVAILABLE"
    status_code = 503
