"""
Refusals raised by the negotiation service.

A refusal is NOT an error - it's the system working correctly. Each one
carries a stable reason code for clients and a human-readable message.
"""


class NegotiationRefusal(Exception):
    """Base class for every expected, recoverable outcome the caller must handle."""

    code = "REFUSED"

    def __init__(self, message: str):
        self.message = message
        super().__init__(self.message)


class NotParticipant(NegotiationRefusal):
    code = "NOT_PARTICIPANT"


class AmountInvalid(NegotiationRefusal):
    code = "AMOUNT_INVALID"

    def __init__(self, amount):
        self.amount = amount
        super().__init__(f"Amount must be a positive whole number, got {amount!r}")


class InvalidTransition(NegotiationRefusal):
    code = "INVALID_TRANSITION"


class NegotiationNotFound(NegotiationRefusal):
    code = "NEGOTIATION_NOT_FOUND"

    def __init__(self, lookup: str):
        super().__init__(f"Negotiation not found: {lookup}")


class PairingNotFound(NegotiationRefusal):
    code = "PAIRING_NOT_FOUND"

    def __init__(self, pairing_id: str):
        super().__init__(f"Pairing not found: {pairing_id}")


class PairingInactive(NegotiationRefusal):
    code = "PAIRING_INACTIVE"

    def __init__(self, pairing_id: str):
        super().__init__(f"Pairing {pairing_id} is not active; a negotiation cannot be opened")


class ConcurrencyExhausted(NegotiationRefusal):
    code = "CONCURRENCY_EXHAUSTED"

    def __init__(self, negotiation_id: str, attempts: int):
        self.attempts = attempts
        super().__init__(
            f"Negotiation {negotiation_id} kept changing underneath this request "
            f"({attempts} attempts). Refresh and try again."
        )


class NoteRequired(NegotiationRefusal):
    code = "NOTE_REQUIRED"

    def __init__(self):
        super().__init__("A note is required")


class NoteTooLong(NegotiationRefusal):
    code = "NOTE_TOO_LONG"

    def __init__(self, limit: int):
        super().__init__(f"Notes are limited to {limit} characters")
