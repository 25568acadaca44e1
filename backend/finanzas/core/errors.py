"""Business failures raised by the ledger engine.

Each class maps to one user-facing failure kind. The HTTP layer turns them
into responses; nothing in the engine catches them.
"""


class LedgerError(Exception):
    code = "ledger_error"
    status_code = 400
    default_message = "Operation rejected"

    def __init__(self, message: str | None = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)


class InvalidInput(LedgerError):
    code = "invalid_input"
    default_message = "Invalid request data"


class InvalidAccount(LedgerError):
    code = "invalid_account"
    default_message = "The selected account does not exist or is no longer available"


class CurrencyMismatch(LedgerError):
    code = "currency_mismatch"
    default_message = "The currency does not match the selected account"


class SameAccount(LedgerError):
    code = "same_account"
    default_message = "Source and destination cannot be the same account"


class InsufficientBalance(LedgerError):
    code = "insufficient_balance"
    default_message = "Insufficient balance in the source"

    def __init__(self, message: str | None = None, available=None, requested=None) -> None:
        super().__init__(message)
        self.available = available
        self.requested = requested


class InvalidCategory(LedgerError):
    code = "invalid_category"
    default_message = "The selected category is not valid for this movement"


class NotFound(LedgerError):
    code = "not_found"
    status_code = 404
    default_message = "Not found"


class DuplicateName(LedgerError):
    code = "duplicate_name"
    status_code = 409
    default_message = "A record with that name already exists"
