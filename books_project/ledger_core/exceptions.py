class LedgerError(Exception):
    """Base class for ledger posting errors."""

    code = "ledger_error"


class UnbalancedEntryError(LedgerError):
    """Raised when a document's debits and credits do not balance."""

    code = "unbalanced"


class ConflictError(LedgerError):
    """Raised when a document number could not be allocated after a retry."""

    code = "conflict"


class LedgerReferenceError(LedgerError):
    """
    Raised for a dangling reference: an account code, customer, supplier,
    invoice or item that does not exist for the tenant, or a document that
    cannot be reversed (not posted, already reversed, or itself a reversal).
    """

    code = "reference"


class AlreadyPostedDifferentPayload(LedgerError):
    """Raised when a posted document is re-posted but its lines have changed."""

    code = "already_posted"
