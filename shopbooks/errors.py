"""
Domain Errors

InvariantViolation covers requests the engine refuses before writing
anything: a ledger index that doesn't exist, an edit of an entry that
isn't the latest, a non-positive amount. Storage failures live in
shopbooks.services.storage.interface (DataSourceError and friends).
"""


class InvariantViolation(Exception):
    """A request would break a ledger or goal invariant. Nothing was written."""
    pass


class GoalNotFoundError(InvariantViolation):
    """No goal with the given id (or title) exists."""
    pass


class InvalidAmountError(InvariantViolation):
    """Amount must be strictly positive."""
    pass


class EntryNotFoundError(InvariantViolation):
    """A ledger index does not map to any parsed entry."""
    pass


class EntryNotEditableError(InvariantViolation):
    """Only the most recent ledger entry may be edited."""
    pass


class NoOpenAccountError(InvariantViolation):
    """The party has no pending ledger record to append to."""
    pass
