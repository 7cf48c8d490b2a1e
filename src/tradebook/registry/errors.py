from __future__ import annotations


class RegistryError(Exception):
    """Base class for store-level failures."""


class NotFoundError(RegistryError):
    pass


class AccountInUseError(RegistryError):
    def __init__(self, userid: str, transaction_count: int) -> None:
        self.userid = userid
        self.transaction_count = transaction_count
        super().__init__(
            f"Cannot delete account {userid}: it has {transaction_count} transaction(s). "
            "Delete its transactions first."
        )


class DuplicateAccountError(RegistryError):
    pass


class StoreConflictError(RegistryError):
    """Concurrent writes kept conflicting after every retry attempt."""


class ConstraintViolationError(RegistryError):
    """A write hit a uniqueness or integrity constraint other than the id."""
