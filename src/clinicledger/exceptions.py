# ABOUTME: Custom exception hierarchy for clinicledger
# ABOUTME: Provides structured error handling for settlement and balance operations


class ClinicLedgerError(Exception):
    """Base exception for all clinicledger errors."""


class ValidationError(ClinicLedgerError):
    """Invalid installment plan or transaction input."""


class AuthenticationError(ClinicLedgerError):
    """Storage backend rejected our credentials."""


class CredentialsNotFoundError(AuthenticationError):
    """Storage credentials not found in environment."""


class AccountNotFoundError(ClinicLedgerError):
    """Bank account ID doesn't exist."""


class TransactionNotFoundError(ClinicLedgerError):
    """Transaction ID doesn't exist."""


class StoreError(ClinicLedgerError):
    """Unexpected error reading from or writing to the ledger store."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class ReconciliationError(ClinicLedgerError):
    """A tenant's reconciliation run aborted; stored balances were left as-is."""

    def __init__(self, message: str, tenant_id: str | None = None) -> None:
        super().__init__(message)
        self.tenant_id = tenant_id


class ConcurrentUpdateError(ClinicLedgerError):
    """Balance kept changing underneath an optimistic update."""
