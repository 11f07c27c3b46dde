"""
Custom exceptions for the rate study engine

Bad ledger *data* is never raised - it is reported as validation issues.
These exceptions cover caller mistakes: asking for an account that does
not exist, feeding a broken configuration, or pointing the CLI at a file
that cannot be read.
"""


class RateStudyError(Exception):
    """Base exception for all rate study errors"""

    pass


# Ledger Errors


class LedgerError(RateStudyError):
    """Base class for ledger-specific errors"""

    pass


class LineItemNotFound(LedgerError):
    """Raised when an account is not present in the ledger"""

    def __init__(self, category: str, account: str) -> None:
        self.category = category
        self.account = account
        super().__init__(f"Account {account!r} not found in {category} ledger")


class DuplicateAccount(LedgerError):
    """Raised by strict inserts when the account is already in the ledger"""

    def __init__(self, category: str, account: str) -> None:
        self.category = category
        self.account = account
        super().__init__(
            f"Account {account!r} already exists in {category} ledger - "
            "accounts must be unique within a ledger"
        )


class DerivedFieldEdit(LedgerError):
    """Raised when an editor tries to write a field the engine owns"""

    def __init__(self, account: str, fields: list[str]) -> None:
        self.account = account
        self.fields = fields
        super().__init__(
            f"Account {account!r}: fields {', '.join(sorted(fields))} are derived "
            "and recomputed by the engine"
        )


class LedgerFileError(LedgerError):
    """Raised when a ledger or config file cannot be loaded"""

    def __init__(self, path: str, reason: str) -> None:
        self.path = path
        self.reason = reason
        super().__init__(f"Cannot load {path}: {reason}")


# Configuration Errors


class ConfigurationError(RateStudyError):
    """Base class for engine configuration errors"""

    pass


class InvalidScenarioDefinition(ConfigurationError):
    """Raised when the scenario set does not describe the three financing cases"""

    def __init__(self, reason: str) -> None:
        self.reason = reason
        super().__init__(f"Invalid scenario definitions: {reason}")
