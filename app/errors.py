class LedgerError(Exception):
    """Base class for failures the bot reports to a user or to the transport."""


class SignatureInvalid(LedgerError):
    """Inbound webhook body does not match its signature header."""


class PersistenceFailure(LedgerError):
    """The ledger store could not complete a read or write."""


class ConfigurationMissing(LedgerError):
    def __init__(self, missing: list[str]):
        self.missing = missing
        super().__init__(f"Missing configuration: {', '.join(missing)}")


class DeliveryError(LedgerError):
    """The chat platform rejected or never received an outbound message."""
