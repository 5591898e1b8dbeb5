"""
Settlement resolution errors.

Every failure that can happen while resolving one trade record maps to one
of these. ``transient`` tells the processor whether the record is expected
to resolve on a later tick without operator action.
"""


class SettlementError(Exception):
    """Base class for per-record resolution failures."""
    transient = False


# Transient / retryable

class EndpointUnavailable(SettlementError):
    """No candidate RPC endpoint passed the health check."""
    transient = True


class RpcCallError(SettlementError):
    """An RPC call failed on an endpoint that had passed the health check."""
    transient = True


class TransactionPending(SettlementError):
    """Transaction is known to the node but has no receipt yet."""
    transient = True


class PriceUnavailable(SettlementError):
    """Only the last-resort constant price is available and it is not allowed."""
    transient = True


# Permanent for the record

class UnknownTransaction(SettlementError):
    """Transaction hash is not known to the node."""


class InvalidOnchainValue(SettlementError):
    """Decoded on-chain value is too small to be a real trade."""


class MissingOnsiteValue(SettlementError):
    """Trade record carries no onsite USD value."""


class MissingTransactionHash(SettlementError):
    """Trade record carries no transaction hash."""


class UnknownDirection(SettlementError):
    """Trade record carries a direction the processor does not know."""


class TradeVanished(SettlementError):
    """Trade record disappeared between selection and update."""


class NotificationError(Exception):
    """Notification could not be delivered to any chat."""
