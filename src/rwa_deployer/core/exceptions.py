"""Exception hierarchy for the deployment pipeline.

Every failure the orchestrator can report maps to exactly one of these
classes. Each class carries a stable ``code`` and a default human-readable
message so callers can tell, for example, a malformed address apart from an
on-chain rejection.
"""

import re


class DeploymentError(Exception):
    """Base exception for deployment and transaction errors."""

    code = "deployment_error"
    default_message = "Deployment failed"

    def __init__(self, message: str | None = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class PreconditionError(DeploymentError, ValueError):
    """Raised when inputs or wallet state fail validation before submission."""

    code = "precondition"
    default_message = "Precondition failed"


class InvalidAddressError(PreconditionError):
    """Raised when an address-shaped field is not a full-length hex address."""

    code = "invalid_address"
    default_message = "Invalid address format"


class ConfigurationError(DeploymentError):
    """Raised when static contract artifacts are missing or unusable."""

    code = "configuration"
    default_message = "Contract artifacts are not configured"


class UserRejectionError(DeploymentError):
    """Raised when the signer declines to sign or submit."""

    code = "user_rejected"
    default_message = "Transaction was rejected by the signer"


class ChainRejectionError(DeploymentError):
    """Raised when the node or chain rejects the transaction."""

    code = "chain_rejected"
    default_message = "Transaction failed on chain"


class InsufficientFundsError(ChainRejectionError):
    """Raised when the node reports an insufficient balance."""

    code = "insufficient_funds"
    default_message = "Insufficient funds for transaction"


class EventNotFoundError(DeploymentError, LookupError):
    """Raised when an included transaction lacks its expected outcome event."""

    code = "event_not_found"
    default_message = "event not found"


class TransactionTimeoutError(DeploymentError, TimeoutError):
    """Raised when no receipt is observed within the policy window."""

    code = "timeout"
    default_message = "Timed out waiting for transaction receipt"


class NetworkError(DeploymentError, ConnectionError):
    """Raised when an RPC call fails transiently."""

    code = "network"
    default_message = "Network request failed"


_REJECTION_PATTERN = re.compile(
    r"user (rejected|denied|cancel)|rejected by user|action_rejected", re.IGNORECASE
)


def classify_exception(exc: BaseException) -> DeploymentError:
    """Map an arbitrary exception onto the deployment error taxonomy.

    Args:
        exc: Exception raised by web3, the signer or the node

    Returns:
        The matching DeploymentError (``exc`` itself if it already is one)
    """
    if isinstance(exc, DeploymentError):
        return exc

    from web3.exceptions import ContractLogicError, TimeExhausted, Web3RPCError

    message = str(exc) or exc.__class__.__name__

    # EIP-1193 "User Rejected Request"
    if getattr(exc, "code", None) == 4001 or _REJECTION_PATTERN.search(message):
        return UserRejectionError(f"Transaction was rejected by the signer: {message}")
    if "insufficient funds" in message.lower():
        return InsufficientFundsError(f"Insufficient funds for transaction: {message}")
    if isinstance(exc, ContractLogicError) or "execution reverted" in message.lower():
        return ChainRejectionError(f"Contract execution reverted: {message}")
    if isinstance(exc, (TimeExhausted, TimeoutError)):
        return TransactionTimeoutError(message)
    if isinstance(exc, (Web3RPCError, ConnectionError, OSError)):
        return NetworkError(f"Network request failed: {message}")
    return DeploymentError(message)
