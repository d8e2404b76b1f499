# Exceptions
"""
Error taxonomy for order construction, matching and settlement

Every error keeps a human readable message plus the underlying cause
(when there is one) so callers can show the first and log the second.
"""
from typing import Optional


class TraderError(Exception):
    """Base class for all library errors"""

    def __init__(self, message: str, cause: Optional[BaseException] = None):
        super().__init__(message)
        self.message = message
        self.cause = cause

    def __str__(self) -> str:
        return self.message


def truncate_error_message(error: BaseException, limit: int) -> str:
    """Bounded, single-line rendition of an underlying error"""
    text = str(error) if str(error) else error.__class__.__name__
    text = " ".join(text.split())
    if len(text) > limit:
        return text[:limit] + "..."
    return text


# Encoding

class EncodingError(TraderError):
    """Malformed ABI or replacement pattern request"""


# Caller input

class OrderParameterError(TraderError):
    """Order parameters rejected before any network call"""


class FeeError(OrderParameterError):
    """Fee or bounty configuration out of range"""


class TimeWindowError(OrderParameterError):
    """Listing/expiration window rejected"""


class PriceError(OrderParameterError):
    """Price parameters rejected"""


class UnsupportedSchemaError(TraderError):
    """Asset schema not registered for the current network"""


class NetworkConfigError(TraderError):
    """Network has no configuration or lacks a required contract address"""


# Signing

class SigningError(TraderError):
    """Signer declined or is unavailable"""


class SignerNotFoundError(SigningError):
    """No unlocked signer for an address"""

    def __init__(self, address: str):
        super().__init__(f"Please unlock {address} first")
        self.address = address


# Match validation

class MatchError(TraderError):
    """Two orders cannot be matched"""


class SideMismatchError(MatchError):
    def __init__(self):
        super().__init__("Must be opposite-side")


class FeeMethodMismatchError(MatchError):
    def __init__(self):
        super().__init__("Must use same fee method")


class PaymentTokenMismatchError(MatchError):
    def __init__(self):
        super().__init__("Must use same payment token")


class TakerMismatchError(MatchError):
    """Taker cross-check failed for one side"""


class FeeRecipientError(MatchError):
    def __init__(self):
        super().__init__("One order must be maker and the other must be taker")


class TargetMismatchError(MatchError):
    """Target or howToCall differ"""


class ExpiredOrderError(MatchError):
    """One side is not live yet or already expired"""

    def __init__(self, side: str):
        super().__init__(f"{side.capitalize()}-side order is set in the future or expired")
        self.side = side


class ClockSkewError(MatchError):
    def __init__(self):
        super().__init__(
            "Error creating your order. Check that your system clock is set "
            "to the current date and time before you try again."
        )


class CalldataMismatchError(MatchError):
    def __init__(self):
        super().__init__("Unable to match offer data with auction data.")


class MatchValidationFailedError(TraderError):
    """Match validation kept failing after all retries"""


# Transactions

class GasEstimationFailedError(TraderError):
    """Node rejected the gas estimate for a transaction"""


class SubmissionFailedError(TraderError):
    """Transaction could not be submitted"""

    def __init__(self, message: str, cause: Optional[BaseException] = None, user_declined: bool = False):
        super().__init__(message, cause)
        self.user_declined = user_declined


class OrderParameterInvalidError(TraderError):
    """Exchange contract rejected the order parameters"""


class ProxyRegistrationError(TraderError):
    """Per-account proxy could not be registered"""


class InsufficientBalanceError(TraderError):
    """Account balance too low for an order"""


# Orderbook API

class OrderbookError(TraderError):
    """Orderbook API returned a non-success response"""

    def __init__(self, message: str, status_code: Optional[int] = None, cause: Optional[BaseException] = None):
        super().__init__(message, cause)
        self.status_code = status_code


class OrderNotFoundError(OrderbookError):
    """Orderbook query returned no orders"""
