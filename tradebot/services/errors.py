"""Trade lifecycle errors.

Each error carries the message shown to the chat user, so every failure path
produces a specific reply instead of a generic one.
"""


class TradeError(Exception):
    """Base class for recoverable trade lifecycle failures."""

    default_message = "Something went wrong with this trade."

    def __init__(self, user_message: str | None = None):
        self.user_message = user_message or self.default_message
        super().__init__(self.user_message)


class TradeValidationError(TradeError):
    default_message = (
        "Invalid input. Please enter numeric values for leverage, entry price, "
        "stop loss, and take profit."
    )


class QuoteUnavailable(TradeError):
    default_message = (
        "Failed to fetch the current price. The exchange API may be slow or the ticker is invalid."
    )


class RenderFailure(TradeError):
    default_message = "Failed to send or update the trade message. Check bot permissions."


class RenderTargetMissing(RenderFailure):
    default_message = "The trade message no longer exists."


class PermissionDenied(TradeError):
    default_message = "Only moderators can close positions."


class TradeNotFound(TradeError):
    default_message = "No active trade found or trade already closed."


class StoreFailure(TradeError):
    default_message = "Could not save the trade. Please try again later."
