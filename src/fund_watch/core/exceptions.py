"""Custom exception hierarchy for fund-watch."""

from typing import Any


class FundWatchError(Exception):
    """Base exception for all fund-watch errors.

    All exceptions carry an optional `context` dict for structured error
    metadata that can be logged or serialized without parsing the message.
    """

    def __init__(self, message: str, context: dict[str, Any] | None = None):
        super().__init__(message)
        self.context = context or {}


class ConfigError(FundWatchError):
    """Invalid or missing configuration.

    Raised by load_config() during startup. Should be treated as fatal.

    Context keys:
        field (str): the config field that failed validation
        value (Any): the invalid value (redacted for secrets)
    """


class FetchError(FundWatchError):
    """Failed to obtain a usable observation for one instrument.

    Policy: log and move on to the next instrument. The next scheduled
    poll cycle is the retry.

    Context keys:
        instrument_key (str): the instrument being polled
        url (str): the page that was being fetched
    """


class TransportError(FetchError):
    """Network failure or non-2xx response from a fund page.

    Context keys:
        status_code (int | None): HTTP status if a response was received
        error (str | None): transport error message
    """


class ExtractionIncompleteError(FetchError):
    """The page was fetched but no price could be found in its text.

    Context keys:
        reason (str): which field was missing
    """


class StorageError(FundWatchError):
    """Database operation failed.

    Policy: raise immediately. Data integrity is critical.

    Context keys:
        operation (str): "insert", "query", "migrate", etc.
        table (str): the table involved
    """


class StoreUnavailableError(StorageError):
    """Store used before initialize() or after close()."""


class DeliveryError(FundWatchError):
    """A notification could not be delivered to one recipient.

    Policy: log and continue with the remaining recipients.

    Context keys:
        channel_id (str): the target channel
        status_code (int | None): HTTP status if a response was received
    """
