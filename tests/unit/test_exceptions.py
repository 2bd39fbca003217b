"""Tests for fund_watch.core.exceptions."""

import pytest

from fund_watch.core.exceptions import (
    ConfigError,
    DeliveryError,
    ExtractionIncompleteError,
    FetchError,
    FundWatchError,
    StorageError,
    StoreUnavailableError,
    TransportError,
)


class TestExceptionHierarchy:
    """Verify the exception class hierarchy."""

    @pytest.mark.parametrize(
        "exc", [ConfigError, FetchError, StorageError, DeliveryError]
    )
    def test_direct_subclasses(self, exc):
        assert issubclass(exc, FundWatchError)

    def test_fetch_family(self):
        assert issubclass(TransportError, FetchError)
        assert issubclass(ExtractionIncompleteError, FetchError)

    def test_unavailable_is_storage_error(self):
        assert issubclass(StoreUnavailableError, StorageError)

    def test_delivery_is_not_fetch(self):
        assert not issubclass(DeliveryError, FetchError)


class TestExceptionContext:
    """Verify context dict behavior."""

    def test_default_context_empty(self):
        assert FundWatchError("boom").context == {}

    def test_context_preserved(self):
        err = TransportError("HTTP 503", context={"url": "https://x", "status_code": 503})
        assert err.context["status_code"] == 503
        assert str(err) == "HTTP 503"

    def test_catchable_as_base(self):
        with pytest.raises(FundWatchError):
            raise ExtractionIncompleteError("no price found", context={"reason": "price"})
