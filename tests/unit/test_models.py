"""Tests for fund_watch.core.models and the instrument registry."""

from datetime import date, datetime, timezone

import pytest
from pydantic import ValidationError

from fund_watch.core.instruments import INSTRUMENTS, get_instrument
from fund_watch.core.models import (
    ChangeResult,
    ChangeStatus,
    Instrument,
    InstrumentKey,
    Observation,
    ObservationDraft,
    percentage_change,
)


class TestInstrument:
    def test_valid(self):
        inst = Instrument(
            key=InstrumentKey.WERELDWIJD,
            display_name="Aandelen Wereldwijd Totaal",
            source_url="https://www.meesman.nl/onze-fondsen/aandelen-wereldwijd-totaal/",
            identifier_code="NL0013689110",
        )
        assert inst.key == "wereldwijd"

    def test_rejects_http(self):
        with pytest.raises(ValidationError, match="HTTPS"):
            Instrument(
                key=InstrumentKey.WERELDWIJD,
                display_name="x",
                source_url="http://www.meesman.nl/",
                identifier_code="NL0013689110",
            )

    @pytest.mark.parametrize("code", ["NL001368911", "nl0013689110", "NL001368911X", "1L0013689110"])
    def test_rejects_bad_identifier(self, code):
        with pytest.raises(ValidationError, match="identifier"):
            Instrument(
                key=InstrumentKey.WERELDWIJD,
                display_name="x",
                source_url="https://www.meesman.nl/",
                identifier_code=code,
            )

    def test_frozen(self):
        with pytest.raises(ValidationError):
            INSTRUMENTS[InstrumentKey.WERELDWIJD].display_name = "other"


class TestRegistry:
    def test_every_key_registered(self):
        assert set(INSTRUMENTS) == set(InstrumentKey)

    def test_keys_match_entries(self):
        for key, inst in INSTRUMENTS.items():
            assert inst.key == key

    def test_get_by_string(self):
        assert get_instrument("verantwoord").identifier_code == "NL0015000PW1"

    def test_unknown_key(self):
        with pytest.raises(ValueError):
            get_instrument("obligaties")


class TestObservation:
    def _make(self, **overrides):
        data = dict(
            instrument_key=InstrumentKey.WERELDWIJD,
            price=96.6307,
            price_date=date(2026, 1, 9),
            fetched_at=datetime(2026, 1, 12, 9, 0, tzinfo=timezone.utc),
        )
        data.update(overrides)
        return Observation(**data)

    def test_price_must_be_positive(self):
        with pytest.raises(ValidationError, match="positive"):
            self._make(price=0)

    def test_cost_ratio_non_negative(self):
        with pytest.raises(ValidationError, match="negative"):
            self._make(annual_cost_ratio=-0.1)

    def test_performance_year_range(self):
        with pytest.raises(ValidationError, match="performance year"):
            self._make(performances={2031: 4.0})

    def test_display_date_uses_price_date(self):
        assert self._make().display_date == "2026-01-09"

    def test_display_date_falls_back_to_fetch_date(self):
        assert self._make(price_date=None).display_date == "2026-01-12"


class TestObservationDraft:
    def test_all_optional(self):
        draft = ObservationDraft()
        assert draft.price is None
        assert draft.performances == {}

    def test_year_range(self):
        with pytest.raises(ValidationError):
            ObservationDraft(performances={2019: 1.0})


class TestChangeResult:
    def test_changed_property(self):
        assert ChangeResult(instrument_key="wereldwijd", status=ChangeStatus.CHANGED).changed
        assert not ChangeResult(
            instrument_key="wereldwijd", status=ChangeStatus.FETCH_FAILED
        ).changed


class TestPriceNotification:
    def test_change_properties(self, make_notification):
        n = make_notification(price=101.0, previous_price=100.0)
        assert n.absolute_change == pytest.approx(1.0)
        assert n.percentage_change == pytest.approx(1.0)

    def test_without_previous(self, make_notification):
        n = make_notification()
        assert n.absolute_change is None
        assert n.percentage_change == 0.0


class TestPercentageChange:
    def test_increase(self):
        assert percentage_change(100.0, 110.0) == pytest.approx(10.0)

    def test_decrease(self):
        assert percentage_change(100.0, 95.0) == pytest.approx(-5.0)

    def test_zero_base(self):
        assert percentage_change(0.0, 10.0) == 0.0
