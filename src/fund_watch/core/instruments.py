"""Static registry of tracked funds."""

from __future__ import annotations

from fund_watch.core.models import Instrument, InstrumentKey

INSTRUMENTS: dict[InstrumentKey, Instrument] = {
    InstrumentKey.WERELDWIJD: Instrument(
        key=InstrumentKey.WERELDWIJD,
        display_name="Aandelen Wereldwijd Totaal",
        source_url="https://www.meesman.nl/onze-fondsen/aandelen-wereldwijd-totaal/",
        identifier_code="NL0013689110",
    ),
    InstrumentKey.VERANTWOORD: Instrument(
        key=InstrumentKey.VERANTWOORD,
        display_name="Aandelen Verantwoorde Toekomst",
        source_url="https://www.meesman.nl/onze-fondsen/aandelen-verantwoorde-toekomst/",
        identifier_code="NL0015000PW1",
    ),
}


def get_instrument(key: InstrumentKey | str) -> Instrument:
    """Look up an instrument by key.

    Raises:
        ValueError: If the key is not a known InstrumentKey.
    """
    return INSTRUMENTS[InstrumentKey(key)]
