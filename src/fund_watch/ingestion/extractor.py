"""Fund page text extractor: price, price date, identifier, costs, performance."""

from __future__ import annotations

import html
import logging
import re
from datetime import date
from typing import ClassVar

from bs4 import BeautifulSoup

from fund_watch.core.models import (
    PERFORMANCE_YEAR_MAX,
    PERFORMANCE_YEAR_MIN,
    InstrumentKey,
    ObservationDraft,
    Performances,
)

logger = logging.getLogger(__name__)


class PageExtractor:
    """Pulls structured price data out of a fund page's visible text.

    The page markup changes without notice but its wording does not, so
    every field is found by a regex over the cleaned text rather than by
    DOM position. Each field is matched independently; a field whose
    pattern is absent stays None and the rest are still returned.

    Numbers use the Dutch convention (comma as decimal separator); a period
    is accepted as well.
    """

    # "€ 96,6307 (09-01-2026)": price followed by its DD-MM-YYYY date
    PRICE_WITH_DATE: ClassVar[re.Pattern[str]] = re.compile(
        r"€\s*(\d+[,.]?\d+)\s*\((\d{2})-(\d{2})-(\d{4})\)"
    )
    PRICE_ONLY: ClassVar[re.Pattern[str]] = re.compile(r"€\s*(\d+[,.]?\d+)")
    # Two-letter prefix and ten letters or digits; first match wins
    IDENTIFIER: ClassVar[re.Pattern[str]] = re.compile(r"[A-Z]{2}[A-Z0-9]{10}")
    ANNUAL_COST: ClassVar[re.Pattern[str]] = re.compile(
        r"(\d+[,.]?\d*)\s*%\s*per\s*jaar",
        re.IGNORECASE,
    )
    # "2023: 12,5%", "2022. -8,1 %", "2021 27%"
    PERFORMANCE: ClassVar[re.Pattern[str]] = re.compile(
        r"(\d{4})\s*[:.]?\s*(-?\d+[,.]?\d*)\s*%"
    )

    def extract(
        self,
        raw_text: str,
        instrument_key: InstrumentKey | None = None,
    ) -> ObservationDraft:
        """Extract every recognizable field from a fund page.

        Args:
            raw_text: Page content, HTML or plain text.
            instrument_key: Used for log context only; extracted values are
                not cross-checked against the registry.

        Returns:
            ObservationDraft with None for each field that was not found.
        """
        text = self.extract_text(raw_text)
        price, price_date = self._extract_price(text)
        draft = ObservationDraft(
            price=price,
            price_date=price_date,
            identifier_code=self._extract_identifier(text),
            annual_cost_ratio=self._extract_annual_cost(text),
            performances=self._extract_performances(text),
        )
        logger.debug(
            "Extracted %s: price=%s date=%s identifier=%s costs=%s years=%s",
            instrument_key or "page",
            draft.price,
            draft.price_date,
            draft.identifier_code,
            draft.annual_cost_ratio,
            sorted(draft.performances),
        )
        return draft

    def extract_text(self, raw_text: str) -> str:
        """Convert page HTML to whitespace-normalized plain text.

        Plain text input is only unescaped and normalized.
        """
        if not raw_text or not raw_text.strip():
            return ""

        if self._is_html(raw_text):
            soup = BeautifulSoup(raw_text, "lxml")
            for tag in soup.find_all(["script", "style", "noscript"]):
                tag.decompose()
            root = soup.body or soup
            text = root.get_text(separator="\n")
        else:
            text = raw_text

        text = html.unescape(text)
        text = re.sub(r"[ \t\xa0]+", " ", text)
        text = re.sub(r"\n\s*\n+", "\n", text)
        return text.strip()

    def _extract_price(self, text: str) -> tuple[float | None, date | None]:
        match = self.PRICE_WITH_DATE.search(text)
        if match:
            price = _parse_decimal(match.group(1))
            day, month, year = match.group(2), match.group(3), match.group(4)
            try:
                price_date = date(int(year), int(month), int(day))
            except ValueError:
                logger.debug("Ignoring impossible price date %s-%s-%s", day, month, year)
                price_date = None
            return price, price_date

        match = self.PRICE_ONLY.search(text)
        if match:
            return _parse_decimal(match.group(1)), None
        return None, None

    def _extract_identifier(self, text: str) -> str | None:
        match = self.IDENTIFIER.search(text)
        return match.group(0) if match else None

    def _extract_annual_cost(self, text: str) -> float | None:
        match = self.ANNUAL_COST.search(text)
        return _parse_decimal(match.group(1)) if match else None

    def _extract_performances(self, text: str) -> Performances:
        performances: Performances = {}
        for match in self.PERFORMANCE.finditer(text):
            year = int(match.group(1))
            if not PERFORMANCE_YEAR_MIN <= year <= PERFORMANCE_YEAR_MAX:
                continue
            value = _parse_decimal(match.group(2))
            if value is not None:
                performances[year] = value
        return performances

    def _is_html(self, content: str) -> bool:
        """Heuristic: does this content appear to be HTML?"""
        html_tags = re.findall(
            r"<(?:html|body|div|p|span|section|main|br|head|table)\b",
            content[:5000],
            re.IGNORECASE,
        )
        return len(html_tags) >= 2


def _parse_decimal(raw: str) -> float | None:
    """Parse "96,6307" or "96.6307". Returns None for unparseable input."""
    try:
        return float(raw.replace(",", "."))
    except ValueError:
        return None
