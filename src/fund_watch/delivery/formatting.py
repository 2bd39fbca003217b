"""Human-readable rendering of price updates.

Labels are Dutch, matching the fund pages the prices come from.
"""

from __future__ import annotations

from fund_watch.core.models import Performances, PriceNotification

ACCENT_COLOR = 0x68DDE4
_MAX_PERFORMANCE_YEARS = 4


def trend_marker(change: float | None) -> str:
    if change is None or change == 0:
        return "➡️"
    return "📈" if change > 0 else "📉"


def format_price(price: float) -> str:
    return f"€{price:.4f}"


def headline(notification: PriceNotification) -> str:
    marker = trend_marker(notification.absolute_change)
    return f"{marker} Meesman {notification.instrument.display_name}"


def price_lines(notification: PriceNotification) -> list[str]:
    """Current price, and when known the previous price, delta, and price date."""
    current = notification.observation
    lines = [f"**Huidige koers:** {format_price(current.price)}"]

    previous = notification.previous
    delta = notification.absolute_change
    if previous is not None and delta is not None:
        sign = "+" if delta >= 0 else "-"
        lines.append(f"**Vorige koers:** {format_price(previous.price)}")
        lines.append(
            f"**Verschil:** {sign}€{abs(delta):.4f} "
            f"({sign}{abs(notification.percentage_change):.2f}%)"
        )

    if current.price_date is not None:
        lines.append(f"**Koersdatum:** {current.price_date.isoformat()}")
    return lines


def performance_line(performances: Performances) -> str | None:
    """Most recent years first, e.g. "2025: +12.3% · 2024: -1.0%"."""
    if not performances:
        return None
    years = sorted(performances, reverse=True)[:_MAX_PERFORMANCE_YEARS]
    parts = []
    for year in years:
        value = performances[year]
        sign = "+" if value >= 0 else ""
        parts.append(f"{year}: {sign}{value:.1f}%")
    return " · ".join(parts)


def render_text(notification: PriceNotification) -> str:
    """Plain multi-line rendering of a price update."""
    lines = [headline(notification), *price_lines(notification)]
    perf = performance_line(notification.observation.performances)
    if perf:
        lines.append(f"**Rendement:** {perf}")
    lines.append(f"ISIN: {notification.instrument.identifier_code}")
    return "\n".join(lines)
