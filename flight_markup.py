"""
Markup embedded in bot messages.

Two tags travel inside reply text: a self-closing ``<flight-search .../>``
command carrying the search parameters, and a ``<flight-results>`` block
holding one ``<flight>`` record per result. Replies also carry the command
as a structured value (AgentReply.command); the tag keeps stored transcripts
self-describing.
"""

import html
import re
from collections import namedtuple
from datetime import datetime
from typing import List, Optional, Tuple

from flight_logger import logger
from models import FlightSearchParams


COMMAND_PATTERN = re.compile(r"<flight-search\b([^>]*?)/?>(?:\s*</flight-search>)?", re.IGNORECASE)
ATTRIBUTE_PATTERN = re.compile(r'([a-z_]+)\s*=\s*"([^"]*)"', re.IGNORECASE)
RESULTS_PATTERN = re.compile(r"<flight-results>(.*?)</flight-results>", re.DOTALL | re.IGNORECASE)
FLIGHT_PATTERN = re.compile(r"<flight>(.*?)</flight>", re.DOTALL | re.IGNORECASE)

OPTIONAL_ATTRIBUTES = ("filter", "airline", "sort")

FlightCard = namedtuple(
    "FlightCard",
    [
        "airline",
        "flight_number",
        "departure_time",
        "arrival_time",
        "departure_iso",
        "arrival_iso",
        "duration",
        "price",
    ],
)

# Placeholders used when a record is missing a field
CARD_DEFAULTS = FlightCard(
    airline="Unknown Airline",
    flight_number="Unknown",
    departure_time="TBD",
    arrival_time="TBD",
    departure_iso="",
    arrival_iso="",
    duration="Unknown",
    price="Unknown",
)


def render_search_command(params: FlightSearchParams) -> str:
    attributes = [
        ("source", params.source),
        ("destination", params.destination),
        ("date", params.date.isoformat()),
    ]
    for name in OPTIONAL_ATTRIBUTES:
        value = getattr(params, name)
        if value:
            attributes.append((name, value))
    rendered = " ".join(f'{name}="{html.escape(str(value), quote=True)}"' for name, value in attributes)
    return f"<flight-search {rendered} />"


def has_search_command(text) -> bool:
    return bool(COMMAND_PATTERN.search(text or ""))


def parse_flight_search_command(text) -> Optional[FlightSearchParams]:
    """Structured params from the first command tag in text, None if absent or invalid"""
    match = COMMAND_PATTERN.search(text or "")
    if not match:
        return None

    attributes = {
        name.lower(): html.unescape(value) for name, value in ATTRIBUTE_PATTERN.findall(match.group(1))
    }
    source = attributes.get("source", "").strip().upper()
    destination = attributes.get("destination", "").strip().upper()
    if not source or not destination:
        logger.warning(f"Flight search command without route: {match.group(0)}")
        return None

    try:
        # Accepts plain dates as well as full timestamps
        travel_date = datetime.fromisoformat(attributes.get("date", "").strip()).date()
    except ValueError:
        logger.warning(f"Flight search command with invalid date: {attributes.get('date')}")
        return None

    return FlightSearchParams(
        source=source,
        destination=destination,
        date=travel_date,
        **{name: attributes.get(name) or None for name in OPTIONAL_ATTRIBUTES},
    )


def _tidy(text):
    text = re.sub(r"[ \t]+\n", "\n", text)
    return re.sub(r"\n{3,}", "\n\n", text).strip()


def strip_markup(text, results=False) -> str:
    """Remove command tags (and result blocks when results=True) from text"""
    text = COMMAND_PATTERN.sub("", text or "")
    if results:
        text = RESULTS_PATTERN.sub("", text)
    return _tidy(text)


def render_results_block(cards: List[FlightCard]) -> str:
    lines = ["<flight-results>"]
    for card in cards:
        lines.append("<flight>")
        for name, value in card._asdict().items():
            lines.append(f"<{name}>{html.escape(str(value), quote=False)}</{name}>")
        lines.append("</flight>")
    lines.append("</flight-results>")
    return "\n".join(lines)


def _field(record, name):
    match = re.search(rf"<{name}>(.*?)</{name}>", record, re.DOTALL)
    value = html.unescape(match.group(1).strip()) if match else ""
    return value or getattr(CARD_DEFAULTS, name)


def parse_flight_record(record) -> FlightCard:
    return FlightCard(**{name: _field(record, name) for name in FlightCard._fields})


def parse_results_block(text) -> Optional[Tuple[str, List[FlightCard], str]]:
    """
    Split a message around its results block.

    Returns (text before, cards, text after), or None when the message has no
    results block. Malformed records degrade to placeholder values.
    """
    match = RESULTS_PATTERN.search(text or "")
    if not match:
        return None
    cards = [parse_flight_record(record) for record in FLIGHT_PATTERN.findall(match.group(1))]
    before = strip_markup(text[: match.start()])
    after = strip_markup(text[match.end():])
    return before, cards, after
