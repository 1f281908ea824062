from __future__ import annotations

import uuid
from dataclasses import dataclass, field, replace
from datetime import date, datetime
from typing import List, Optional


@dataclass(frozen=True)
class Message:
    """A single chat message. Immutable once created."""

    id: str
    content: str
    type: str  # "user" | "bot"
    timestamp: datetime

    @classmethod
    def create(cls, content: str, type: str = "bot") -> "Message":
        return cls(id=str(uuid.uuid4()), content=content, type=type, timestamp=datetime.now())


@dataclass(frozen=True)
class FlightSearchParams:
    source: str  # IATA-style code, e.g. "DEL"
    destination: str
    date: date
    filter: Optional[str] = None  # "non-stop"
    airline: Optional[str] = None
    sort: Optional[str] = None  # "price" | "duration"

    def with_options(self, **changes) -> "FlightSearchParams":
        return replace(self, **changes)


@dataclass
class Flight:
    id: str
    airline: str
    flight_number: str
    departure_airport: str
    arrival_airport: str
    departure_time: datetime
    arrival_time: datetime
    price: int
    currency: str = "INR"
    duration_minutes: Optional[int] = None
    non_stop: bool = True

    @property
    def duration(self) -> int:
        """Arrival minus departure, in minutes."""
        return int((self.arrival_time - self.departure_time).total_seconds() // 60)


@dataclass
class AgentReply:
    """
    What the agent says plus what it wants done.

    `text` keeps the embedded markup so it can be stored and re-parsed later;
    `command` is the structured search request carried by this reply, if any.
    """

    text: str
    command: Optional[FlightSearchParams] = None
    flights: List[Flight] = field(default_factory=list)

    @property
    def display_text(self) -> str:
        from flight_markup import strip_markup

        return strip_markup(self.text)
