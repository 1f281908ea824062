from dataclasses import dataclass, field
from datetime import date
from typing import Dict, List, Optional, Set

from extract_parameters import CityInfo, detect_price_preference, extract_airline, find_cities
from models import FlightSearchParams


# Clarification states
NONE = "none"
NEED_SOURCE = "need-source"
NEED_DESTINATION = "need-destination"
NEED_BOTH = "need-both"

# Topics set right after a result list was shown (or refined)
RESULTS_TOPICS = {
    "flight_results_presented",
    "sorted_by_price",
    "sorted_by_duration",
    "asked_filter_nonstop",
    "asked_filter_airline",
    "set_price_alert",
}


@dataclass
class DialogueState:
    """Per-conversation memory of what the user has told us so far"""

    last_topic: str = ""
    mentioned_cities: Set[str] = field(default_factory=set)
    mentioned_airlines: Set[str] = field(default_factory=set)
    price_preference: str = ""
    pending_clarification: str = NONE
    pending_source: Optional[CityInfo] = None
    pending_destination: Optional[CityInfo] = None
    pending_date: Optional[date] = None
    pending_options: Dict[str, Optional[str]] = field(default_factory=dict)
    price_alerts: List[FlightSearchParams] = field(default_factory=list)
    departure_preference: str = ""
    quick_questions_shown: bool = False

    @property
    def results_presented(self) -> bool:
        return self.last_topic in RESULTS_TOPICS

    @property
    def awaiting_clarification(self) -> bool:
        return self.pending_clarification != NONE

    def observe(self, text):
        """Record cities, airlines and price preference mentioned in a user message"""
        for match in find_cities(text):
            self.mentioned_cities.add(match.city.code)
        airline = extract_airline(text)
        if airline:
            self.mentioned_airlines.add(airline)
        preference = detect_price_preference(text)
        if preference:
            self.price_preference = preference

    def ask_for(self, pending, source=None, destination=None, travel_date=None, options=None):
        self.pending_clarification = pending
        self.pending_source = source
        self.pending_destination = destination
        self.pending_date = travel_date
        self.pending_options = dict(options or {})
        self.last_topic = "clarification"

    def clear_pending(self):
        self.pending_clarification = NONE
        self.pending_source = None
        self.pending_destination = None
        self.pending_date = None
        self.pending_options = {}

    def reset(self):
        """Back to a fresh conversation"""
        self.last_topic = ""
        self.mentioned_cities = set()
        self.mentioned_airlines = set()
        self.price_preference = ""
        self.price_alerts = []
        self.departure_preference = ""
        self.quick_questions_shown = False
        self.clear_pending()

    def context_summary(self, search_params: Optional[FlightSearchParams] = None) -> str:
        """Condensed state used in LLM prompts"""
        parts = []
        if self.last_topic:
            parts.append(f"Last topic: {self.last_topic}.")
        if self.mentioned_cities:
            parts.append(f"Cities mentioned: {', '.join(sorted(self.mentioned_cities))}.")
        if self.mentioned_airlines:
            parts.append(f"Airlines mentioned: {', '.join(sorted(self.mentioned_airlines))}.")
        if self.price_preference:
            parts.append(f"Price preference: {self.price_preference}.")
        if self.departure_preference:
            parts.append(f"Preferred departure time: {self.departure_preference}.")
        if self.awaiting_clarification:
            parts.append(f"Waiting for the user to answer: {self.pending_clarification}.")
        if search_params:
            parts.append(
                f"Current search: {search_params.source} to {search_params.destination} "
                f"on {search_params.date.isoformat()}."
            )
        if self.price_alerts:
            parts.append(f"Active price alerts: {len(self.price_alerts)}.")
        return " ".join(parts) if parts else "New conversation, nothing discussed yet."
