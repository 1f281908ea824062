"""
Flight data: mock generation, the AviationStack client and the provider
fallback chain.

Callers never see a provider failure: the chain records what went wrong as a
FallbackEvent and finishes with the mock stub.
"""

import asyncio
import random
import uuid
from abc import ABC, abstractmethod
from collections import deque, namedtuple
from dataclasses import dataclass
from datetime import datetime, time, timedelta
from typing import Any, Deque, Dict, List, Optional

import requests

import flight_config
from extract_parameters import airline_display_name
from flight_logger import logger
from models import Flight, FlightSearchParams


class FlightProviderError(Exception):
    """Base error for flight data providers"""


class ProviderUnavailableError(FlightProviderError):
    """Missing credentials, network failure or non-2xx response"""


class MalformedResponseError(FlightProviderError):
    """Response body did not have the expected shape"""


# Airline name -> IATA-style code used for mock flight numbers
mock_airlines = {
    "Air India": "AI",
    "IndiGo": "6E",
    "SpiceJet": "SG",
    "Vistara": "UK",
    "GoAir": "G8",
    "AirAsia India": "I5",
}

FallbackEvent = namedtuple("FallbackEvent", ["provider", "error", "timestamp"])


@dataclass
class FlightDeal:
    id: str
    source: str
    destination: str
    price: int
    old_price: int
    currency: str
    date: str
    airline: str


def _random_price(rng):
    base_price = rng.randint(3000, 5999)
    return base_price + rng.randint(0, 1999) - 1000


def _matching_mock_airlines(airline):
    """Mock airlines restricted to the requested one when we know it"""
    if airline:
        wanted = airline_display_name(airline).lower()
        matches = [name for name in mock_airlines if name.lower() == wanted or airline.lower() in name.lower()]
        if matches:
            return matches
    return list(mock_airlines)


def generate_mock_flights(params: FlightSearchParams, count=None, rng=None) -> List[Flight]:
    """Pseudo-random non-stop flights for a route, sorted by price"""
    rng = rng or random.Random()
    count = flight_config.MOCK_FLIGHT_COUNT if count is None else count
    airlines = _matching_mock_airlines(params.airline)
    base_price = rng.randint(3000, 5999)

    flights = []
    for _ in range(count):
        airline = rng.choice(airlines)
        departure = datetime.combine(params.date, time(rng.randint(6, 19), rng.randint(0, 59)))
        duration_minutes = rng.randint(60, 179)
        flights.append(
            Flight(
                id=str(uuid.uuid4()),
                airline=airline,
                flight_number=f"{mock_airlines[airline]}{rng.randint(100, 9999)}",
                departure_airport=params.source,
                arrival_airport=params.destination,
                departure_time=departure,
                arrival_time=departure + timedelta(minutes=duration_minutes),
                price=base_price + rng.randint(0, 1999) - 1000,
                currency="INR",
                duration_minutes=duration_minutes,
                non_stop=True,
            )
        )
    return sort_flights(flights)


class AviationStackClient:
    """Thin requests wrapper around the AviationStack flights endpoint"""

    def __init__(self, api_key=None, base_url=None, timeout=None, session=None):
        self.api_key = api_key if api_key is not None else flight_config.AVIATIONSTACK_API_KEY
        self.base_url = base_url or flight_config.AVIATIONSTACK_BASE_URL
        self.timeout = timeout or flight_config.HTTP_TIMEOUT
        self.session = session or requests.Session()

    def get_flights(self, dep_iata, arr_iata, flight_date=None, limit=None, offset=0) -> Dict[str, Any]:
        if not self.api_key:
            raise ProviderUnavailableError("AviationStack API key is not configured")

        query = {
            "access_key": self.api_key,
            "dep_iata": dep_iata,
            "arr_iata": arr_iata,
            "limit": limit or flight_config.AVIATIONSTACK_LIMIT,
            "offset": offset,
        }
        if flight_date:
            query["flight_date"] = flight_date

        try:
            response = self.session.get(f"{self.base_url}/flights", params=query, timeout=self.timeout)
        except requests.exceptions.RequestException as e:
            raise ProviderUnavailableError(f"Network error: {e}") from e

        if response.status_code != 200:
            raise ProviderUnavailableError(f"API request failed with status {response.status_code}")

        try:
            payload = response.json()
        except ValueError as e:
            raise MalformedResponseError("Response is not valid JSON") from e

        if not isinstance(payload, dict) or not isinstance(payload.get("data"), list):
            raise MalformedResponseError("Response has no 'data' list")
        return payload


def _parse_timestamp(value):
    if not value:
        raise MalformedResponseError("Missing scheduled time")
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00"))
    except (TypeError, ValueError) as e:
        raise MalformedResponseError(f"Invalid timestamp: {value}") from e


def convert_aviationstack_flights(payload, params: FlightSearchParams, rng=None) -> List[Flight]:
    """Map AviationStack records into Flight objects with a synthetic price"""
    rng = rng or random.Random()
    flights = []
    for record in payload.get("data", []):
        try:
            departure = _parse_timestamp(record["departure"]["scheduled"])
            arrival = _parse_timestamp(record["arrival"]["scheduled"])
            airline = record["airline"]["name"]
            flight_number = record["flight"]["iata"]
        except (KeyError, TypeError) as e:
            raise MalformedResponseError(f"Unexpected flight record: {e}") from e

        flights.append(
            Flight(
                id=str(uuid.uuid4()),
                airline=airline or "Unknown Airline",
                flight_number=flight_number or "Unknown",
                departure_airport=params.source,
                arrival_airport=params.destination,
                departure_time=departure,
                arrival_time=arrival,
                price=_random_price(rng),
                currency="INR",
                duration_minutes=round((arrival - departure).total_seconds() / 60),
                non_stop=True,
            )
        )
    return sort_flights(flights)


class FlightSearchProvider(ABC):
    name = "provider"

    @abstractmethod
    def search(self, params: FlightSearchParams) -> List[Flight]:
        ...


class MockFlightProvider(FlightSearchProvider):
    name = "mock"

    def __init__(self, count=None, rng=None):
        self.count = count
        self.rng = rng

    def search(self, params: FlightSearchParams) -> List[Flight]:
        return generate_mock_flights(params, count=self.count, rng=self.rng)


class AviationStackProvider(FlightSearchProvider):
    name = "aviationstack"

    def __init__(self, client: Optional[AviationStackClient] = None):
        self.client = client or AviationStackClient()

    def search(self, params: FlightSearchParams) -> List[Flight]:
        payload = self.client.get_flights(params.source, params.destination)
        return convert_aviationstack_flights(payload, params)


class FlightProviderChain:
    """Try providers in order; the mock stub always answers last"""

    def __init__(self, providers=None, fallback: Optional[FlightSearchProvider] = None):
        self.providers = list(providers or [])
        self.fallback = fallback or MockFlightProvider()
        self.events: Deque[FallbackEvent] = deque(maxlen=flight_config.FALLBACK_EVENT_LIMIT)

    def search(self, params: FlightSearchParams) -> List[Flight]:
        for provider in self.providers:
            try:
                flights = provider.search(params)
                logger.info(f"{provider.name} returned {len(flights)} flights for {params.source} → {params.destination}")
                return flights
            except FlightProviderError as e:
                self._record(provider.name, e)
            except Exception as e:
                logger.exception(f"Unexpected error from {provider.name}")
                self._record(provider.name, e)

        flights = self.fallback.search(params)
        logger.info(f"Using mock flight data: {len(flights)} flights for {params.source} → {params.destination}")
        return flights

    def _record(self, provider_name, error):
        event = FallbackEvent(provider_name, str(error), datetime.now())
        self.events.append(event)
        logger.warning(f"Flight provider {provider_name} failed, falling back: {error}")


def build_provider_chain() -> FlightProviderChain:
    """Mock only when mocks are forced or no AviationStack key is configured"""
    if flight_config.ENABLE_MOCKS or not flight_config.AVIATIONSTACK_API_KEY:
        return FlightProviderChain()
    return FlightProviderChain([AviationStackProvider()])


def sort_flights(flights: List[Flight], sort=None) -> List[Flight]:
    if sort == "duration":
        return sorted(flights, key=lambda flight: flight.duration)
    return sorted(flights, key=lambda flight: flight.price)


def apply_search_options(flights: List[Flight], params: FlightSearchParams) -> List[Flight]:
    """Filter (non-stop, airline) and sort a result list"""
    results = list(flights)
    if params.filter == "non-stop":
        results = [flight for flight in results if flight.non_stop]
    if params.airline:
        wanted = airline_display_name(params.airline).lower()
        results = [
            flight
            for flight in results
            if flight.airline.lower() == wanted or params.airline.lower() in flight.airline.lower()
        ]
    return sort_flights(results, params.sort)


def find_flight_deal(params: FlightSearchParams, rng=None) -> FlightDeal:
    """A discounted fare (10-40% off) for a route, used for price alerts"""
    rng = rng or random.Random()
    base_price = rng.randint(3000, 5999)
    discounted = base_price - int(base_price * rng.uniform(0.1, 0.4))
    airlines = _matching_mock_airlines(params.airline)
    return FlightDeal(
        id=str(uuid.uuid4()),
        source=params.source,
        destination=params.destination,
        price=discounted,
        old_price=base_price,
        currency="INR",
        date=f"{params.date:%a, %b} {params.date.day}",
        airline=rng.choice(airlines),
    )


async def search_flights(params: FlightSearchParams, chain: Optional[FlightProviderChain] = None) -> List[Flight]:
    """Run the (blocking) provider chain without holding up the event loop"""
    chain = chain or build_provider_chain()
    logger.info(f"Searching flights from {params.source} to {params.destination} on {params.date.isoformat()}")
    return await asyncio.to_thread(chain.search, params)
