import re
from collections import namedtuple
from datetime import date, datetime, time, timedelta
from functools import lru_cache
from typing import Dict, List, Optional, Tuple

import parsedatetime
from autocorrect import Speller
from rapidfuzz import fuzz, process

from flight_logger import logger


CityInfo = namedtuple("CityInfo", ["code", "name"])
CityMatch = namedtuple("CityMatch", ["alias", "city", "start"])

# City (and alias) to IATA mapping
city_to_iata = {
    "delhi": CityInfo("DEL", "Delhi"),
    "new delhi": CityInfo("DEL", "Delhi"),
    "mumbai": CityInfo("BOM", "Mumbai"),
    "bombay": CityInfo("BOM", "Mumbai"),
    "bangalore": CityInfo("BLR", "Bangalore"),
    "bengaluru": CityInfo("BLR", "Bangalore"),
    "hyderabad": CityInfo("HYD", "Hyderabad"),
    "chennai": CityInfo("MAA", "Chennai"),
    "madras": CityInfo("MAA", "Chennai"),
    "kolkata": CityInfo("CCU", "Kolkata"),
    "calcutta": CityInfo("CCU", "Kolkata"),
    "ahmedabad": CityInfo("AMD", "Ahmedabad"),
    "pune": CityInfo("PNQ", "Pune"),
    "jaipur": CityInfo("JAI", "Jaipur"),
    "ranchi": CityInfo("IXR", "Ranchi"),
    "patna": CityInfo("PAT", "Patna"),
    "lucknow": CityInfo("LKO", "Lucknow"),
    "guwahati": CityInfo("GAU", "Guwahati"),
    "bhubaneswar": CityInfo("BBI", "Bhubaneswar"),
    "goa": CityInfo("GOI", "Goa (Mopa/Dabolim)"),
    "varanasi": CityInfo("VNS", "Varanasi"),
    "srinagar": CityInfo("SXR", "Srinagar"),
    "coimbatore": CityInfo("CJB", "Coimbatore"),
    "trivandrum": CityInfo("TRV", "Trivandrum"),
    "thiruvananthapuram": CityInfo("TRV", "Trivandrum"),
    "indore": CityInfo("IDR", "Indore"),
    "nagpur": CityInfo("NAG", "Nagpur"),
    "chandigarh": CityInfo("IXC", "Chandigarh"),
    "amritsar": CityInfo("ATQ", "Amritsar"),
    "raipur": CityInfo("RPR", "Raipur"),
    "visakhapatnam": CityInfo("VTZ", "Visakhapatnam"),
    "vizag": CityInfo("VTZ", "Visakhapatnam"),
    "bhopal": CityInfo("BHO", "Bhopal"),
    "udaipur": CityInfo("UDR", "Udaipur"),
    "kochi": CityInfo("COK", "Kochi"),
    "cochin": CityInfo("COK", "Kochi"),
}

city_names = list(city_to_iata.keys())
iata_codes = {info.code: info for info in city_to_iata.values()}

# Longest aliases first so "new delhi" wins over "delhi"
CITY_PATTERN = re.compile(
    r"\b(" + "|".join(re.escape(c) for c in sorted(city_names, key=len, reverse=True)) + r")\b"
)

# Airline name mappings (including common variations and misspellings)
airline_mappings = {
    "indigo": ("IndiGo", ["indigo", "indigo airlines", "6e"]),
    "air india": ("Air India", ["air india", "air-india", "airindia"]),
    "spicejet": ("SpiceJet", ["spicejet", "spice jet", "spice-jet"]),
    "vistara": ("Vistara", ["vistara", "air vistara"]),
    "goair": ("GoAir", ["goair", "go air", "go-air", "go first"]),
    "airasia": ("AirAsia India", ["airasia", "air asia", "airasia india"]),
}

all_airline_keywords = [
    (variation, key) for key, (_, variations) in airline_mappings.items() for variation in variations
]
AIRLINE_PATTERN = re.compile(
    r"\b("
    + "|".join(re.escape(v) for v, _ in sorted(all_airline_keywords, key=lambda x: len(x[0]), reverse=True))
    + r")\b"
)

FROM_INDICATORS = {"from", "departing", "leaving", "starting"}
TO_INDICATORS = {"to", "towards", "for", "into", "reach", "visit", "arriving", "bound"}

# Strategy 1: "from X to Y"
FROM_TO_PATTERN = re.compile(
    r"\b(?:from|departing|leaving)\s+([a-z\s]+?)\s+(?:to|towards|for)\s+([a-z\s]+)"
)
# Strategy 2: bare "X to Y"
DIRECT_PATTERN = re.compile(r"([a-z][a-z\s]*?)\s+(?:to|and|-)\s+([a-z][a-z\s]*)")


def _normalize(text):
    """Lowercase, turn arrows into 'to' and drop punctuation except hyphens"""
    text = text.lower()
    text = text.replace("->", " to ").replace("→", " to ").replace("–", "-").replace("—", "-")
    text = re.sub(r"[^a-z0-9\s-]", " ", text)
    return re.sub(r"\s+", " ", text).strip()


def lookup_city(name):
    """Return CityInfo for a city name, alias or IATA code, None if unknown"""
    if not name:
        return None
    key = _normalize(name)
    if key in city_to_iata:
        return city_to_iata[key]
    return iata_codes.get(key.upper())


def find_cities(text) -> List[CityMatch]:
    """All known city aliases in text order"""
    query = _normalize(text)
    return [
        CityMatch(m.group(1), city_to_iata[m.group(1)], m.start())
        for m in CITY_PATTERN.finditer(query)
    ]


def mentions_known_city(text):
    return bool(find_cities(text))


def extract_single_city(text):
    """First known city in the text, used while filling a single slot"""
    found = find_cities(text)
    return found[0].city if found else None


def _first_city(fragment):
    found = find_cities(fragment)
    return found[0].city if found else None


def _last_city(fragment):
    found = find_cities(fragment)
    return found[-1].city if found else None


def _scan_cities(query):
    """Strategy 3: known city names in text order, using the preceding word as a hint"""
    found = []
    seen = set()
    for match in find_cities(query):
        if match.alias in seen:
            continue
        seen.add(match.alias)
        words_before = query[:match.start].split()
        previous = words_before[-1] if words_before else ""
        if previous in FROM_INDICATORS:
            role = "source"
        elif previous in TO_INDICATORS:
            role = "destination"
        else:
            role = None
        found.append((match.city, role))

    if not found:
        return None, None

    if len(found) == 1:
        city, role = found[0]
        # A lone city is a destination unless it is clearly the origin
        return (city, None) if role == "source" else (None, city)

    source = next((c for c, r in found if r == "source"), None)
    destination = next((c for c, r in found if r == "destination" and c is not source), None)
    unassigned = [c for c, r in found if r is None]
    if source is None and unassigned:
        source = unassigned.pop(0)
    if destination is None and unassigned:
        destination = unassigned.pop(0)
    return source, destination


def extract_cities(text) -> Tuple[Optional[CityInfo], Optional[CityInfo]]:
    """
    Extract (source, destination) from free text.

    Tries "from X to Y", then "X to Y", then a scan for known city names.
    Only cities from the lookup table are ever returned; a slot that cannot
    be identified stays None.
    """
    query = _normalize(text)
    candidates = []

    match = FROM_TO_PATTERN.search(query)
    if match:
        candidates.append((_first_city(match.group(1)), _first_city(match.group(2))))

    match = DIRECT_PATTERN.search(query)
    if match:
        candidates.append((_last_city(match.group(1)), _first_city(match.group(2))))

    candidates.append(_scan_cities(query))

    for source, destination in candidates:
        if source and destination:
            return source, destination

    # Nothing resolved both slots, keep the most informative partial answer
    partial = [c for c in candidates if c[0] or c[1]]
    return partial[0] if partial else (None, None)


# ---- DATES ---- #

MONTHS = r"(?:jan(?:uary)?|feb(?:ruary)?|mar(?:ch)?|apr(?:il)?|may|jun(?:e)?|jul(?:y)?|aug(?:ust)?|sep(?:t(?:ember)?)?|oct(?:ober)?|nov(?:ember)?|dec(?:ember)?)"
WEEKDAYS = ["monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday"]
WEEKDAY_RE = r"(?:" + "|".join(WEEKDAYS) + r")"
NUMBER_WORDS = {
    "a": 1, "an": 1, "one": 1, "two": 2, "three": 3, "four": 4, "five": 5,
    "six": 6, "seven": 7, "eight": 8, "nine": 9, "ten": 10,
}
NUMBER_RE = r"(?:\d{1,2}|" + "|".join(NUMBER_WORDS) + r")"

DATE_EXPRESSION = (
    r"(?:day after tomorrow|tomorrow|today|tonight"
    r"|next\s+week"
    r"|(?:next|this|coming)\s+" + WEEKDAY_RE +
    r"|" + WEEKDAY_RE +
    r"|\d{4}-\d{1,2}-\d{1,2}"
    r"|\d{1,2}(?:st|nd|rd|th)?\s+(?:of\s+)?" + MONTHS + r"(?:,?\s+\d{4})?"
    r"|" + MONTHS + r"\s+\d{1,2}(?:st|nd|rd|th)?(?:,?\s+\d{4})?"
    r"|\d{1,2}[/-]\d{1,2}(?:[/-]\d{2,4})?"
    r"|in\s+" + NUMBER_RE + r"\s+(?:days?|weeks?|months?))"
)

date_keywords = ["on", "for", "around", "near", "date", "dated"]
KEYWORD_DATE_PATTERN = re.compile(
    r"\b(?:" + "|".join(date_keywords) + r")\s+(" + DATE_EXPRESSION + r")\b"
)
BARE_DATE_PATTERN = re.compile(r"\b(" + DATE_EXPRESSION + r")\b")

DAY_MONTH_PATTERN = re.compile(r"(\d{1,2})(?:st|nd|rd|th)?\s+(?:of\s+)?([a-z]+)(?:,?\s+(\d{4}))?")
MONTH_DAY_PATTERN = re.compile(r"([a-z]+)\s+(\d{1,2})(?:st|nd|rd|th)?(?:,?\s+(\d{4}))?")
NUMERIC_PATTERN = re.compile(r"(\d{1,2})[/-](\d{1,2})(?:[/-](\d{2,4}))?")
ISO_PATTERN = re.compile(r"(\d{4})-(\d{1,2})-(\d{1,2})")
OFFSET_PATTERN = re.compile(r"in\s+(\w+)\s+(days?|weeks?|months?)")


@lru_cache(maxsize=1)
def get_speller():
    return Speller(lang="en")


def correct_spelling(text):
    return get_speller()(text)


def _month_number(name):
    months = ["jan", "feb", "mar", "apr", "may", "jun", "jul", "aug", "sep", "oct", "nov", "dec"]
    prefix = name[:3]
    return months.index(prefix) + 1 if prefix in months else None


def _make_date(year, month, day):
    try:
        return date(year, month, day)
    except ValueError:
        return None


def _not_in_past(candidate, today):
    """Roll a past date into next year; None if it is still in the past"""
    if candidate is None:
        return None
    if candidate < today:
        candidate = _make_date(candidate.year + 1, candidate.month, candidate.day)
        if candidate is None or candidate < today:
            logger.debug("Parsed date is still in the past, ignoring it")
            return None
    return candidate


def _weekday_date(phrase, today):
    words = phrase.split()
    target = WEEKDAYS.index(words[-1])
    # First occurrence strictly after today
    days_ahead = (target - today.weekday()) % 7 or 7
    if words[0] == "next":
        # "next <day>" skips the first occurrence counted from tomorrow
        tomorrow = today + timedelta(days=1)
        days_ahead = 1 + (target - tomorrow.weekday()) % 7 + 7
    return today + timedelta(days=days_ahead)


def _offset_date(phrase, today):
    """Offsets like 'in 3 days' are handed to parsedatetime"""
    match = OFFSET_PATTERN.fullmatch(phrase)
    if not match:
        return None
    amount = match.group(1)
    amount = NUMBER_WORDS.get(amount, amount)
    cal = parsedatetime.Calendar()
    source_time = datetime.combine(today, time(12, 0))
    time_struct, parse_status = cal.parse(f"{amount} {match.group(2)}", source_time)
    if parse_status >= 1:
        return date(*time_struct[:3])
    return None


def _numeric_date(match, today):
    first, second = int(match.group(1)), int(match.group(2))
    year_str = match.group(3)
    if year_str:
        year = int("20" + year_str) if len(year_str) == 2 else int(year_str)
    else:
        year = today.year

    # Assume MM/DD first, retry as DD/MM when that cannot be a month/day
    parsed = None
    if first <= 12:
        parsed = _make_date(year, first, second)
    if parsed is None:
        parsed = _make_date(year, second, first)
    return _not_in_past(parsed, today)


def parse_date_phrase(phrase, today=None) -> Optional[date]:
    """Resolve a single date phrase (already lowercased) to a calendar date"""
    today = today or date.today()
    phrase = re.sub(r"\s+", " ", phrase.strip().lower())

    if phrase in ("today", "tonight"):
        return today
    if phrase == "tomorrow":
        return today + timedelta(days=1)
    if phrase == "day after tomorrow":
        return today + timedelta(days=2)
    if phrase == "next week":
        return today + timedelta(days=7)
    if phrase.split()[-1] in WEEKDAYS:
        return _weekday_date(phrase, today)
    if phrase.startswith("in "):
        return _offset_date(phrase, today)

    match = ISO_PATTERN.fullmatch(phrase)
    if match:
        return _not_in_past(_make_date(*map(int, match.groups())), today)

    match = DAY_MONTH_PATTERN.fullmatch(phrase)
    if match and _month_number(match.group(2)):
        year = int(match.group(3)) if match.group(3) else today.year
        return _not_in_past(_make_date(year, _month_number(match.group(2)), int(match.group(1))), today)

    match = MONTH_DAY_PATTERN.fullmatch(phrase)
    if match and _month_number(match.group(1)):
        year = int(match.group(3)) if match.group(3) else today.year
        return _not_in_past(_make_date(year, _month_number(match.group(1)), int(match.group(2))), today)

    match = NUMERIC_PATTERN.fullmatch(phrase)
    if match:
        return _numeric_date(match, today)

    return None


def _scan_date(text, today):
    for pattern in (KEYWORD_DATE_PATTERN, BARE_DATE_PATTERN):
        match = pattern.search(text)
        if match:
            logger.debug(f"Found date string: {match.group(1)}")
            return match.group(1), parse_date_phrase(match.group(1), today)
    return None, None


def extract_travel_date(text, today=None) -> Optional[date]:
    """
    Best-effort date extraction. Returns None when the text has no usable
    date phrase (or the phrase resolves to a date that has already passed).
    """
    today = today or date.today()
    query = re.sub(r"\s+", " ", text.lower())

    phrase, parsed = _scan_date(query, today)
    if phrase is None:
        # Retry once on spell-corrected text ("tommorow", "tuesay")
        try:
            corrected = correct_spelling(query)
        except Exception as e:
            logger.warning(f"Spell correction failed: {e}")
            corrected = query
        if corrected != query:
            phrase, parsed = _scan_date(corrected, today)
    return parsed


def resolve_travel_date(text, today=None) -> date:
    """Date for a search: the extracted date, or tomorrow"""
    today = today or date.today()
    return extract_travel_date(text, today) or today + timedelta(days=1)


# ---- SEARCH OPTIONS ---- #

NON_STOP_PATTERN = re.compile(r"\b(?:non[\s-]?stop|direct)\b")
DURATION_SORT_PATTERN = re.compile(r"\b(?:fastest|shortest|quickest|sort(?:ed)? by (?:duration|time))\b")
PRICE_SORT_PATTERN = re.compile(r"\b(?:cheapest|lowest (?:price|fare)s?|(?:sort(?:ed)? )?by price)\b")


def extract_airline(text) -> Optional[str]:
    """Canonical airline key ("indigo", "air india", ...) mentioned in the text"""
    query = _normalize(text)
    match = AIRLINE_PATTERN.search(query)
    if match:
        return dict(all_airline_keywords)[match.group(1)]

    # Fuzzy matching for misspellings ("indgo", "vistra")
    words = query.split()
    candidates = words + [" ".join(pair) for pair in zip(words, words[1:])]
    keywords = [v for v, _ in all_airline_keywords]
    best = None
    for candidate in candidates:
        if len(candidate) < 5:
            continue
        result = process.extractOne(candidate, keywords, scorer=fuzz.ratio, score_cutoff=85)
        if result and (best is None or result[1] > best[1]):
            best = result
    if best:
        return dict(all_airline_keywords)[best[0]]
    return None


def airline_display_name(key):
    if key in airline_mappings:
        return airline_mappings[key][0]
    return key.title() if key else key


def extract_search_options(text) -> Dict[str, Optional[str]]:
    """Optional filter / airline / sort for a search request"""
    query = _normalize(text)
    options = {"filter": None, "airline": None, "sort": None}
    if NON_STOP_PATTERN.search(query):
        options["filter"] = "non-stop"
    options["airline"] = extract_airline(text)
    if DURATION_SORT_PATTERN.search(query):
        options["sort"] = "duration"
    elif PRICE_SORT_PATTERN.search(query):
        options["sort"] = "price"
    return options


def detect_price_preference(text):
    query = text.lower()
    if "cheap" in query or "budget" in query:
        return "budget"
    if "premium" in query or "business" in query:
        return "premium"
    return None


DEPARTURE_TIME_PATTERN = re.compile(r"\b(early morning|morning|afternoon|evening|late night|night|red[\s-]?eye)\b")


def detect_departure_time(text):
    """Preferred time of day for departures, e.g. "early morning"; None when not mentioned"""
    match = DEPARTURE_TIME_PATTERN.search(text.lower())
    if not match:
        return None
    slot = match.group(1)
    return "late night" if slot == "night" or slot.startswith("red") else slot


# Enhanced command-line interface
if __name__ == "__main__":
    while True:
        query = input("Enter your travel query: ").strip()
        if query.lower() in ["exit", "quit"]:
            print("Goodbye!")
            break
        if not query:
            continue
        source, destination = extract_cities(query)
        print({
            "source": source.code if source else None,
            "destination": destination.code if destination else None,
            "date": resolve_travel_date(query).isoformat(),
            **extract_search_options(query),
        })
