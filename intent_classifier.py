"""
Rule-based intent classification.

Each rule is a (name, predicate, tag) row evaluated in order; the first
predicate that holds decides the tag. Predicates get the lowercased message
and the conversation's DialogueState.
"""

import re
from collections import namedtuple
from functools import lru_cache

import spacy

from dialogue_state import DialogueState
from extract_parameters import AIRLINE_PATTERN, detect_departure_time, extract_airline, mentions_known_city


GREETING = "greeting"
THANKS = "thanks"
FLIGHT_SEARCH = "flight_search"
REFINEMENT = "sort_or_filter_refinement"
PREFERENCE_ANSWER = "preference_answer"
TOPIC_QUERY = "topic_query"
OUT_OF_DOMAIN = "out_of_domain"
UNRECOGNIZED = "unrecognized"

IntentRule = namedtuple("IntentRule", ["name", "predicate", "tag"])

GREETING_PATTERN = re.compile(r"^\s*(?:hi|hello|hey|greetings|good (?:morning|afternoon|evening))\b")
THANKS_PATTERN = re.compile(r"\b(?:thank|thanks|thx)\b")
OPTION_NUMBER_PATTERN = re.compile(r"^\s*(?:option\s*)?(?:#\s*)?([1-4])\s*[.)]?\s*$")

# Single-token travel vocabulary
travel_vocabulary = {
    "flight", "flights", "fly", "flying", "travel", "travelling", "traveling", "airline", "airlines",
    "plane", "trip", "route", "journey", "ticket", "tickets", "departure", "arrival", "airport",
    "book", "booking", "fare", "fares", "price", "prices", "schedule", "timing", "timings",
    "layover", "direct", "nonstop", "connecting", "search", "destination", "baggage", "luggage",
    "passenger", "passengers", "boarding", "landing", "domestic", "international", "economy",
    "business", "cheap", "cheapest", "expensive", "delay", "delayed", "cancel", "cancellation",
    "checkin", "fastest", "shortest", "duration", "sort", "filter", "alert",
    "assistance", "wheelchair", "mobility", "dietary", "meal", "meals", "vegetarian", "vegan", "infant",
    "indigo", "vistara", "spicejet", "goair", "airasia", "emirates", "lufthansa", "etihad",
}
# Multi-word phrases the tokenizer would split
travel_phrases = re.compile(
    r"\b(?:one[\s-]way|round[\s-]trip|first class|check[\s-]in|non[\s-]stop|air india|price alert)\b"
)

search_keywords = re.compile(r"\b(?:find|search|look for|flights?|from|show me|book|travel|trip|tickets?)\b")

refinement_patterns = re.compile(
    r"\b(?:non[\s-]?stop|direct|filter|sort|fastest|shortest|quickest|duration|cheapest|"
    r"by price|lowest price|airlines?|alert|keep an eye|track|notify)\b"
)

topic_patterns = {
    "baggage": re.compile(r"\b(?:baggage|luggage|bags?|carry[\s-]on|cabin bag)\b"),
    "checkin": re.compile(r"\b(?:check[\s-]?in|boarding pass|web check)\b"),
    "assistance": re.compile(
        r"\b(?:special assistance|assistance|wheelchair|mobility|dietary|meals?|vegetarian|vegan|infant)\b"
    ),
    "tips": re.compile(r"\b(?:tips?|advice|suggestions?)\b"),
    "alerts": re.compile(r"\b(?:price alerts?|alerts?|notify|keep an eye|track (?:the )?prices?)\b"),
}
airline_info_pattern = re.compile(r"\bairlines?\b")


@lru_cache(maxsize=1)
def get_tokenizer():
    """Blank English pipeline, tokenizer only"""
    return spacy.blank("en")


def tokenize(text):
    return [token.lower_ for token in get_tokenizer()(text) if not (token.is_punct or token.is_space)]


def has_travel_vocabulary(query):
    if travel_phrases.search(query) or AIRLINE_PATTERN.search(query):
        return True
    return any(token in travel_vocabulary for token in tokenize(query))


def is_option_reply(query, state):
    return state.results_presented and bool(OPTION_NUMBER_PATTERN.match(query))


def detect_topic(text):
    """Which help topic the message asks about, or None"""
    query = text.lower()
    for topic, pattern in topic_patterns.items():
        if pattern.search(query):
            return topic
    if extract_airline(query) or airline_info_pattern.search(query):
        return "airline_info"
    return None


def _is_greeting(query, state):
    return bool(GREETING_PATTERN.search(query)) and not mentions_known_city(query)


def _is_thanks(query, state):
    return bool(THANKS_PATTERN.search(query)) and not mentions_known_city(query)


def _is_clarification_reply(query, state):
    return state.awaiting_clarification


def _answers_quick_question(query, state):
    return state.quick_questions_shown and bool(detect_departure_time(query)) and not mentions_known_city(query)


def _is_out_of_domain(query, state):
    return not (
        has_travel_vocabulary(query)
        or mentions_known_city(query)
        or is_option_reply(query, state)
        or extract_airline(query)
    )


def _mentions_city(query, state):
    return mentions_known_city(query)


def _is_refinement(query, state):
    if not state.results_presented:
        return False
    return bool(OPTION_NUMBER_PATTERN.match(query) or refinement_patterns.search(query)) or bool(
        extract_airline(query)
    )


def _names_requested_airline(query, state):
    return state.last_topic == "asked_which_airline" and bool(extract_airline(query))


def _is_topic_question(query, state):
    return any(pattern.search(query) for pattern in topic_patterns.values())


def _has_search_keyword(query, state):
    return bool(search_keywords.search(query))


def _mentions_airline(query, state):
    return bool(extract_airline(query) or airline_info_pattern.search(query))


def _always(query, state):
    return True


INTENT_RULES = [
    IntentRule("greeting", _is_greeting, GREETING),
    IntentRule("thanks", _is_thanks, THANKS),
    IntentRule("clarification_reply", _is_clarification_reply, FLIGHT_SEARCH),
    IntentRule("departure_time_answer", _answers_quick_question, PREFERENCE_ANSWER),
    IntentRule("out_of_domain", _is_out_of_domain, OUT_OF_DOMAIN),
    IntentRule("city_mentioned", _mentions_city, FLIGHT_SEARCH),
    IntentRule("results_refinement", _is_refinement, REFINEMENT),
    IntentRule("airline_answer", _names_requested_airline, REFINEMENT),
    IntentRule("topic_question", _is_topic_question, TOPIC_QUERY),
    IntentRule("search_keyword", _has_search_keyword, FLIGHT_SEARCH),
    IntentRule("airline_question", _mentions_airline, TOPIC_QUERY),
    IntentRule("fallback", _always, UNRECOGNIZED),
]


def classify_intent(text, state: DialogueState, rules=INTENT_RULES) -> str:
    """Return the tag of the first rule whose predicate matches"""
    query = text.lower().strip()
    for rule in rules:
        if rule.predicate(query, state):
            return rule.tag
    return UNRECOGNIZED
