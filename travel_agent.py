import re
from datetime import date, timedelta
from typing import List, Optional

import response_templates as templates
from dialogue_state import NEED_BOTH, NEED_DESTINATION, NEED_SOURCE, DialogueState
from extract_parameters import (
    NON_STOP_PATTERN,
    DURATION_SORT_PATTERN,
    PRICE_SORT_PATTERN,
    airline_display_name,
    detect_departure_time,
    extract_airline,
    extract_cities,
    extract_search_options,
    extract_single_city,
    extract_travel_date,
)
from flight_logger import logger
from flight_markup import render_search_command, strip_markup
from intent_classifier import (
    FLIGHT_SEARCH,
    GREETING,
    OPTION_NUMBER_PATTERN,
    OUT_OF_DOMAIN,
    PREFERENCE_ANSWER,
    REFINEMENT,
    THANKS,
    TOPIC_QUERY,
    UNRECOGNIZED,
    classify_intent,
    detect_topic,
)
from llm_client import LLMFallbackCaller, build_llm_caller, build_prompt
from models import AgentReply, Flight, FlightSearchParams, Message


CANCEL_PATTERN = re.compile(r"\b(?:cancel|never\s?mind|start over|forget it)\b")
ALERT_PATTERN = re.compile(r"\b(?:alert|keep an eye|track|notify|watch|monitor)\b")
AIRLINE_WORD_PATTERN = re.compile(r"\bairlines?\b")
FILTER_PATTERN = re.compile(r"\bfilter\b")

TOPIC_TAGS = {
    "baggage": "baggage_info",
    "checkin": "checkin_info",
    "assistance": "special_assistance",
    "tips": "travel_tips",
    "alerts": "price_tracking",
    "airline_info": "airline_info",
}


class ConversationalTravelAgent:
    """
    Turns one user message (plus the conversation's DialogueState) into a reply.

    The agent holds no per-conversation data of its own; everything it learns
    goes into the DialogueState it is given, so one agent can serve many
    sessions.
    """

    def __init__(self, llm: Optional[LLMFallbackCaller] = None, rng=None, today=None):
        self.llm = llm if llm is not None else build_llm_caller()
        self.rng = rng
        self.today = today or date.today

        self.handlers = {
            GREETING: self.handle_greeting,
            THANKS: self.handle_thanks,
            OUT_OF_DOMAIN: self.handle_out_of_domain,
            FLIGHT_SEARCH: self.handle_flight_search,
            REFINEMENT: self.handle_refinement,
            PREFERENCE_ANSWER: self.handle_preference,
            TOPIC_QUERY: self.handle_topic_query,
            UNRECOGNIZED: self.handle_topic_query,
        }

    def initial_messages(self) -> List[Message]:
        return [Message.create(templates.welcome_message(self.rng), "bot")]

    async def generate_response(
        self,
        state: DialogueState,
        user_message: str,
        search_params: Optional[FlightSearchParams] = None,
        flights: Optional[List[Flight]] = None,
    ) -> AgentReply:
        """
        Reply to a user message, or describe search results.

        With an empty message plus search_params and flights this renders the
        results (or "no flights") reply. Otherwise search_params are the last
        searched params, used as the base for refinements.
        """
        if not user_message or not user_message.strip():
            if search_params is not None and flights is not None:
                return self.results_reply(state, search_params, flights)
            return AgentReply(templates.default_response(self.rng))

        state.observe(user_message)
        intent = classify_intent(user_message, state)
        logger.info(f"Intent '{intent}' for message: {user_message[:80]}")
        return await self.handlers[intent](state, user_message, search_params)

    # ---- SIMPLE INTENTS ---- #

    async def handle_greeting(self, state, user_message, search_params=None):
        state.last_topic = "greeting"
        return AgentReply(templates.greeting(self.rng))

    async def handle_thanks(self, state, user_message, search_params=None):
        state.last_topic = "thank_you"
        return AgentReply(templates.thank_you(self.rng))

    async def handle_out_of_domain(self, state, user_message, search_params=None):
        state.last_topic = "out_of_domain"
        return AgentReply(templates.out_of_domain(self.rng))

    # ---- FLIGHT SEARCH AND CLARIFICATION ---- #

    def tomorrow(self) -> date:
        return self.today() + timedelta(days=1)

    def synthesize_search(self, state, source, destination, travel_date=None, options=None) -> AgentReply:
        """Emit the search command, or the same-city correction when both codes match"""
        if source.code == destination.code:
            logger.info(f"Rejected search with identical cities: {source.code}")
            state.last_topic = "same_city"
            return AgentReply(templates.SAME_CITY)

        options = {k: v for k, v in (options or {}).items() if v}
        params = FlightSearchParams(
            source=source.code,
            destination=destination.code,
            date=travel_date or self.tomorrow(),
            **options,
        )
        state.clear_pending()
        state.last_topic = "flight_search_initiated"
        state.mentioned_cities.update({source.code, destination.code})
        logger.info(f"Search command: {params.source} → {params.destination} on {params.date.isoformat()}")

        text = f"{templates.search_confirmation(params, self.rng)}\n\n{render_search_command(params)}"
        return AgentReply(text, command=params)

    async def handle_flight_search(self, state, user_message, search_params=None):
        if state.awaiting_clarification:
            return self.continue_clarification(state, user_message)
        return self.start_search(state, user_message)

    def start_search(self, state, user_message) -> AgentReply:
        source, destination = extract_cities(user_message)
        travel_date = extract_travel_date(user_message, self.today())
        options = extract_search_options(user_message)

        if source and destination:
            return self.synthesize_search(state, source, destination, travel_date, options)
        if destination:
            state.ask_for(NEED_SOURCE, destination=destination, travel_date=travel_date, options=options)
            return AgentReply(templates.ASK_SOURCE.format(destination=destination.name))
        if source:
            state.ask_for(NEED_DESTINATION, source=source, travel_date=travel_date, options=options)
            return AgentReply(templates.ASK_DESTINATION.format(source=source.name))

        state.ask_for(NEED_BOTH, travel_date=travel_date, options=options)
        return AgentReply(templates.ASK_ROUTE_DETAILS)

    def continue_clarification(self, state, user_message) -> AgentReply:
        """Fill the missing route slot(s) from a reply to our question"""
        if CANCEL_PATTERN.search(user_message.lower()):
            state.clear_pending()
            state.last_topic = "clarification_cancelled"
            return AgentReply(templates.CLARIFICATION_CANCELLED)

        # A date or option in the reply overrides what the opening message said
        travel_date = extract_travel_date(user_message, self.today()) or state.pending_date
        options = dict(state.pending_options)
        options.update({k: v for k, v in extract_search_options(user_message).items() if v})

        if state.pending_clarification == NEED_BOTH:
            source, destination = extract_cities(user_message)
            if source and destination:
                return self.synthesize_search(state, source, destination, travel_date, options)
            city = source or destination
            if city:
                state.ask_for(NEED_DESTINATION, source=city, travel_date=travel_date, options=options)
                return AgentReply(templates.ASK_DESTINATION.format(source=city.name))
            return AgentReply(templates.UNKNOWN_CITY)

        city = extract_single_city(user_message)
        if city is None:
            return AgentReply(templates.UNKNOWN_CITY)

        if state.pending_clarification == NEED_SOURCE:
            source, destination = city, state.pending_destination
        else:
            source, destination = state.pending_source, city

        if source is None or destination is None:
            # Lost the stored slot, start the question over
            state.ask_for(NEED_BOTH, travel_date=travel_date, options=options)
            return AgentReply(templates.ASK_BOTH_CITIES)
        return self.synthesize_search(state, source, destination, travel_date, options)

    # ---- REFINEMENTS ---- #

    def _refined(self, state, text, previous, topic, **changes) -> AgentReply:
        params = previous.with_options(**changes)
        state.last_topic = topic
        return AgentReply(f"{text}\n\n{render_search_command(params)}", command=params)

    async def handle_refinement(self, state, user_message, search_params=None):
        query = user_message.lower().strip()
        option = OPTION_NUMBER_PATTERN.match(query)
        choice = option.group(1) if option else None
        airline = extract_airline(user_message)
        previous = search_params

        if choice is None:
            if airline:
                return self.filter_by_airline(state, airline, previous)
            if NON_STOP_PATTERN.search(query):
                return self.filter_non_stop(state, previous)
            if DURATION_SORT_PATTERN.search(query):
                return self.sort_results(state, "duration", previous)
            if PRICE_SORT_PATTERN.search(query):
                return self.sort_results(state, "price", previous)
            if ALERT_PATTERN.search(query):
                return self.set_price_alert(state, previous)
            if AIRLINE_WORD_PATTERN.search(query):
                state.last_topic = "asked_which_airline"
                return AgentReply(templates.ASK_WHICH_AIRLINE)
            if FILTER_PATTERN.search(query):
                return self.filter_non_stop(state, previous)
            return await self.handle_topic_query(state, user_message, search_params)

        # Numbered follow-up options offered under every result list
        if choice == "1":
            return self.filter_non_stop(state, previous)
        if choice == "2":
            current = previous.sort if previous and previous.sort else "price"
            return self.sort_results(state, "duration" if current == "price" else "price", previous)
        if choice == "3":
            state.last_topic = "asked_which_airline"
            return AgentReply(templates.ASK_WHICH_AIRLINE)
        return self.set_price_alert(state, previous)

    def filter_non_stop(self, state, previous) -> AgentReply:
        if not previous:
            state.last_topic = "refinement_without_route"
            return AgentReply(templates.FILTER_NON_STOP_NO_ROUTE)
        return self._refined(state, templates.FILTER_NON_STOP, previous, "asked_filter_nonstop", filter="non-stop")

    def sort_results(self, state, sort, previous) -> AgentReply:
        if sort == "duration":
            if not previous:
                state.last_topic = "refinement_without_route"
                return AgentReply(templates.SORT_DURATION_NO_ROUTE)
            return self._refined(state, templates.SORT_DURATION, previous, "asked_sort_duration", sort="duration")
        if not previous:
            state.last_topic = "refinement_without_route"
            return AgentReply(templates.SORT_PRICE_NO_ROUTE)
        return self._refined(state, templates.SORT_PRICE, previous, "asked_sort_price", sort="price")

    def filter_by_airline(self, state, airline, previous) -> AgentReply:
        name = airline_display_name(airline)
        state.mentioned_airlines.add(airline)
        if not previous:
            state.last_topic = "refinement_without_route"
            return AgentReply(templates.FILTER_AIRLINE_NO_ROUTE.format(airline=name))
        return self._refined(
            state, templates.FILTER_AIRLINE.format(airline=name), previous, "asked_filter_airline", airline=airline
        )

    def set_price_alert(self, state, previous) -> AgentReply:
        if not previous:
            state.last_topic = "refinement_without_route"
            return AgentReply(templates.PRICE_ALERT_NO_ROUTE)
        state.price_alerts.append(previous)
        state.last_topic = "set_price_alert"
        logger.info(f"Price alert set for {previous.source} → {previous.destination} on {previous.date.isoformat()}")
        return AgentReply(templates.price_alert_set(previous))

    async def handle_preference(self, state, user_message, search_params=None):
        """Answer to the departure-time question shown with the first results"""
        slot = detect_departure_time(user_message)
        state.departure_preference = slot
        state.last_topic = "departure_time_preference"
        logger.info(f"Departure time preference: {slot}")
        return AgentReply(templates.departure_preference(slot, self.rng))

    # ---- TOPICS AND SMALL TALK ---- #

    async def handle_topic_query(self, state, user_message, search_params=None):
        """Ask the LLM first, fall back to the topic templates"""
        topic = detect_topic(user_message)
        airline = extract_airline(user_message)

        if state.last_topic == "asked_which_airline" and not airline:
            return AgentReply(templates.UNKNOWN_AIRLINE)

        prompt = build_prompt(user_message, state.context_summary(search_params))
        generated = await self.llm.generate(prompt)
        state.last_topic = TOPIC_TAGS.get(topic, "fallback_response")

        if generated:
            # Generated text never carries commands or result blocks
            generated = strip_markup(generated, results=True)
        if generated:
            return AgentReply(generated)
        return AgentReply(templates.topic_reply(topic, airline, self.rng))

    # ---- RESULTS ---- #

    def results_reply(self, state, params: FlightSearchParams, flights: List[Flight]) -> AgentReply:
        state.mentioned_cities.update({params.source, params.destination})
        if not flights:
            logger.info(f"No flights found for {params.source} → {params.destination} on {params.date.isoformat()}")
            state.last_topic = "no_flights_found"
            return AgentReply(templates.no_flights(params, self.rng))

        state.last_topic = "sorted_by_duration" if params.sort == "duration" else "sorted_by_price"
        # Onboarding questions go with the first result list only
        quick_questions = not state.quick_questions_shown
        state.quick_questions_shown = True
        text = templates.render_results_reply(params, flights, self.rng, quick_questions=quick_questions)
        return AgentReply(text, flights=list(flights))
