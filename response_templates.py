"""
Canned replies for Flight Friend.

Pools are sampled uniformly so repeated answers don't read robotic. Every
helper takes an optional ``rng`` (anything with ``choice``) so tests can pin
the pick.
"""

import random
from datetime import date
from typing import List, Optional

import flight_config
from extract_parameters import airline_display_name, iata_codes
from flight_markup import FlightCard, render_results_block
from models import Flight, FlightSearchParams


greetings = [
    "Hey there! 👋 I'm Flight Friend. Ready to find some amazing flight deals for you?",
    "Hello! Your friendly flight assistant, Flight Friend, reporting for duty! How can I help with your travel plans today?",
    "Hi! I'm Flight Friend. Need help searching for flights or need some travel tips? Just ask!",
    "Welcome! I'm Flight Friend, here to make your flight planning a breeze. What trip are you dreaming of?",
]

welcome_messages = [
    "Hi there! I'm Flight Friend, your AI travel buddy. Let's find you some great flights! Where are you thinking of going?",
    "Hello! Flight Friend here. I can help search for flights, track prices, or give travel advice. How can I assist you today? 😊",
    "Welcome to Flight Friend! Ready to plan your next adventure? Tell me your route and dates!",
    "Hey! 👋 Your AI flight assistant is ready. Ask me anything about flights!",
]

thank_you_responses = [
    "You're welcome! I wish you a happy and safe journey! ✈️",
    "Glad I could help! Have a wonderful and safe trip! 🌟",
    "You're welcome! Wishing you smooth skies and a fantastic journey! 🛫",
    "Anytime! I hope you have a safe and enjoyable flight! 🛬",
    "You're welcome! May your journey be as smooth as possible! ✈️",
    "Glad to help! Wishing you a safe and pleasant travel experience! 🌍",
]

out_of_domain_responses = [
    "I'm sorry, but I can only provide assistance with flight-related queries. Please ask me about finding flights, checking prices, or sorting flight options by distance and price.",
    "I apologize, but I'm designed specifically to help with flight information. Could you ask me about flights instead?",
    "I can't provide information about that topic. I'm specialized in helping you find and sort flights by distance and price. Please ask me about flights instead.",
    "Sorry, but that's outside my area of expertise. I can only help with flight-related questions. Feel free to ask me about finding flights or comparing flight options!",
]

search_confirmations = [
    "Alright! Searching for flights from {source_name} ({source}) to {destination_name} ({destination}) for {date}. Give me just a moment... ✈️",
    "Okay, looking up flights from {source_name} to {destination_name} departing on {date}. I'll be right back with the options!",
    "Got it! Let's find the best flights between {source_name} ({source}) and {destination_name} ({destination}) on {date}. Searching now...",
    "Perfect! I'm on the hunt for flights from {source_name} to {destination_name} for {date}. Please wait while I gather the details.",
]

results_intros = [
    "Great news! I found {count} {special}flight{plural} from {source} to {destination} on {date}{filter_description}:",
    "Success! ✨ I discovered {count} {special}flight option{plural} on {date}. Here they are, sorted by {sort}{filter_description}:",
    "Okay, I've got {count} {special}flight{plural} sorted by {sort}{filter_description}:",
]

no_flights_responses = [
    "Hmm, it seems there are no direct flights available from {source} to {destination} on {date}. 😕 Would you like to try searching for flights on a different date or maybe check nearby airports?",
    "Unfortunately, I couldn't find any flights matching your search from {source} to {destination} for {date}. Sometimes changing the date slightly can help. Want to try another date?",
    "It looks like flights are scarce for {source} to {destination} on {date}. Perhaps try searching on adjacent dates or explore alternative routes?",
]

travel_tips = [
    "Sure! One tip for finding cheaper flights in India is to be flexible with your travel dates. Flying mid-week (Tuesday or Wednesday) is often less expensive than on weekends.",
    "Happy to share a tip! Consider booking flights about 4-6 weeks in advance for domestic Indian travel, that's often the sweet spot for pricing.",
    "Here's a piece of advice: Sign up for airline newsletters! They sometimes send out exclusive deals or announce sales early.",
    "Travel tip! Check prices for nearby airports if possible. Sometimes flying into or out of a slightly less convenient airport can save you a good amount.",
    "Budget tip: Early morning or late-night 'red-eye' flights can sometimes be significantly cheaper if your schedule allows!",
]

departure_time_responses = [
    "Great! I'll keep {slot} departures in mind for your searches. Picking the right slot can make the whole trip easier!",
    "Perfect! I'll look out for {slot} flights for you. It also helps to avoid rush hour on the way to the airport!",
    "Noted, {slot} it is! I'll point out the flights that fit your schedule best.",
    "Excellent choice! I'll remember that you prefer {slot} departures.",
]

default_responses = [
    "I'm here to help with all things flights! Feel free to ask me to search for a specific route, like 'flights Delhi to Bangalore tomorrow'.",
    "Hmm, I'm not quite sure how to answer that specifically. I'm best at finding flights, providing travel tips, and giving airline info. Could you try rephrasing?",
    "I can search for flights if you tell me the origin, destination, and date. For example: 'Find flights from Chennai to Hyderabad next Friday'.",
    "Let's get your travel planning started! What flight route are you interested in?",
    "I'm ready to assist! Ask me about flight prices, schedules, or general travel advice.",
]

# Fixed texts
SAME_CITY = "It looks like the departure and destination cities are the same. Could you please provide different cities for your flight search?"
UNKNOWN_CITY = "I didn't recognize a valid city in your message. Could you please specify a major city in India? For example: Delhi, Mumbai, Bangalore, etc."
ASK_BOTH_CITIES = "I'd be happy to find flights for you! Could you please let me know both your departure and destination cities? For example: 'Delhi to Mumbai'"
ASK_SOURCE = "I can help you find flights to {destination}! Could you please tell me which city you'll be departing from?"
ASK_DESTINATION = "I can help you find flights from {source}! Could you please tell me which city you'd like to fly to?"
ASK_ROUTE_DETAILS = "Happy to help you find flights! 😊 To get started, could you please tell me the departure city, destination city, and the date you'd like to travel? For example: 'Flights from Mumbai to Goa on 25th December'."
CLARIFICATION_CANCELLED = "No problem, I've cancelled that search. Just tell me a route whenever you're ready!"
ASK_WHICH_AIRLINE = "Which airline would you like to see flights for? Some popular options are IndiGo, Air India, Vistara, SpiceJet, GoAir, and AirAsia."
UNKNOWN_AIRLINE = "I didn't recognize that airline. Could you try one of these: IndiGo, Air India, Vistara, SpiceJet, GoAir, or AirAsia?"
PRICE_ALERT_INFO = "I can definitely help keep an eye on prices for you! Once you search for a specific flight route and date, just ask me to set up a price alert, and I'll let you know if the fare changes."

SPECIAL_ASSISTANCE = "I understand you may need special assistance. Most airlines offer excellent support for passengers with special requirements, including wheelchair assistance and special meals. It's best to request these with the airline directly when booking so everything is arranged before you fly! 🤝"

QUICK_QUESTIONS = (
    "💡 Quick questions to help me find your perfect flight:\n"
    "• What's your preferred departure time? (Early morning, afternoon, evening, or late night?)\n"
    "• Any airline you prefer? (IndiGo, Air India, Vistara, SpiceJet, etc.)\n"
    "• Are you looking for the cheapest or the fastest option?\n"
    "• Do you need any special assistance or have dietary requirements?\n"
    "• Would you like me to track price changes for this route?\n\n"
    "Just answer any of these and I'll tailor the results for you! 😊"
)

FILTER_NON_STOP = "I'll filter those results to show non-stop flights only. One moment..."
FILTER_NON_STOP_NO_ROUTE = "I can filter for non-stop flights. Which route were you looking at?"
SORT_DURATION = "Okay, sorting those results by the shortest duration. One moment..."
SORT_DURATION_NO_ROUTE = "Okay, I can sort by duration. Please remind me which flight route you were looking at?"
SORT_PRICE = "Sure thing! Let me sort those flight results by the lowest price for you."
SORT_PRICE_NO_ROUTE = "Sure thing, I can sort by price. Which flight search should I re-sort?"
FILTER_AIRLINE = "I'll filter the results to show only {airline} flights. One moment..."
FILTER_AIRLINE_NO_ROUTE = "I'd be happy to show you {airline} flights. Which route are you interested in?"
PRICE_ALERT_SET = "Great! I've set up a price alert for flights from {source} to {destination} on {date}. I'll notify you if the prices change significantly! Is there anything else you'd like to know about this route?"
PRICE_ALERT_NO_ROUTE = "I'd be happy to set up a price alert for you. Could you remind me which route you were interested in?"
DEAL_FOUND = "🔔 Price drop! {airline} has {source} → {destination} on {date} for {price} (was {old_price})."

BAGGAGE_BASE = "Baggage allowances vary significantly between airlines, fare types (economy, business), and routes (domestic vs. international). "
CHECKIN_BASE = "Check-in procedures and timings can differ. "


def pick(pool, rng=None):
    return (rng or random).choice(pool)


def format_price(amount, currency="INR") -> str:
    """Rupee amount with Indian digit grouping: 123456 -> ₹1,23,456"""
    digits = str(abs(int(amount)))
    if len(digits) > 3:
        head, tail = digits[:-3], digits[-3:]
        groups = []
        while len(head) > 2:
            groups.insert(0, head[-2:])
            head = head[:-2]
        if head:
            groups.insert(0, head)
        digits = ",".join(groups + [tail])
    symbol = "₹" if currency == "INR" else f"{currency} "
    return f"{'-' if amount < 0 else ''}{symbol}{digits}"


def format_duration(minutes) -> str:
    hours, minutes = divmod(int(minutes), 60)
    return f"{hours}h {minutes}m" if hours > 0 else f"{minutes}m"


def format_travel_date(travel_date: date) -> str:
    """Long Indian-style date: 20 October 2026"""
    return f"{travel_date.day} {travel_date:%B %Y}"


def city_label(code) -> str:
    info = iata_codes.get(code)
    return info.name if info else code


def flight_card(flight: Flight) -> FlightCard:
    return FlightCard(
        airline=flight.airline or "Unknown Airline",
        flight_number=flight.flight_number or "Unknown",
        departure_time=f"{flight.departure_time:%H:%M}",
        arrival_time=f"{flight.arrival_time:%H:%M}",
        departure_iso=flight.departure_time.isoformat(),
        arrival_iso=flight.arrival_time.isoformat(),
        duration=format_duration(flight.duration),
        price=format_price(flight.price, flight.currency),
    )


def greeting(rng=None):
    return pick(greetings, rng)


def welcome_message(rng=None):
    return pick(welcome_messages, rng)


def thank_you(rng=None):
    return pick(thank_you_responses, rng)


def out_of_domain(rng=None):
    return pick(out_of_domain_responses, rng)


def default_response(rng=None):
    return pick(default_responses, rng)


def travel_tip(rng=None):
    return pick(travel_tips, rng)


def departure_preference(slot, rng=None):
    return pick(departure_time_responses, rng).format(slot=slot)


def search_confirmation(params: FlightSearchParams, rng=None) -> str:
    return pick(search_confirmations, rng).format(
        source=params.source,
        source_name=city_label(params.source),
        destination=params.destination,
        destination_name=city_label(params.destination),
        date=format_travel_date(params.date),
    )


def no_flights(params: FlightSearchParams, rng=None) -> str:
    return pick(no_flights_responses, rng).format(
        source=params.source, destination=params.destination, date=format_travel_date(params.date)
    )


def baggage_info(airline=None) -> str:
    if airline:
        return (
            f"{BAGGAGE_BASE}For {airline_display_name(airline)}, it's best to check their official website for the most "
            "accurate and up-to-date information regarding checked and carry-on baggage limits based on your specific ticket."
        )
    return (
        f"{BAGGAGE_BASE}Generally, domestic economy flights in India have a checked baggage limit (often 15kg) and a "
        "cabin bag limit (often 7kg), but you should always check the specific airline's website for details about your fare."
    )


def checkin_info(airline=None) -> str:
    if airline:
        return (
            f"{CHECKIN_BASE}For {airline_display_name(airline)}, you can usually check in online via their website or app "
            "starting 24-48 hours before departure. Airport check-in counters typically close 45-60 minutes before domestic "
            "flights. Please verify the exact timings on their official website."
        )
    return (
        f"{CHECKIN_BASE}Most airlines allow online check-in starting 24-48 hours before the flight via their website or app. "
        "For domestic flights in India, it's generally recommended to arrive at the airport 1.5-2 hours before departure, "
        "and check-in counters often close 45-60 minutes prior. Always confirm with your specific airline."
    )


def airline_info(airline) -> str:
    name = airline_display_name(airline)
    return (
        f"{name} is a popular choice! They fly many routes. To get specific prices and schedules, it's best to search "
        f"for your exact trip details. Want me to search flights for {name}?"
    )


def follow_up_options(sort) -> str:
    options = [
        "1. Filter these results (e.g., non-stop only).",
        "2. Sort by shortest duration?" if sort == "price" else "2. Sort by lowest price?",
        "3. Look for a specific airline?",
        "4. Keep an eye on prices for this route?",
    ]
    return "How do these look? I can also help you:\n" + "\n".join(options) + "\n\nJust let me know!"


def results_summary(flights: List[Flight], sort) -> str:
    """Cheapest flight always; fastest too when the list is sorted by price"""
    cheapest = min(flights, key=lambda flight: flight.price)
    summary = (
        f"The absolute cheapest option is with {cheapest.airline} for {format_price(cheapest.price, cheapest.currency)} "
        f"({format_duration(cheapest.duration)} flight time)."
    )
    if sort == "price":
        fastest = min(flights, key=lambda flight: flight.duration)
        summary += (
            f" The fastest is {format_duration(fastest.duration)} with {fastest.airline} "
            f"for {format_price(fastest.price, fastest.currency)}."
        )
    return summary


def render_results_reply(params: FlightSearchParams, flights: List[Flight], rng=None, quick_questions=False) -> str:
    """
    Intro, results block, summary and follow-up options for a non-empty result
    list. With ``quick_questions`` the onboarding questions go before the
    follow-up options.
    """
    sort = "duration" if params.sort == "duration" else "price"
    special, filter_description = "", ""
    if params.filter == "non-stop":
        special = "non-stop "
        filter_description = " (showing non-stop flights only)"
    elif params.airline:
        special = f"{airline_display_name(params.airline)} "
        filter_description = f" (showing {airline_display_name(params.airline)} flights only)"

    intro = pick(results_intros, rng).format(
        count=len(flights),
        special=special,
        plural="s" if len(flights) > 1 else "",
        source=params.source,
        destination=params.destination,
        date=format_travel_date(params.date),
        sort=sort,
        filter_description=filter_description,
    )
    shown = flights[: flight_config.RESULTS_DISPLAY_LIMIT]
    block = render_results_block([flight_card(flight) for flight in shown])
    sections = [intro, block, results_summary(flights, sort)]
    if quick_questions:
        sections.append(QUICK_QUESTIONS)
    sections.append(follow_up_options(sort))
    return "\n\n".join(sections)


def price_alert_set(params: FlightSearchParams) -> str:
    return PRICE_ALERT_SET.format(
        source=params.source, destination=params.destination, date=format_travel_date(params.date)
    )


def deal_notification(deal) -> str:
    return DEAL_FOUND.format(
        airline=deal.airline,
        source=deal.source,
        destination=deal.destination,
        date=deal.date,
        price=format_price(deal.price, deal.currency),
        old_price=format_price(deal.old_price, deal.currency),
    )


def topic_reply(topic: Optional[str], airline=None, rng=None) -> str:
    """Template answer for a help topic, the default pool when there is none"""
    if topic == "baggage":
        return baggage_info(airline)
    if topic == "checkin":
        return checkin_info(airline)
    if topic == "tips":
        return travel_tip(rng)
    if topic == "alerts":
        return PRICE_ALERT_INFO
    if topic == "assistance":
        return SPECIAL_ASSISTANCE
    if topic == "airline_info" and airline:
        return airline_info(airline)
    return default_response(rng)
