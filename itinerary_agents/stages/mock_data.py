"""
Mock payload generators for the four stages.

Generates hardcoded but contextually aware payloads so the whole
pipeline can run without LLM calls. Output depends only on the inputs,
so replaying a workflow reproduces it exactly.
"""

from datetime import timedelta
from typing import Dict, List, Optional, Tuple

from itinerary_agents.shared.contracts.content_plan import (
    BudgetBreakdown,
    ContentPlanV1,
    SearchQuery,
    TravelerSummary,
)
from itinerary_agents.shared.contracts.gathered_info import (
    AccommodationOption,
    DiningOption,
    GatheredInfoV1,
    PointOfInterest,
    PracticalInfo,
    TransportOption,
)
from itinerary_agents.shared.contracts.itinerary import (
    CostSummary,
    ItineraryDay,
    ItineraryEvent,
    ItineraryV1,
)
from itinerary_agents.shared.contracts.strategy import (
    BudgetAllocation,
    DayStrategy,
    RiskFactor,
    StrategyV1,
)
from itinerary_agents.shared.contracts.travel_request import TravelRequestV1


# Percent of planning effort per information category
_TIME_ALLOCATION = {
    "accommodation": 25,
    "activities": 35,
    "dining": 20,
    "transportation": 10,
    "practical": 10,
}

# Attraction templates: (name suffix, category, duration hours, cost, tags)
_ATTRACTIONS: List[Tuple[str, str, float, float, List[str]]] = [
    ("Old Town Walk", "landmark", 2.0, 0.0, ["culture", "history", "walking"]),
    ("National Museum", "museum", 2.5, 15.0, ["culture", "history", "art"]),
    ("Central Market", "market", 1.5, 0.0, ["food", "shopping", "local"]),
    ("Botanical Garden", "nature", 2.0, 8.0, ["nature", "relaxation", "photography"]),
    ("Scenic Viewpoint Trail", "nature", 3.0, 0.0, ["nature", "hiking", "adventure"]),
    ("Food Tasting Tour", "food", 3.0, 45.0, ["food", "local", "culture"]),
    ("Riverside Promenade", "leisure", 1.5, 0.0, ["relaxation", "walking", "photography"]),
    ("Contemporary Art Gallery", "museum", 1.5, 12.0, ["art", "culture"]),
]

_ACCOMMODATIONS = {
    "hotel": ("Central Hotel", 140.0, 4.3),
    "hostel": ("Backpackers Hostel", 35.0, 4.1),
    "airbnb": ("Old Town Apartment", 110.0, 4.6),
    "resort": ("Bayview Resort", 260.0, 4.5),
}

_DINING = [
    ("Local Flavors", "local", "$$"),
    ("Garden Bistro", "vegetarian", "$$"),
    ("Harbour Grill", "seafood", "$$$"),
    ("Night Market Stalls", "street food", "$"),
]

# Budget split by travel style: accommodation, transport, food, activities, misc
_ALLOCATION_BY_STYLE: Dict[str, Tuple[float, float, float, float, float]] = {
    "luxury": (0.45, 0.15, 0.20, 0.15, 0.05),
    "budget": (0.30, 0.15, 0.25, 0.20, 0.10),
    "adventure": (0.30, 0.15, 0.20, 0.30, 0.05),
}
_DEFAULT_ALLOCATION = (0.40, 0.10, 0.25, 0.20, 0.05)

_DAY_THEMES = [
    "Arrival & Exploration",
    "Cultural Immersion",
    "Local Flavours",
    "Nature & Relaxation",
    "Hidden Gems",
    "Departure Day",
]


def _city(destination: str) -> str:
    return destination.split(",")[0].strip()


# ----------------------------------------------------------------------
# Content planner
# ----------------------------------------------------------------------


def build_content_plan(request: TravelRequestV1) -> ContentPlanV1:
    """Trip frame and search queries derived directly from the request."""
    budget = request.budget
    interests = list(request.preferences.interests)

    queries = [
        SearchQuery(id="query_1", query=f"{request.destination} travel guide"),
        SearchQuery(
            id="query_2",
            query=f"things to do in {request.destination}",
            category="activities",
        ),
        SearchQuery(
            id="query_3",
            query=f"where to stay in {request.destination}",
            category="accommodation",
        ),
    ]
    for interest in interests:
        queries.append(
            SearchQuery(
                id=f"query_{len(queries) + 1}",
                query=f"best {interest} in {request.destination}",
                category="activities",
            )
        )

    priorities = ["destination_info", "accommodation"]
    if request.preferences.dietary_restrictions:
        priorities.append("dining")

    return ContentPlanV1(
        destination=request.destination,
        departure_date=request.departure_date,
        return_date=request.return_date,
        trip_duration=request.trip_duration,
        travelers=TravelerSummary(
            adults=request.adults,
            children=request.children,
            total=request.adults + request.children,
        ),
        budget=BudgetBreakdown(
            amount=budget.amount,
            currency=budget.currency,
            mode=budget.mode,
            accommodation=round(budget.amount * 0.40, 2),
            food_and_dining=round(budget.amount * 0.25, 2),
            activities=round(budget.amount * 0.25, 2),
        ),
        travel_style=request.preferences.travel_style,
        interests=interests,
        search_queries=queries,
        priorities=priorities,
        time_allocation=dict(_TIME_ALLOCATION),
    )


# ----------------------------------------------------------------------
# Info gatherer
# ----------------------------------------------------------------------


def _attractions(city: str, interests: List[str]) -> List[PointOfInterest]:
    """City attractions, the ones matching the traveller's interests first."""
    wanted = {i.lower() for i in interests}
    pois = [
        PointOfInterest(
            name=f"{city} {suffix}",
            category=category,
            description=f"{suffix} in {city}",
            estimated_duration_hours=duration,
            cost_estimate_usd=cost or None,
            rating=4.2 + 0.1 * (idx % 5),
            tags=tags,
        )
        for idx, (suffix, category, duration, cost, tags) in enumerate(_ATTRACTIONS)
    ]
    # Stable sort keeps template order among equals
    return sorted(pois, key=lambda p: 0 if wanted.intersection(p.tags) else 1)


def build_gathered_info(request: TravelRequestV1, plan: ContentPlanV1) -> GatheredInfoV1:
    city = _city(request.destination)
    preferred = request.preferences.accommodation_type
    types = [preferred] if preferred in _ACCOMMODATIONS else ["hotel", "airbnb"]
    accommodations = []
    for lodging_type in types:
        name, price, rating = _ACCOMMODATIONS[lodging_type]
        accommodations.append(
            AccommodationOption(
                name=f"{city} {name}",
                type=lodging_type,
                price_per_night_usd=price,
                rating=rating,
                area="City centre",
            )
        )

    dietary = list(request.preferences.dietary_restrictions)
    dining = [
        DiningOption(
            name=f"{name} {city}",
            cuisine=cuisine,
            price_range=price_range,
            dietary_options=dietary if cuisine == "vegetarian" else [],
        )
        for name, cuisine, price_range in _DINING
    ]

    return GatheredInfoV1(
        destination=request.destination,
        attractions=_attractions(city, plan.interests),
        accommodations=accommodations,
        dining=dining,
        practical=PracticalInfo(
            local_currency=plan.budget.currency,
            language="Local language",
            timezone="Local timezone",
            transport_options=[
                TransportOption(
                    mode="public transit",
                    description="Local bus and metro system",
                    estimated_cost_usd=2.0,
                ),
                TransportOption(
                    mode="taxi/rideshare",
                    description="Widely available taxis and rideshare apps",
                    estimated_cost_usd=12.0,
                ),
                TransportOption(
                    mode="walking",
                    description="Walk between nearby attractions",
                    estimated_cost_usd=0.0,
                ),
            ],
            safety_notes=[
                "Keep valuables secure in crowded areas",
                "Use licensed taxis or rideshare apps at night",
            ],
        ),
        answered_queries=[q.id for q in plan.search_queries],
        metadata={"data_source": "mock", "version": "v1"},
    )


# ----------------------------------------------------------------------
# Strategist
# ----------------------------------------------------------------------


def _theme(day_number: int, duration: int) -> str:
    if day_number == 1:
        return _DAY_THEMES[0]
    if day_number == duration:
        return _DAY_THEMES[-1]
    return _DAY_THEMES[((day_number - 2) % (len(_DAY_THEMES) - 2)) + 1]


def build_strategy(
    request: TravelRequestV1, plan: ContentPlanV1, info: GatheredInfoV1
) -> StrategyV1:
    amount = request.budget.amount
    shares = _ALLOCATION_BY_STYLE.get(request.preferences.travel_style, _DEFAULT_ALLOCATION)
    allocation = BudgetAllocation(
        accommodation=round(amount * shares[0], 2),
        transportation=round(amount * shares[1], 2),
        food=round(amount * shares[2], 2),
        activities=round(amount * shares[3], 2),
        miscellaneous=round(amount * shares[4], 2),
    )

    duration = plan.trip_duration
    attractions = [a.name for a in info.attractions]
    day_plans = []
    for day_number in range(1, duration + 1):
        # Arrival and departure days get one attraction, full days two
        count = 1 if day_number in (1, duration) else 2
        start = sum(1 if d in (1, duration) else 2 for d in range(1, day_number))
        focus = [attractions[(start + i) % len(attractions)] for i in range(count)]
        day_plans.append(
            DayStrategy(
                day_number=day_number,
                date=(plan.departure_date + timedelta(days=day_number - 1)).isoformat(),
                theme=_theme(day_number, duration),
                focus=focus,
                pace="relaxed" if count == 1 else "moderate",
            )
        )

    nightly = min(a.price_per_night_usd for a in info.accommodations) if info.accommodations else 0.0
    per_night_budget = allocation.accommodation / max(duration - 1, 1)
    risk_factors = []
    if nightly > per_night_budget:
        risk_factors.append(
            RiskFactor(
                type="financial",
                level="medium",
                description="Accommodation prices exceed the nightly lodging budget",
                mitigation="Consider a cheaper area or accommodation type",
            )
        )

    return StrategyV1(
        destination=request.destination,
        currency=request.budget.currency,
        budget_allocation=allocation,
        overall_risk="medium" if risk_factors else "low",
        risk_factors=risk_factors,
        accommodation_choice=info.accommodations[0].name if info.accommodations else "To be booked",
        day_plans=day_plans,
        recommendations=[
            "Book popular attractions in advance when possible",
            f"Keep about {allocation.miscellaneous:.0f} {request.budget.currency} for incidentals",
        ],
    )


# ----------------------------------------------------------------------
# Compiler
# ----------------------------------------------------------------------

# (time slot, title, category, duration hours, cost)
_MEALS = {
    "breakfast": ("08:00-09:00", "Breakfast at a local cafe", "dining", 1.0, 8.0),
    "lunch": ("12:30-13:30", "Lunch", "dining", 1.0, 15.0),
    "dinner": ("19:00-20:30", "Dinner", "dining", 1.5, 25.0),
}
_ACTIVITY_SLOTS = ["10:00-12:00", "14:30-17:00"]


def _day_events(
    day: DayStrategy, info: GatheredInfoV1, duration: int
) -> List[ItineraryEvent]:
    pois = {p.name: p for p in info.attractions}
    restaurants = info.dining or []
    is_arrival = day.day_number == 1
    is_departure = day.day_number == duration
    events: List[ItineraryEvent] = []

    def add(
        slot: str,
        title: str,
        category: str,
        hours: float,
        cost: float,
        location: Optional[str] = None,
    ) -> None:
        events.append(
            ItineraryEvent(
                event_id=f"d{day.day_number}_e{len(events) + 1}",
                time_slot=slot,
                title=title,
                description=f"{title} ({day.theme})",
                category=category,
                location=location,
                estimated_cost=cost,
                duration_hours=hours,
            )
        )

    if not is_arrival:
        add(*_MEALS["breakfast"])

    slots = _ACTIVITY_SLOTS[1:] if is_arrival else _ACTIVITY_SLOTS
    for slot, name in zip(slots, day.focus):
        poi = pois.get(name)
        hours = poi.estimated_duration_hours if poi else 2.0
        cost = (poi.cost_estimate_usd or 0.0) if poi else 0.0
        add(slot, name, "activity", hours, cost, location=name)
        if slot == _ACTIVITY_SLOTS[0]:
            slot_time, title, category, hours, cost = _MEALS["lunch"]
            place = restaurants[(day.day_number - 1) % len(restaurants)].name if restaurants else None
            add(slot_time, f"{title} at {place}" if place else title, category, hours, cost, place)

    if not is_departure:
        slot_time, title, category, hours, cost = _MEALS["dinner"]
        place = restaurants[day.day_number % len(restaurants)].name if restaurants else None
        add(slot_time, f"{title} at {place}" if place else title, category, hours, cost, place)

    return events


def build_itinerary(
    request: TravelRequestV1, strategy: StrategyV1, info: GatheredInfoV1
) -> ItineraryV1:
    duration = request.trip_duration
    days = []
    activities_total = 0.0
    for day_plan in strategy.day_plans:
        events = _day_events(day_plan, info, duration)
        day_cost = round(sum(e.estimated_cost or 0.0 for e in events), 2)
        activities_total += day_cost
        days.append(
            ItineraryDay(
                day_number=day_plan.day_number,
                date=day_plan.date,
                theme=day_plan.theme,
                events=events,
                day_cost_estimate=day_cost,
            )
        )

    allocation = strategy.budget_allocation
    breakdown = {
        "accommodation": allocation.accommodation,
        "transportation": allocation.transportation,
        "food_and_activities": round(activities_total, 2),
        "miscellaneous": allocation.miscellaneous,
    }
    total = round(sum(breakdown.values()), 2)

    return ItineraryV1(
        trip_title=f"{request.trip_nickname}: {duration} days in {request.destination}",
        prepared_for=request.contact_name,
        destination=request.destination,
        start_date=request.departure_date.isoformat(),
        end_date=request.return_date.isoformat(),
        trip_duration=duration,
        days=days,
        stay=strategy.accommodation_choice,
        cost_summary=CostSummary(
            currency=request.budget.currency,
            total_estimated=total,
            budget=request.budget.amount,
            remaining=round(request.budget.amount - total, 2),
            breakdown=breakdown,
        ),
        tips=[*strategy.recommendations, *(f.mitigation for f in strategy.risk_factors)],
        metadata={"data_source": "mock", "version": "v1"},
    )
