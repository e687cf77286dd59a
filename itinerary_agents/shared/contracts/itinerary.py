"""
Compiler output contract.

Defines the final, compiled day-by-day itinerary.
"""

from typing import Dict, List, Optional

from pydantic import BaseModel, Field


class ItineraryEvent(BaseModel):
    """A single scheduled item within a day."""

    event_id: str = Field(description="Unique event identifier (e.g., 'd1_e2')")
    time_slot: str = Field(description="Time slot (e.g., '09:00-11:00')")
    title: str = Field(description="Event title")
    description: str = Field(description="Event description")
    category: str = Field(
        description="Category (e.g., 'dining', 'activity', 'transport', 'leisure')"
    )
    location: Optional[str] = Field(default=None, description="Venue or area")
    estimated_cost: Optional[float] = Field(
        default=None, ge=0, description="Estimated cost in the trip currency"
    )
    duration_hours: float = Field(ge=0.25, description="Duration in hours")
    notes: Optional[str] = None


class ItineraryDay(BaseModel):
    """A single day in the itinerary."""

    day_number: int = Field(ge=1, description="Day number (1-indexed)")
    date: str = Field(description="Date in YYYY-MM-DD format")
    theme: str
    events: List[ItineraryEvent] = Field(default_factory=list)
    day_cost_estimate: float = Field(default=0.0, ge=0)


class CostSummary(BaseModel):
    """Overall trip cost summary, in the trip currency."""

    currency: str
    total_estimated: float = Field(ge=0)
    budget: float = Field(gt=0)
    remaining: float = Field(description="Budget left after estimates; negative if over")
    breakdown: Dict[str, float] = Field(
        default_factory=dict,
        description="Cost by category (e.g., {'accommodation': 200})",
    )


class ItineraryV1(BaseModel):
    """
    Contract for compiler output (v1).

    The final itinerary returned to the caller once the workflow completes.
    """

    trip_title: str
    prepared_for: str = Field(description="Contact name on the request")
    destination: str
    start_date: str = Field(description="Trip start date (YYYY-MM-DD)")
    end_date: str = Field(description="Trip end date (YYYY-MM-DD)")
    trip_duration: int = Field(ge=1)
    days: List[ItineraryDay] = Field(min_length=1)
    stay: Optional[str] = Field(default=None, description="Where the traveller stays")
    cost_summary: CostSummary
    tips: List[str] = Field(default_factory=list)
    metadata: Dict[str, str] = Field(default_factory=dict)
