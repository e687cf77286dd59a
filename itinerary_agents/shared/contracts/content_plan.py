"""
Content planner output contract.

Defines what the content planner hands to the info gatherer: the
normalized trip frame plus the search queries and information needs
that drive gathering.
"""

from datetime import date
from typing import Dict, List, Literal

from pydantic import BaseModel, Field


class TravelerSummary(BaseModel):
    """Who is travelling."""

    adults: int = Field(ge=1)
    children: int = Field(default=0, ge=0)
    total: int = Field(ge=1)


class BudgetBreakdown(BaseModel):
    """Budget split into spending categories."""

    amount: float = Field(gt=0, description="Total budget")
    currency: str = Field(description="Budget currency code")
    mode: str = Field(description="What the amount covers")
    accommodation: float = Field(ge=0, description="Share reserved for lodging")
    food_and_dining: float = Field(ge=0, description="Share reserved for food")
    activities: float = Field(ge=0, description="Share reserved for activities")


class SearchQuery(BaseModel):
    """A single query for the info gatherer."""

    id: str = Field(description="Query identifier (e.g., 'query_1')")
    query: str = Field(description="Query text")
    category: Literal[
        "general", "accommodation", "activities", "dining", "transportation", "practical"
    ] = Field(default="general")


class ContentPlanV1(BaseModel):
    """
    Contract for content planner output (v1).

    This model defines the trip frame and information requirements
    that flow from the content planner to the info gatherer.
    """

    destination: str = Field(description="Trip destination")
    departure_date: date = Field(description="Trip start date")
    return_date: date = Field(description="Trip end date")
    trip_duration: int = Field(ge=1, description="Trip duration in days")
    travelers: TravelerSummary
    budget: BudgetBreakdown
    travel_style: str = Field(description="Overall travel style")
    interests: List[str] = Field(default_factory=list)
    search_queries: List[SearchQuery] = Field(
        min_length=1, description="Queries for the info gatherer"
    )
    priorities: List[str] = Field(
        default_factory=list, description="High-priority information needs"
    )
    time_allocation: Dict[str, int] = Field(
        default_factory=dict,
        description="Percent of planning effort per category (e.g., {'activities': 35})",
    )
