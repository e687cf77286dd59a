"""
Strategist output contract.

Defines the plan skeleton the strategist hands to the compiler: budget
allocation, risk notes and a theme plus focus list for every day.
"""

from typing import List, Literal

from pydantic import BaseModel, Field


RiskLevel = Literal["low", "medium", "high", "critical"]


class BudgetAllocation(BaseModel):
    """Budget per category in the request currency."""

    accommodation: float = Field(ge=0)
    transportation: float = Field(ge=0)
    food: float = Field(ge=0)
    activities: float = Field(ge=0)
    miscellaneous: float = Field(ge=0)

    @property
    def total(self) -> float:
        return (
            self.accommodation
            + self.transportation
            + self.food
            + self.activities
            + self.miscellaneous
        )


class RiskFactor(BaseModel):
    type: Literal["weather", "political", "health", "financial", "transportation"]
    level: RiskLevel
    description: str
    mitigation: str


class DayStrategy(BaseModel):
    """Plan for a single day, before scheduling."""

    day_number: int = Field(ge=1, description="Day number (1-indexed)")
    date: str = Field(description="Date in YYYY-MM-DD format")
    theme: str = Field(description="Day theme (e.g., 'Cultural Immersion')")
    focus: List[str] = Field(
        default_factory=list, description="Attraction names to schedule"
    )
    pace: Literal["relaxed", "moderate", "packed"] = "moderate"


class StrategyV1(BaseModel):
    """
    Contract for strategist output (v1).

    This model defines the day-level strategy that flows from the
    strategist to the compiler.
    """

    destination: str
    currency: str
    budget_allocation: BudgetAllocation
    overall_risk: RiskLevel = "low"
    risk_factors: List[RiskFactor] = Field(default_factory=list)
    accommodation_choice: str = Field(description="Recommended place to stay")
    day_plans: List[DayStrategy] = Field(min_length=1)
    recommendations: List[str] = Field(default_factory=list)
