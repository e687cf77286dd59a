"""
Travel request contract.

The already-validated request snapshot that seeds every workflow.
Validation happens at the API boundary; the orchestrator treats the
snapshot as immutable input.
"""

from datetime import date
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator


class BudgetInfo(BaseModel):
    """Trip budget."""

    model_config = ConfigDict(frozen=True)

    amount: float = Field(gt=0, description="Budget amount")
    currency: Literal["USD", "EUR", "GBP", "JPY", "CAD", "AUD"] = Field(
        default="USD", description="Budget currency"
    )
    mode: Literal["per-person", "total", "flexible"] = Field(
        default="total", description="What the amount covers"
    )


class TravelPreferences(BaseModel):
    """Traveller preferences collected by the form."""

    model_config = ConfigDict(frozen=True)

    travel_style: Literal[
        "adventure", "culture", "relaxation", "family", "business", "budget", "luxury"
    ] = Field(default="culture", description="Overall travel style")
    interests: List[str] = Field(
        min_length=1, description="At least one interest, e.g. 'food', 'hiking'"
    )
    accommodation_type: Optional[
        Literal["hotel", "hostel", "airbnb", "resort", "any"]
    ] = None
    transportation_mode: Optional[Literal["flight", "train", "car", "bus", "any"]] = None
    dietary_restrictions: List[str] = Field(default_factory=list)
    accessibility: List[str] = Field(default_factory=list)


class TravelRequestV1(BaseModel):
    """
    Contract for the travel request (v1).

    Frozen so it can be shared by reference between successive
    WorkflowContext values.
    """

    model_config = ConfigDict(frozen=True)

    destination: str = Field(min_length=2, description="Trip destination")
    departure_date: date = Field(description="First day of the trip")
    return_date: date = Field(description="Last day of the trip")
    trip_nickname: str = Field(default="My trip", min_length=1)
    contact_name: str = Field(default="Traveller", min_length=2)
    adults: int = Field(default=1, ge=1)
    children: int = Field(default=0, ge=0)
    budget: BudgetInfo
    preferences: TravelPreferences

    @model_validator(mode="after")
    def _check_dates(self) -> "TravelRequestV1":
        if self.return_date < self.departure_date:
            raise ValueError("return_date must not be before departure_date")
        return self

    @property
    def trip_duration(self) -> int:
        """Trip length in days, both ends inclusive."""
        return (self.return_date - self.departure_date).days + 1

    @property
    def travel_party(self) -> str:
        party = f"{self.adults} adult{'s' if self.adults != 1 else ''}"
        if self.children:
            party += f", {self.children} child{'ren' if self.children != 1 else ''}"
        return party
