"""
Info gatherer output contract.

Defines the destination research the info gatherer produces for the
strategist: places, lodging, dining and practical logistics.
"""

from typing import Dict, List, Optional

from pydantic import BaseModel, Field


class PointOfInterest(BaseModel):
    """A single place worth visiting."""

    name: str = Field(description="Name of the POI")
    category: str = Field(
        description="Category (e.g., 'museum', 'market', 'nature', 'landmark')"
    )
    description: str = Field(description="Brief description of the POI")
    estimated_duration_hours: float = Field(
        ge=0.5, description="Estimated visit duration in hours"
    )
    cost_estimate_usd: Optional[float] = Field(
        default=None, description="Estimated cost in USD (None if free)"
    )
    rating: Optional[float] = Field(
        default=None, ge=0, le=5, description="Rating out of 5"
    )
    tags: List[str] = Field(
        default_factory=list, description="Tags for matching interests"
    )


class AccommodationOption(BaseModel):
    """A place to stay."""

    name: str
    type: str = Field(description="Lodging type (e.g., 'hotel', 'hostel')")
    price_per_night_usd: float = Field(ge=0)
    rating: Optional[float] = Field(default=None, ge=0, le=5)
    area: Optional[str] = Field(default=None, description="Neighbourhood")


class DiningOption(BaseModel):
    """A place to eat."""

    name: str
    cuisine: str
    price_range: str = Field(description="One of '$', '$$', '$$$', '$$$$'")
    dietary_options: List[str] = Field(default_factory=list)


class TransportOption(BaseModel):
    """A way of getting around."""

    mode: str = Field(description="Transport mode (e.g., 'taxi', 'metro')")
    description: str
    estimated_cost_usd: Optional[float] = None


class PracticalInfo(BaseModel):
    """Currency, language and other practical notes."""

    local_currency: str = Field(description="Local currency code")
    language: str = Field(description="Primary local language")
    timezone: str = Field(description="Timezone name")
    transport_options: List[TransportOption] = Field(default_factory=list)
    safety_notes: List[str] = Field(default_factory=list)


class GatheredInfoV1(BaseModel):
    """
    Contract for info gatherer output (v1).

    This model defines the research data that flows from the info
    gatherer to the strategist.
    """

    destination: str = Field(description="Trip destination")
    attractions: List[PointOfInterest] = Field(
        min_length=1, description="Places to visit"
    )
    accommodations: List[AccommodationOption] = Field(default_factory=list)
    dining: List[DiningOption] = Field(default_factory=list)
    practical: PracticalInfo
    answered_queries: List[str] = Field(
        default_factory=list, description="Ids of the search queries covered"
    )
    metadata: Dict[str, str] = Field(
        default_factory=dict,
        description="Additional metadata (e.g., data_source)",
    )
