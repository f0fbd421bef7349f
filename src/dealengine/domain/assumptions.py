# src/dealengine/domain/assumptions.py
from pydantic import BaseModel, Field, field_validator

from dealengine.adapters.config import config


class ThesisConfig(BaseModel):
    """Where and what the buyer is looking for. Feeds fit scoring and quality floors."""

    target_trades: list[str] = Field(
        default_factory=lambda: [
            "ELECTRICAL",
            "STRUCTURED_CABLING",
            "SECURITY_FIRE_ALARM",
            "FRAMING_DRYWALL",
            "HVAC_MECHANICAL",
            "PLUMBING",
        ]
    )
    secondary_trades: list[str] = Field(
        default_factory=lambda: [
            "PAINTING_FINISHING",
            "CONCRETE_MASONRY",
            "ROOFING",
            "SITE_WORK",
        ]
    )
    target_states: list[str] = Field(default_factory=lambda: ["CO"])
    target_metros: list[str] = Field(
        default_factory=lambda: [
            "Denver Metro",
            "Colorado Springs",
            "Front Range",
            "Fort Collins",
            "Boulder",
        ]
    )
    neighboring_states: list[str] = Field(default_factory=lambda: ["WY", "NE", "KS", "NM", "UT"])

    # minimum adjusted EBITDA the quality checks expect
    thesis_floor: float = Field(default_factory=lambda: config.MINIMUM_EBITDA, gt=0)

    @field_validator("target_states", "neighboring_states")
    @classmethod
    def _upper_states(cls, v: list[str]) -> list[str]:
        return [s.upper().strip() for s in v]


DEFAULT_THESIS = ThesisConfig()
