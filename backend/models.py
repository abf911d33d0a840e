"""
Pydantic models used across the backend.

Only input shapes belong here. These models provide validation at the
FastAPI route boundary and are reused in service/repo layers. Field
names are snake_case; the stored profile uses the same keys.

Guidelines:
- Keep models minimal and stable. Output rows are plain dicts built by
    the repositories, not models.
- Anything that depends on other records (quotas, matches, radius caps
    for subscribers) is checked in the services, not here.
"""

from pydantic import BaseModel, Field, model_validator
from typing import Dict, List, Optional
from datetime import datetime

from geo import Coordinate


class SignInIn(BaseModel):
    """Identity handed over after Sign in with Apple.

    `full_name` and `email` are only present on the very first sign-in,
    so an empty value never overwrites what is already stored.
    """

    user_id: str = Field(min_length=1)
    full_name: Optional[str] = None
    email: Optional[str] = None


class ProfileIn(BaseModel):
    """Full profile as produced by the onboarding form / profile editor.

    `height` uses the `"5 ft 6 in"` format. `field_visibilities` maps a
    field name to `"everyone"`, `"connections"` or `"hidden"`.
    """

    name: str = ""
    age: int = Field(ge=18, le=120)
    email: str = ""
    phone_number: str = ""
    gender: str = ""
    sexuality: str = ""
    height: str = ""
    drinks: bool = False
    smokes: bool = False
    smokes_weed: bool = False
    uses_drugs: bool = False
    pets: str = ""
    has_children: bool = False
    wants_children: bool = False
    religion: str = ""
    ethnicity: str = ""
    hometown: str = ""
    political_view: str = ""
    zodiac_sign: str = ""
    languages_spoken: str = ""
    education_level: str = ""
    college: str = ""
    job_title: str = ""
    company_name: str = ""
    interested_in: str = ""
    dating_intentions: str = ""
    relationship_type: str = ""
    social_media_links: str = ""
    political_engagement_level: str = ""
    dietary_preferences: str = ""
    exercise_habits: str = ""
    interests: str = ""
    field_visibilities: Dict[str, str] = Field(default_factory=dict)


class PreferencesIn(BaseModel):
    """Bracket preferences: who the user wants to see.

    Age range and ethnicities apply to everyone. The remaining filters are
    premium and only take effect while the user is subscribed; `None`
    and empty lists mean "any".
    """

    min_age: int = Field(default=18, ge=18, le=120)
    max_age: int = Field(default=99, ge=18, le=120)
    ethnicities: List[str] = Field(default_factory=list)
    broadcast_radius_m: Optional[float] = Field(default=None, gt=0)
    search_radius_m: Optional[float] = Field(default=None, gt=0)

    min_height_in: int = Field(default=36, ge=0)
    max_height_in: int = Field(default=95, ge=0)
    religion: List[str] = Field(default_factory=list)
    political_view: List[str] = Field(default_factory=list)
    dating_intentions: List[str] = Field(default_factory=list)
    relationship_type: List[str] = Field(default_factory=list)
    exercise_habits: List[str] = Field(default_factory=list)
    interests: List[str] = Field(default_factory=list)
    has_children: Optional[bool] = None
    smokes_weed: Optional[bool] = None
    uses_drugs: Optional[bool] = None
    drinks: Optional[bool] = None
    smokes: Optional[bool] = None

    @model_validator(mode="after")
    def _check_ranges(self):
        if self.min_age > self.max_age:
            raise ValueError("min_age must not exceed max_age")
        if self.min_height_in > self.max_height_in:
            raise ValueError("min_height_in must not exceed max_height_in")
        return self


class LocationIn(BaseModel):
    lat: float = Field(ge=-90, le=90)
    lon: float = Field(ge=-180, le=180)
    at: Optional[datetime] = None

    def coordinate(self) -> Coordinate:
        return Coordinate(self.lat, self.lon)


class BroadcastIn(BaseModel):
    lat: float = Field(ge=-90, le=90)
    lon: float = Field(ge=-180, le=180)
    message: str = ""

    def coordinate(self) -> Coordinate:
        return Coordinate(self.lat, self.lon)


class LikeIn(BaseModel):
    to_user: str = Field(min_length=1)


class MessageIn(BaseModel):
    to_user: str = Field(min_length=1)
    text: str


class SubscriptionIn(BaseModel):
    is_subscribed: bool
