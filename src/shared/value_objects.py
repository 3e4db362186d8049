"""Value objects shared across bounded contexts."""

from pydantic import BaseModel, ConfigDict, Field


class Coordinates(BaseModel):
    """Latitude/longitude pair.

    Latitude ranges from -90 to 90, longitude from -180 to 180.
    """

    model_config = ConfigDict(frozen=True)

    lat: float = Field(ge=-90.0, le=90.0)
    lng: float = Field(ge=-180.0, le=180.0)
