from pydantic import BaseModel, Field

from proph_client.core.heights import format_optional


class PlayerStats(BaseModel):
    ppg: float = 0.0
    rpg: float = 0.0
    apg: float = 0.0
    fg_percentage: float = 0.0
    three_pt_percentage: float = 0.0
    ft_percentage: float = 0.0
    steals: float = 0.0
    blocks: float = 0.0


class Player(BaseModel):
    user_id: int
    profile_id: int | None = None
    name: str = "Unknown Player"
    position: str = "Unknown"
    photo: str = ""
    school: str = "Unknown School"
    height_inches: int = 0
    weight: int | None = None
    age: int = 0
    location: str = "Unknown"
    class_year: int = 0
    level: str = "Unknown"
    comparisons: list[str] = Field(default_factory=list)
    stats: PlayerStats = Field(default_factory=PlayerStats)
    verified: bool = False
    gpa: float | None = None
    sat: int | None = None
    act: int | None = None
    email: str | None = None
    phone_number: str | None = None

    @property
    def height_display(self) -> str:
        return format_optional(self.height_inches)


class ApplicantSummary(BaseModel):
    user_id: int
    name: str = "Unknown Player"
    photo: str = ""
    height_inches: int = 0
    weight: int | None = None
    class_year: int = 0

    @property
    def height_display(self) -> str:
        return format_optional(self.height_inches)
