"""
Pydantic models for the scoring service wire format.

Both ``POST /upload`` and ``GET /game`` answer with the same document:

    {"home": TeamPayload, "away": TeamPayload, "gameId": ...}

A decoded ``Payload`` is immutable and is always replaced wholesale by the
next successful decode.
"""
from __future__ import annotations

from typing import List

from pydantic import BaseModel, ConfigDict, Field, field_validator


class Player(BaseModel):
    """One skater or goalie currently on the ice."""

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    full_name: str = Field(..., alias="fullName")
    number: str                                        # Jersey number, kept as text ("04" stays "04")
    position_code: str = Field(..., alias="positionCode")  # C, L, R, D, G

    @field_validator("number", mode="before")
    @classmethod
    def _number_as_text(cls, value):
        if isinstance(value, int) and not isinstance(value, bool):
            return str(value)
        return value


class TeamPayload(BaseModel):
    model_config = ConfigDict(populate_by_name=True, frozen=True)

    name: str
    abbreviation: str
    goals: int
    on_ice: List[Player] = Field(..., alias="onIce")


class Payload(BaseModel):
    """Game state as returned by the scoring service."""

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    home_team: TeamPayload = Field(..., alias="home")
    away_team: TeamPayload = Field(..., alias="away")
    game_id: str | None = Field(None, alias="gameId")

    @field_validator("game_id", mode="before")
    @classmethod
    def _game_id_as_text(cls, value):
        if isinstance(value, int) and not isinstance(value, bool):
            return str(value)
        return value

    @property
    def headline(self) -> str:
        return f"Now following {self.away_team.name} vs. {self.home_team.name}"

    def to_wire(self) -> dict:
        return self.model_dump(by_alias=True, exclude_none=True)
