"""Lookup key model."""
from __future__ import annotations

from pydantic import BaseModel, Field, field_validator


class QueryKey(BaseModel):
    """Identifies one result lookup: roll number, regulation year and program."""

    model_config = {"frozen": True, "coerce_numbers_to_str": True}

    roll_number: str = Field(min_length=1, description="Board roll number")
    regulation_year: str = Field(min_length=1, description="Regulation year, e.g. '2022'")
    program_name: str = Field(min_length=1, description="Program/exam name, e.g. 'Diploma in Engineering'")

    @field_validator("roll_number", "regulation_year", "program_name", mode="before")
    @classmethod
    def _strip(cls, value: object) -> object:
        if isinstance(value, str):
            return value.strip()
        return value

    def __str__(self) -> str:
        return f"{self.program_name}/{self.regulation_year}/{self.roll_number}"
