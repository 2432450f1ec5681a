"""
Database Schemas for the 13-month planner

Each Pydantic model represents a MongoDB collection. Collection name is the lowercase class name.
"""
from datetime import datetime
from typing import List

from pydantic import BaseModel, Field


class Month(BaseModel):
    user_id: str = Field(..., description="Owning user id")
    name: str = Field(..., min_length=1, description="Display name")
    order: int = Field(..., ge=1, le=13, description="Position in the 13-month year")
    days: int = Field(28, ge=28, le=28, description="Day count, fixed at 28")
    start_day: int = Field(..., ge=0, le=6, description="Weekday of day 1, 0=Sunday")
    tasks_seeded: bool = Field(False, description="Default weekly tasks already created")


class WeeklyTask(BaseModel):
    user_id: str = Field(..., description="Owning user id")
    month_id: str = Field(..., description="Reference to Month _id as string")
    week_number: int = Field(..., ge=1, le=4, description="Week within the month")
    start_date: str = Field(..., description="ISO date of the first day")
    end_date: str = Field(..., description="ISO date of the last day")
    days: List[int] = Field(default_factory=list, description="Days of the month covered")
    color: str = Field("#FF6B6B", description="Display color hex")
    task_text: str = Field("", description="Free-text label")


class User(BaseModel):
    username: str = Field(..., min_length=1, max_length=80)
    email: str = Field(..., description="Lower-cased login email")
    password_hash: str


class PasswordReset(BaseModel):
    user_id: str
    token: str
    expires_at: datetime
    used: bool = False
