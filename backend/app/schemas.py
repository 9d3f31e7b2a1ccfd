from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field


Gender = Literal["male", "female", "other"]
HealthGoal = Literal["lose_weight", "maintain_weight", "gain_muscle", "general_health"]
DietaryPreference = Literal[
    "none",
    "vegetarian",
    "vegan",
    "keto",
    "paleo",
    "mediterranean",
    "high_protein",
]
ActivityLevel = Literal["sedentary", "light", "moderate", "active", "very_active"]


class ChatMessage(BaseModel):
    role: str = Field(..., description="system | user | assistant")
    content: str


class ProfileSummary(BaseModel):
    """Subset of the stored profile used to personalise the system prompt."""

    dietary_preference: Optional[str] = None
    health_goal: Optional[str] = None
    daily_calorie_target: Optional[int] = None


class ChatRequest(BaseModel):
    messages: List[ChatMessage]
    user_profile: Optional[ProfileSummary] = Field(default=None, alias="userProfile")

    model_config = ConfigDict(populate_by_name=True)


class ErrorResponse(BaseModel):
    error: str


class UserProfileUpdate(BaseModel):
    age: Optional[int] = Field(default=None, gt=0, lt=150)
    gender: Optional[Gender] = None
    height_cm: Optional[float] = Field(default=None, gt=0)
    weight_kg: Optional[float] = Field(default=None, gt=0)
    health_goal: Optional[HealthGoal] = None
    dietary_preference: DietaryPreference = "none"
    activity_level: ActivityLevel = "moderate"
    daily_calorie_target: Optional[int] = Field(default=None, gt=0)
    daily_water_target_ml: Optional[int] = Field(default=None, gt=0)


class UserProfileResponse(UserProfileUpdate):
    user_id: str
    created_at: str
    updated_at: str


class DashboardResponse(BaseModel):
    calorie_target: Optional[int]
    water_target_ml: Optional[int]
    goal_label: Optional[str]
    diet_label: Optional[str]
    profile: UserProfileResponse
