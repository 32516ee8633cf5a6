from __future__ import annotations

from typing import List, Optional, Dict, Any, Literal
from pydantic import BaseModel, Field, ConfigDict, field_validator

from utils import derive_college_key


class CamelModel(BaseModel):
    """Base for request/response bodies that use camelCase keys on the wire."""
    model_config = ConfigDict(populate_by_name=True)


# ---------------------------------------------------------------------------
# Advisor flow contracts
# ---------------------------------------------------------------------------

class InterestProfilerInput(CamelModel):
    interests: str = Field(
        ..., description="A list of student interests, separated by commas, e.g., science, art, sports."
    )
    academic_performance: str = Field(
        ...,
        alias="academicPerformance",
        description="A description of the student's academic performance, including grades in different subjects.",
    )
    career_goals: str = Field(..., alias="careerGoals", description="A description of the student's career goals.")


class InterestProfilerOutput(CamelModel):
    stream_suggestion: str = Field(..., alias="streamSuggestion")
    course_suggestion: str = Field(..., alias="courseSuggestion")
    rationale: str


class SuggestStreamInput(CamelModel):
    interests: str = Field(..., description="The student's interests, such as science, arts, or business.")
    academic_performance: str = Field(
        ...,
        alias="academicPerformance",
        description="The student's academic performance in class 10, including grades in relevant subjects.",
    )


class SuggestStreamOutput(CamelModel):
    suggested_stream: str = Field(..., alias="suggestedStream")
    reasoning: str


class DegreeCourseRecommendationInput(CamelModel):
    stream: str = Field(..., description="The student's stream after class 12 (e.g., Science, Arts, Commerce).")
    aptitude: str = Field(..., description="Aptitude and academic performance, including grades and strengths.")
    career_goals: str = Field(..., alias="careerGoals")


class DegreeCourseRecommendationOutput(CamelModel):
    recommended_courses: List[str] = Field(default_factory=list, alias="recommendedCourses")
    rationale: str


class CareerPathExplorationInput(CamelModel):
    degree_course: str = Field(..., alias="degreeCourse", description="The degree course chosen by the student.")


class CareerPathExplorationOutput(CamelModel):
    career_paths: List[str] = Field(default_factory=list, alias="careerPaths")
    required_skills: List[str] = Field(default_factory=list, alias="requiredSkills")
    job_market_trends: str = Field(..., alias="jobMarketTrends")


class ConversationMessage(BaseModel):
    role: Literal["user", "assistant"]
    content: str


class ChatInput(CamelModel):
    query: str
    history: List[ConversationMessage] = Field(default_factory=list)


class ChatOutput(CamelModel):
    response: str


class CareerPlanInput(CamelModel):
    current_skills: str = Field(..., alias="currentSkills")
    interests_goals: str = Field(..., alias="interestsGoals")
    experience_level: str = Field(..., alias="experienceLevel")
    desired_career_outcome: str = Field(..., alias="desiredCareerOutcome")


class CareerPlanOutput(CamelModel):
    career_roadmap: str = Field(..., alias="careerRoadmap")
    learning_plan: str = Field(..., alias="learningPlan")
    weekly_tasks: str = Field(..., alias="weeklyTasks")
    projects: str
    career_tips: str = Field(..., alias="careerTips")
    career_milestones: str = Field(..., alias="careerMilestones")
    free_resources: str = Field(..., alias="freeResources")


class FindNearbyCollegesInput(CamelModel):
    location: str = Field(..., description="A city or region name provided by the user.")


class NearbyCollege(BaseModel):
    name: str
    location: str


class FindNearbyCollegesOutput(CamelModel):
    colleges: List[NearbyCollege] = Field(default_factory=list)


# Request bodies: flow input plus an optional user id for history persistence
class InterestProfilerRequest(InterestProfilerInput):
    user_id: Optional[str] = Field(default=None, alias="userId")


class SuggestStreamRequest(SuggestStreamInput):
    user_id: Optional[str] = Field(default=None, alias="userId")


class DegreeCourseRecommendationRequest(DegreeCourseRecommendationInput):
    user_id: Optional[str] = Field(default=None, alias="userId")


class CareerPathExplorationRequest(CareerPathExplorationInput):
    user_id: Optional[str] = Field(default=None, alias="userId")


class ChatRequest(ChatInput):
    user_id: Optional[str] = Field(default=None, alias="userId")


class CareerPlanRequest(CareerPlanInput):
    user_id: Optional[str] = Field(default=None, alias="userId")


class FindNearbyCollegesRequest(FindNearbyCollegesInput):
    user_id: Optional[str] = Field(default=None, alias="userId")


class HistoryResponse(BaseModel):
    """Response model for a user's saved advisor history."""
    user_id: str
    kind: str
    entries: List[Dict[str, Any]]
    count: int


# ---------------------------------------------------------------------------
# College directory
# ---------------------------------------------------------------------------

class CollegeRecord(BaseModel):
    """A college parsed from a directory listing page."""
    name: str
    city: str
    state: str
    category: str = "Unknown"
    ownership: Literal["Government", "Private", "Unknown"] = "Unknown"
    website: Optional[str] = None

    @property
    def key(self) -> str:
        return derive_college_key(self.name, self.city)


class ScrapeSummary(CamelModel):
    total_scraped: int = Field(default=0, alias="totalScraped")
    total_inserted: int = Field(default=0, alias="totalInserted")
    total_skipped: int = Field(default=0, alias="totalSkipped")
    errors: List[str] = Field(default_factory=list)
    # Set when the run stopped on an unexpected or persistence error
    aborted: bool = Field(default=False, exclude=True)


class DirectoryCollege(BaseModel):
    """A college in the static directory dataset (and the seeded collection)."""
    model_config = ConfigDict(extra="allow")
    id: int
    name: str
    type: str = "college"
    ownership: str
    category: str
    state: str
    city: str
    address: str = ""
    website: Optional[str] = None
    approval_body: str = ""
    aliases: List[str] = Field(default_factory=list)


class CollegeSearchParams(BaseModel):
    state: Optional[str] = None
    ownership: Optional[Literal["government", "private"]] = None
    category: Optional[str] = None
    query: Optional[str] = None
    limit: int = Field(default=20, ge=1, le=50)
    cursor: Optional[int] = Field(default=None, ge=0)


class CollegeSearchResponse(CamelModel):
    colleges: List[DirectoryCollege]
    next_cursor: Optional[int] = Field(default=None, alias="nextCursor")


class DirectoryScrapeOutput(BaseModel):
    colleges: List[DirectoryCollege] = Field(default_factory=list)


class DirectoryScrapeFilters(BaseModel):
    state: Optional[str] = None
    ownership: Optional[str] = None
    category: Optional[str] = None


class SourceUrlInput(BaseModel):
    url: str


# ---------------------------------------------------------------------------
# Settings
# ---------------------------------------------------------------------------

DEFAULT_GEMINI_MODELS = [
    "gemini-1.5-flash-latest",
    "gemini-1.5-pro-latest",
    "gemini-1.0-pro",
    "gemini-pro",
    "gemini-flash",
]


class Settings(BaseModel):
    model_config = ConfigDict(protected_namespaces=())
    gemini_api_key: Optional[str] = None
    gemini_models: List[str] = Field(default_factory=lambda: list(DEFAULT_GEMINI_MODELS))
    rate_limit_requests_per_minute: int = 60
    scrape_base_url: str = "https://collegedunia.com"
    scrape_max_pages: int = 5
    scrape_page_delay_seconds: float = 1.0
    scrape_fetch_retries: int = 3
    scrape_request_timeout_seconds: int = 20
    colleges_json_path: str = "data/indian_colleges.json"

    @field_validator("gemini_models", mode="before")
    @classmethod
    def split_models(cls, v: Any) -> Any:
        if isinstance(v, str):
            return [m.strip() for m in v.split(",") if m.strip()]
        return v
