from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, computed_field


# --- Identity ---
class UserIdentity(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    access_token: Optional[str] = Field(default=None, exclude=True, repr=False)


# --- Resume ---
class Location(BaseModel):
    city: Optional[str] = None
    country: Optional[str] = None


class PersonalInfo(BaseModel):
    first_name: str = ""
    last_name: str = ""
    email: str = ""
    phone: str = ""
    location: Optional[Location] = None
    website: Optional[str] = None
    telegram_id: Optional[str] = None


class Skills(BaseModel):
    hard_skills: List[str] = []
    soft_skills: List[str] = []
    languages: List[str] = []

    def all(self) -> List[str]:
        return [*self.hard_skills, *self.soft_skills, *self.languages]


class Education(BaseModel):
    institution: str = ""
    degree: Optional[str] = None
    graduation_year: Optional[str] = None
    field_of_study: Optional[str] = None
    additional_info: Optional[str] = None

    @property
    def label(self) -> str:
        return self.institution + (f" - {self.degree}" if self.degree else "")


class WorkExperience(BaseModel):
    position: str = ""
    company: str = ""
    bullet_list: List[str] = []
    start_date: Optional[str] = None
    end_date: Optional[str] = None
    industry: Optional[str] = None

    @property
    def label(self) -> str:
        return f"{self.position} at {self.company}"


class ResumeData(BaseModel):
    personal_info: PersonalInfo = PersonalInfo()
    skills: Skills = Skills()
    education: List[Education] = []
    experience: List[WorkExperience] = []
    summary: str = ""
    desired_position: str = ""
    # The parser is asked for exactly 8 similar positions
    similar_positions: List[str] = []

    @property
    def full_name(self) -> str:
        return f"{self.personal_info.first_name} {self.personal_info.last_name}".strip()


# --- Job posting ---
class JobData(BaseModel):
    job_title: str = ""
    company_name: str = ""
    location: Optional[Location] = None
    employment_type: Optional[str] = None
    experience_level: Optional[str] = None
    industry: Optional[str] = None
    description: Optional[str] = None
    skills: Skills = Skills()

    @computed_field  # type: ignore[misc]
    @property
    def required_skills(self) -> List[str]:
        # Older consumers read hard skills from here
        return list(self.skills.hard_skills)


class JobUrlValidation(BaseModel):
    is_valid: bool
    error: Optional[str] = None
    detected_site: Optional[str] = None


class JobAnalysisResult(BaseModel):
    job_data: JobData
    degraded: bool = False
    error: Optional[str] = None
    detected_site: Optional[str] = None


# --- Cover letter ---
class LetterStyle(str, Enum):
    NEUTRAL = "neutral"
    CREATIVE = "creative"
    STARTUP = "startup"
    FORMAL = "formal"


class LetterCustomization(BaseModel):
    letter_style: LetterStyle = LetterStyle.NEUTRAL
    highlight_experience: List[str] = Field(default_factory=list, max_length=2)
    highlight_education: List[str] = Field(default_factory=list, max_length=2)
    highlight_skills: List[str] = Field(default_factory=list, max_length=4)


class CoverLetter(BaseModel):
    text: str
    customization: LetterCustomization = LetterCustomization()


# --- Scoring ---
# Kept as received; range and type problems are only logged
ScoreValue = Union[int, float, str]


class ScoreCategory(BaseModel):
    model_config = ConfigDict(extra="allow")

    score: ScoreValue
    summary: str
    description: str


class ScoringBreakdown(BaseModel):
    model_config = ConfigDict(extra="allow")

    hard_skills: ScoreCategory
    soft_skills: ScoreCategory
    experience_match: ScoreCategory
    position_match: ScoreCategory


class ScoringResult(BaseModel):
    model_config = ConfigDict(extra="allow")

    total_score: ScoreValue
    breakdown: ScoringBreakdown
    # Free text such as "good_match"; not a closed set
    recommendation: str
    recruiter_recommendation: str
    candidate_recommendation: str


class ScoringResults(BaseModel):
    """Wire and storage wrapper around a scoring result."""

    model_config = ConfigDict(extra="allow")

    scoring_result: ScoringResult


# --- Generations ---
class GenerationStatus(str, Enum):
    COMPLETED = "completed"
    DRAFT = "draft"
    ARCHIVED = "archived"


class CreateGenerationData(BaseModel):
    job_title: str
    company_name: str
    overall_score: Optional[int] = None
    cover_letter_text: str
    scoring_results_json: Dict[str, Any]
    resume_data_json: Dict[str, Any]
    job_data_json: Dict[str, Any]
    title: Optional[str] = None
    status: GenerationStatus = GenerationStatus.COMPLETED


class UpdateGenerationData(BaseModel):
    title: Optional[str] = None
    status: Optional[GenerationStatus] = None


class GenerationSummary(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    created_at: datetime
    job_title: str
    company_name: str
    overall_score: Optional[int] = None
    title: Optional[str] = None
    status: GenerationStatus


class Generation(GenerationSummary):
    user_id: str
    updated_at: datetime
    cover_letter_text: str
    scoring_results_json: Dict[str, Any]
    resume_data_json: Dict[str, Any]
    job_data_json: Dict[str, Any]


class SaveGenerationResponse(BaseModel):
    id: str
    created_at: datetime


# --- Workflow API shapes ---
class Step(str, Enum):
    DASHBOARD = "dashboard"
    UPLOAD = "upload"
    ANALYZE = "analyze"
    GENERATE = "generate"
    SCORING = "scoring"
    FINAL = "final"


class WorkflowState(BaseModel):
    current_step: Step
    completed: Dict[Step, bool]
    unlocked_steps: List[Step]
    can_proceed: bool
    is_letter_editing: bool = False
    has_unsaved_letter_changes: bool = False
    resume_data: Optional[ResumeData] = None
    job_data: Optional[JobData] = None
    cover_letter: Optional[CoverLetter] = None
    scoring: Optional[ScoringResults] = None
    view: Dict[str, Any] = {}


class StepInput(BaseModel):
    step: Step


class JobUrlInput(BaseModel):
    vacancy_url: str


class LetterEditInput(BaseModel):
    text: str


class EditingStateInput(BaseModel):
    is_editing: bool
    has_unsaved_changes: bool


class SaveWorkflowInput(BaseModel):
    title: Optional[str] = None


class UploadValidationInput(BaseModel):
    file_name: str
    file_size: int
    content_type: str
