"""Pydantic v2 request/response schemas for all endpoints."""

from datetime import date, datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict, EmailStr, Field, model_validator

from maker.models import QuestDifficultyEnum, WorkshopRole


class MessageResponse(BaseModel):
    message: str


# ---------------------------------------------------------------------------
# Auth & users
# ---------------------------------------------------------------------------


class UserSignupRequest(BaseModel):
    email: EmailStr
    password: str = Field(..., min_length=8, max_length=72)
    display_name: str | None = Field(default=None, max_length=100)


class UserLoginRequest(BaseModel):
    email: EmailStr
    password: str = Field(..., min_length=1, max_length=72)


class UserResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    email: str
    display_name: str | None
    bio: str | None = None
    xp: int = 0
    level: int = 1
    status: str
    created_at: datetime


class LandingResponse(BaseModel):
    route: str
    role: WorkshopRole | None = None


class UserLoginResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    user: UserResponse
    landing: LandingResponse


class WaitingRoomResponse(BaseModel):
    display_name: str
    assigned: bool = False


class AdminUserCreate(BaseModel):
    email: EmailStr
    password: str = Field(..., min_length=8, max_length=72)
    display_name: str | None = Field(default=None, max_length=100)
    bio: str | None = None


# ---------------------------------------------------------------------------
# Workshops
# ---------------------------------------------------------------------------


class WorkshopCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=200)
    description: str | None = None
    scheduled_date: date | None = None


class WorkshopUpdate(BaseModel):
    name: str | None = Field(default=None, min_length=1, max_length=200)
    description: str | None = None
    scheduled_date: date | None = None


class WorkshopResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    name: str
    description: str | None
    scheduled_date: date | None
    created_at: datetime


class WorkshopAssignmentCreate(BaseModel):
    user_id: UUID
    role: WorkshopRole = WorkshopRole.participant


class WorkshopAssignmentUpdate(BaseModel):
    role: WorkshopRole


class WorkshopAssignmentResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    workshop_id: UUID
    user_id: UUID
    role: WorkshopRole
    created_at: datetime


# ---------------------------------------------------------------------------
# Workshop quests & skills
# ---------------------------------------------------------------------------


class WorkshopQuestCreate(BaseModel):
    quest_ids: list[UUID] = Field(..., min_length=1)


class WorkshopQuestResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    workshop_id: UUID
    quest_id: UUID
    created_at: datetime


class SkillCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    description: str | None = None
    icon: str | None = None


class SkillResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    name: str
    description: str | None
    icon: str | None
    created_at: datetime


# ---------------------------------------------------------------------------
# Quests (authoring)
# ---------------------------------------------------------------------------


class QuestPageCreate(BaseModel):
    page_number: int = Field(..., ge=1)
    title: str | None = Field(default=None, max_length=300)
    content: str = ""


class TaskCreate(BaseModel):
    page_number: int = Field(..., ge=1)
    description: str = Field(..., min_length=1)


class LearningResourceCreate(BaseModel):
    title: str = Field(..., min_length=1, max_length=300)
    content: str | None = None
    url: str | None = None


class QuestCreate(BaseModel):
    title: str = Field(..., min_length=1, max_length=300)
    description: str | None = None
    difficulty: QuestDifficultyEnum = QuestDifficultyEnum.beginner
    xp_reward: int = Field(default=0, ge=0)
    skill_id: UUID | None = None
    materials_needed: str | None = None
    general_instructions: str | None = None
    badge_image_url: str | None = None
    certificate_image_url: str | None = None
    scheduled_date: date | None = None
    pages: list[QuestPageCreate] = Field(default_factory=list)
    tasks: list[TaskCreate] = Field(default_factory=list)
    resources: list[LearningResourceCreate] = Field(default_factory=list)

    @model_validator(mode="after")
    def check_page_numbers(self) -> "QuestCreate":
        numbers = [p.page_number for p in self.pages]
        if len(numbers) != len(set(numbers)):
            raise ValueError("page_number must be unique within a quest")
        unknown = {t.page_number for t in self.tasks} - set(numbers)
        if unknown:
            raise ValueError(f"tasks reference missing pages: {sorted(unknown)}")
        return self


class QuestUpdate(BaseModel):
    title: str | None = Field(default=None, min_length=1, max_length=300)
    description: str | None = None
    difficulty: QuestDifficultyEnum | None = None
    xp_reward: int | None = Field(default=None, ge=0)
    skill_id: UUID | None = None
    is_active: bool | None = None
    materials_needed: str | None = None
    general_instructions: str | None = None
    badge_image_url: str | None = None
    certificate_image_url: str | None = None
    scheduled_date: date | None = None


class QuestResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    title: str
    description: str | None
    difficulty: str
    xp_reward: int
    status: str
    is_active: bool
    skill_id: UUID | None = None
    skill: SkillResponse | None = None
    materials_needed: str | None = None
    general_instructions: str | None = None
    badge_image_url: str | None = None
    certificate_image_url: str | None = None
    scheduled_date: date | None = None
    created_by: UUID | None
    created_at: datetime
    updated_at: datetime


class QuestPageResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    page_number: int
    title: str | None
    content: str


class TaskResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    page_number: int
    description: str


class LearningResourceResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    title: str
    content: str | None
    url: str | None


# ---------------------------------------------------------------------------
# Quest progress
# ---------------------------------------------------------------------------


class UserQuestResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    user_id: UUID
    quest_id: UUID
    status: str
    progress: int
    started_at: datetime | None
    completed_at: datetime | None


class ProgressTransitionRequest(BaseModel):
    current_index: int = Field(..., ge=0)


class FlowStateResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    cursor: int
    total_pages: int
    percent: int
    progress: int
    status: str
    saved: bool
    is_last_page: bool


class QuestFlowResponse(BaseModel):
    quest: QuestResponse
    pages: list[QuestPageResponse]
    tasks_by_page: dict[int, list[TaskResponse]]
    resources: list[LearningResourceResponse]
    user_quest: UserQuestResponse | None
    state: FlowStateResponse


class QuestListItem(QuestResponse):
    progress: int = 0
    progress_status: str = "not_started"


class ParticipantDashboardResponse(BaseModel):
    user: UserResponse
    quests_in_progress: int
    quests_completed: int
    total_available: int


class ParticipantProgressResponse(BaseModel):
    user: UserResponse
    quests: list[UserQuestResponse]


class UserSkillResponse(BaseModel):
    skill: SkillResponse
    learned: bool
    xp: int = 0
    level: int = 0


class ParticipantSkillsResponse(BaseModel):
    skills: list[UserSkillResponse]
    learned: int
    total: int
    percent: int
