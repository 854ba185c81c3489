"""Facilitator endpoints — quest authoring, skills and participant progress."""

from datetime import datetime, timezone
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from maker.auth import Actor, require_facilitator
from maker.database import get_db
from maker.errors import EntityMissing
from maker.logging_config import get_logger
from maker.models import (
    LearningResource,
    Quest,
    QuestPage,
    QuestStatusEnum,
    Skill,
    Task,
    User,
    UserQuest,
    WorkshopRole,
    WorkshopUser,
)
from maker.schemas import (
    MessageResponse,
    ParticipantProgressResponse,
    QuestCreate,
    QuestResponse,
    QuestUpdate,
    SkillCreate,
    SkillResponse,
    UserQuestResponse,
    UserResponse,
)
from maker.services.quest_state import QuestLifecycleError, validate_transition

logger = get_logger(__name__)
router = APIRouter(prefix="/api/facilitator", tags=["facilitator"])

QUEST_LIST_ROUTE = "/facilitator/quests"
PARTICIPANT_LIST_ROUTE = "/facilitator/participants"


async def _get_quest(db: AsyncSession, quest_id: UUID) -> Quest:
    result = await db.execute(select(Quest).where(Quest.id == quest_id))
    quest = result.scalar_one_or_none()
    if quest is None:
        raise EntityMissing(QUEST_LIST_ROUTE, "Quest not found")
    return quest


async def _check_skill(db: AsyncSession, skill_id: UUID | None) -> None:
    if skill_id is None:
        return
    found = (await db.execute(select(Skill.id).where(Skill.id == skill_id))).scalar_one_or_none()
    if found is None:
        raise HTTPException(status_code=400, detail="Unknown skill_id")

def _require_owner(quest: Quest, actor: Actor) -> None:
    """Facilitators edit their own quests; admins may edit any."""
    if actor.role is WorkshopRole.admin:
        return
    if quest.created_by != actor.user.id:
        raise HTTPException(status_code=403, detail="Only the quest's author can change it")


async def _set_status(db: AsyncSession, quest: Quest, target: QuestStatusEnum) -> Quest:
    try:
        validate_transition(quest.status, target.value)
    except QuestLifecycleError as e:
        raise HTTPException(status_code=400, detail=str(e))
    quest.status = target.value
    quest.updated_at = datetime.now(timezone.utc)
    await db.commit()
    await db.refresh(quest)
    logger.info("quest_status_changed", quest_id=str(quest.id), status=quest.status)
    return quest


# ---------------------------------------------------------------------------
# Quests
# ---------------------------------------------------------------------------


@router.get("/quests", response_model=list[QuestResponse])
async def list_quests(
    status: QuestStatusEnum | None = Query(None),
    mine: bool = Query(False),
    actor: Actor = Depends(require_facilitator),
    db: AsyncSession = Depends(get_db),
):
    """All quests, optionally filtered by lifecycle status or authorship."""
    query = select(Quest)
    if status is not None:
        query = query.where(Quest.status == status.value)
    if mine:
        query = query.where(Quest.created_by == actor.user.id)
    result = await db.execute(query.order_by(Quest.created_at.desc()))
    return result.scalars().all()


@router.post("/quests", response_model=QuestResponse, status_code=201)
async def create_quest(
    body: QuestCreate,
    actor: Actor = Depends(require_facilitator),
    db: AsyncSession = Depends(get_db),
):
    """Create a draft quest with its pages, tasks and resources."""
    await _check_skill(db, body.skill_id)
    quest = Quest(
        title=body.title,
        description=body.description,
        difficulty=body.difficulty.value,
        xp_reward=body.xp_reward,
        skill_id=body.skill_id,
        status=QuestStatusEnum.draft.value,
        is_active=True,
        materials_needed=body.materials_needed,
        general_instructions=body.general_instructions,
        badge_image_url=body.badge_image_url,
        certificate_image_url=body.certificate_image_url,
        scheduled_date=body.scheduled_date,
        created_by=actor.user.id,
    )
    db.add(quest)
    await db.flush()

    for page in body.pages:
        db.add(QuestPage(quest_id=quest.id, **page.model_dump()))
    for task in body.tasks:
        db.add(Task(quest_id=quest.id, **task.model_dump()))
    for resource in body.resources:
        db.add(LearningResource(quest_id=quest.id, **resource.model_dump()))

    await db.commit()
    await db.refresh(quest)

    logger.info(
        "quest_created",
        quest_id=str(quest.id),
        pages=len(body.pages),
        tasks=len(body.tasks),
    )
    return quest


@router.patch("/quests/{quest_id}", response_model=QuestResponse)
async def update_quest(
    quest_id: UUID,
    body: QuestUpdate,
    actor: Actor = Depends(require_facilitator),
    db: AsyncSession = Depends(get_db),
):
    """Edit quest metadata. Lifecycle changes go through publish/archive."""
    quest = await _get_quest(db, quest_id)
    _require_owner(quest, actor)

    changes = body.model_dump(exclude_unset=True)
    if "skill_id" in changes:
        await _check_skill(db, changes["skill_id"])
    if "difficulty" in changes and changes["difficulty"] is not None:
        changes["difficulty"] = changes["difficulty"].value
    for field, value in changes.items():
        setattr(quest, field, value)
    quest.updated_at = datetime.now(timezone.utc)

    await db.commit()
    await db.refresh(quest)
    logger.info("quest_updated", quest_id=str(quest.id), fields=sorted(changes))
    return quest


@router.post("/quests/{quest_id}/publish", response_model=QuestResponse)
async def publish_quest(
    quest_id: UUID,
    actor: Actor = Depends(require_facilitator),
    db: AsyncSession = Depends(get_db),
):
    quest = await _get_quest(db, quest_id)
    _require_owner(quest, actor)
    return await _set_status(db, quest, QuestStatusEnum.published)


@router.post("/quests/{quest_id}/archive", response_model=QuestResponse)
async def archive_quest(
    quest_id: UUID,
    actor: Actor = Depends(require_facilitator),
    db: AsyncSession = Depends(get_db),
):
    quest = await _get_quest(db, quest_id)
    _require_owner(quest, actor)
    return await _set_status(db, quest, QuestStatusEnum.archived)


@router.delete("/quests/{quest_id}", response_model=MessageResponse)
async def delete_quest(
    quest_id: UUID,
    actor: Actor = Depends(require_facilitator),
    db: AsyncSession = Depends(get_db),
):
    """Delete a quest in any state, with its content and progress records."""
    quest = await _get_quest(db, quest_id)
    _require_owner(quest, actor)
    await db.delete(quest)
    await db.commit()
    logger.info("quest_deleted", quest_id=str(quest_id))
    return MessageResponse(message="Quest deleted")


# ---------------------------------------------------------------------------
# Skills
# ---------------------------------------------------------------------------


@router.get("/skills", response_model=list[SkillResponse])
async def list_skills(
    actor: Actor = Depends(require_facilitator),
    db: AsyncSession = Depends(get_db),
):
    result = await db.execute(select(Skill).order_by(Skill.name))
    return result.scalars().all()


@router.post("/skills", response_model=SkillResponse, status_code=201)
async def create_skill(
    body: SkillCreate,
    actor: Actor = Depends(require_facilitator),
    db: AsyncSession = Depends(get_db),
):
    skill = Skill(**body.model_dump())
    db.add(skill)
    try:
        await db.commit()
    except IntegrityError:
        await db.rollback()
        raise HTTPException(status_code=409, detail="A skill with this name already exists")
    await db.refresh(skill)
    logger.info("skill_created", skill_id=str(skill.id), name=skill.name)
    return skill


# ---------------------------------------------------------------------------
# Participants
# ---------------------------------------------------------------------------


@router.get("/participants", response_model=list[UserResponse])
async def list_participants(
    workshop_id: UUID | None = Query(None),
    actor: Actor = Depends(require_facilitator),
    db: AsyncSession = Depends(get_db),
):
    """Users holding a participant assignment, optionally within one workshop."""
    query = (
        select(User)
        .join(WorkshopUser, WorkshopUser.user_id == User.id)
        .where(WorkshopUser.role == WorkshopRole.participant.value)
        .distinct()
        .order_by(User.display_name)
    )
    if workshop_id is not None:
        query = query.where(WorkshopUser.workshop_id == workshop_id)
    result = await db.execute(query)
    return result.scalars().all()


@router.get("/participants/{user_id}", response_model=ParticipantProgressResponse)
async def get_participant(
    user_id: UUID,
    actor: Actor = Depends(require_facilitator),
    db: AsyncSession = Depends(get_db),
):
    """One participant's profile and every quest progress record they hold."""
    user = (await db.execute(select(User).where(User.id == user_id))).scalar_one_or_none()
    if user is None:
        raise EntityMissing(PARTICIPANT_LIST_ROUTE, "Participant not found")

    records = (
        await db.execute(
            select(UserQuest)
            .where(UserQuest.user_id == user_id)
            .order_by(UserQuest.created_at.desc())
        )
    ).scalars().all()
    return ParticipantProgressResponse(
        user=UserResponse.model_validate(user),
        quests=[UserQuestResponse.model_validate(r) for r in records],
    )
