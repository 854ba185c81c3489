"""Participant endpoints — dashboard, quest list, and the quest flow."""

import inspect
from collections import defaultdict
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from maker.auth import Actor, require_participant
from maker.database import get_db
from maker.errors import EntityMissing
from maker.logging_config import get_logger
from maker.models import (
    LearningResource,
    ProgressStatusEnum,
    Quest,
    QuestPage,
    QuestStatusEnum,
    Skill,
    Task,
    UserQuest,
    UserSkill,
)
from maker.schemas import (
    FlowStateResponse,
    LearningResourceResponse,
    ParticipantDashboardResponse,
    ParticipantSkillsResponse,
    ProgressTransitionRequest,
    QuestFlowResponse,
    QuestListItem,
    QuestPageResponse,
    QuestResponse,
    SkillResponse,
    TaskResponse,
    UserQuestResponse,
    UserSkillResponse,
    UserResponse,
)
from maker.services.quest_progress import FlowBusy, QuestFlow, flow_guard, load_flow
from maker.services.quest_state import QuestTransitionError

logger = get_logger(__name__)
router = APIRouter(prefix="/api/participant", tags=["participant"])

QUEST_LIST_ROUTE = "/participant/quests"


def _visible_quests():
    return select(Quest).where(
        Quest.status == QuestStatusEnum.published.value,
        Quest.is_active.is_(True),
    )


async def _get_visible_quest(db: AsyncSession, quest_id: UUID) -> Quest:
    """Published, active quest or a redirect back to the quest list."""
    result = await db.execute(_visible_quests().where(Quest.id == quest_id))
    quest = result.scalar_one_or_none()
    if quest is None:
        raise EntityMissing(QUEST_LIST_ROUTE, "Quest not found")
    return quest


@router.get("", response_model=ParticipantDashboardResponse)
async def dashboard(
    actor: Actor = Depends(require_participant),
    db: AsyncSession = Depends(get_db),
):
    """XP, level and quest counts for the current participant."""
    counts_result = await db.execute(
        select(UserQuest.status, func.count().label("cnt"))
        .where(UserQuest.user_id == actor.user.id)
        .group_by(UserQuest.status)
    )
    counts = {row.status: row.cnt for row in counts_result.all()}
    total_available = (
        await db.execute(select(func.count()).select_from(_visible_quests().subquery()))
    ).scalar() or 0

    return ParticipantDashboardResponse(
        user=UserResponse.model_validate(actor.user),
        quests_in_progress=counts.get(ProgressStatusEnum.in_progress.value, 0),
        quests_completed=counts.get(ProgressStatusEnum.completed.value, 0),
        total_available=total_available,
    )


@router.get("/quests", response_model=list[QuestListItem])
async def list_quests(
    actor: Actor = Depends(require_participant),
    db: AsyncSession = Depends(get_db),
):
    """Published, active quests with the caller's own progress on each."""
    result = await db.execute(
        select(Quest, UserQuest.progress, UserQuest.status.label("progress_status"))
        .outerjoin(
            UserQuest,
            (UserQuest.quest_id == Quest.id) & (UserQuest.user_id == actor.user.id),
        )
        .where(
            Quest.status == QuestStatusEnum.published.value,
            Quest.is_active.is_(True),
        )
        .order_by(Quest.created_at.desc())
    )
    items = []
    for row in result.all():
        base = QuestResponse.model_validate(row[0]).model_dump()
        items.append(
            QuestListItem(
                **base,
                progress=row.progress or 0,
                progress_status=row.progress_status or ProgressStatusEnum.not_started.value,
            )
        )
    return items


@router.get("/skills", response_model=ParticipantSkillsResponse)
async def list_skills(
    actor: Actor = Depends(require_participant),
    db: AsyncSession = Depends(get_db),
):
    """Every skill, marked learned where the caller has earned XP in it."""
    skills = (await db.execute(select(Skill).order_by(Skill.name))).scalars().all()
    earned = {
        us.skill_id: us
        for us in (
            await db.execute(select(UserSkill).where(UserSkill.user_id == actor.user.id))
        ).scalars().all()
    }

    items = []
    for skill in skills:
        held = earned.get(skill.id)
        items.append(
            UserSkillResponse(
                skill=SkillResponse.model_validate(skill),
                learned=held is not None,
                xp=held.xp if held else 0,
                level=held.level if held else 0,
            )
        )
    total = len(skills)
    learned = sum(1 for item in items if item.learned)
    return ParticipantSkillsResponse(
        skills=items,
        learned=learned,
        total=total,
        percent=(200 * learned + total) // (2 * total) if total else 0,
    )


@router.get("/quests/{quest_id}", response_model=QuestFlowResponse)
async def open_quest(
    quest_id: UUID,
    actor: Actor = Depends(require_participant),
    db: AsyncSession = Depends(get_db),
):
    """Open the quest flow: content plus the (lazily created) progress record."""
    quest = await _get_visible_quest(db, quest_id)

    pages = (
        await db.execute(
            select(QuestPage)
            .where(QuestPage.quest_id == quest.id)
            .order_by(QuestPage.page_number)
        )
    ).scalars().all()
    tasks = (
        await db.execute(
            select(Task)
            .where(Task.quest_id == quest.id)
            .order_by(Task.page_number)
        )
    ).scalars().all()
    resources = (
        await db.execute(
            select(LearningResource).where(LearningResource.quest_id == quest.id)
        )
    ).scalars().all()

    tasks_by_page: dict[int, list[TaskResponse]] = defaultdict(list)
    for task in tasks:
        tasks_by_page[task.page_number].append(TaskResponse.model_validate(task))

    # Copied out before the transition: a failed write rolls back and expires the rows.
    content = {
        "quest": QuestResponse.model_validate(quest),
        "pages": [QuestPageResponse.model_validate(p) for p in pages],
        "tasks_by_page": dict(tasks_by_page),
        "resources": [LearningResourceResponse.model_validate(r) for r in resources],
    }
    flow = await _run_transition(db, quest.id, actor, lambda f: f.open())

    return QuestFlowResponse(
        **content,
        user_quest=UserQuestResponse.model_validate(flow.user_quest) if flow.user_quest else None,
        state=FlowStateResponse.model_validate(flow.state()),
    )


async def _run_transition(db: AsyncSession, quest_id: UUID, actor: Actor, step) -> QuestFlow:
    """Load the flow and apply one transition under the per-pair busy flag."""
    user_id = actor.user.id
    try:
        with flow_guard(user_id, quest_id):
            flow = await load_flow(db, quest_id, user_id)
            outcome = step(flow)
            if inspect.isawaitable(outcome):
                await outcome
    except FlowBusy as e:
        raise HTTPException(status_code=409, detail=str(e))
    except QuestTransitionError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return flow


@router.post("/quests/{quest_id}/open", response_model=FlowStateResponse)
async def open_progress(
    quest_id: UUID,
    actor: Actor = Depends(require_participant),
    db: AsyncSession = Depends(get_db),
):
    """Create the progress record if absent; a repeat call is a read."""
    await _get_visible_quest(db, quest_id)
    flow = await _run_transition(db, quest_id, actor, lambda f: f.open())
    return FlowStateResponse.model_validate(flow.state())


@router.post("/quests/{quest_id}/advance", response_model=FlowStateResponse)
async def advance(
    quest_id: UUID,
    body: ProgressTransitionRequest,
    actor: Actor = Depends(require_participant),
    db: AsyncSession = Depends(get_db),
):
    """Next page. Raises the stored watermark only when the new percent is higher."""
    await _get_visible_quest(db, quest_id)
    flow = await _run_transition(db, quest_id, actor, lambda f: f.advance(body.current_index))
    logger.info(
        "quest_advanced",
        quest_id=str(quest_id),
        cursor=flow.cursor,
        progress=flow.progress,
        saved=flow.saved,
    )
    return FlowStateResponse.model_validate(flow.state())


@router.post("/quests/{quest_id}/retreat", response_model=FlowStateResponse)
async def retreat(
    quest_id: UUID,
    body: ProgressTransitionRequest,
    actor: Actor = Depends(require_participant),
    db: AsyncSession = Depends(get_db),
):
    """Previous page. Navigation only; stored progress is untouched."""
    await _get_visible_quest(db, quest_id)
    flow = await _run_transition(db, quest_id, actor, lambda f: f.retreat(body.current_index))
    return FlowStateResponse.model_validate(flow.state())


@router.post("/quests/{quest_id}/complete", response_model=FlowStateResponse)
async def complete(
    quest_id: UUID,
    body: ProgressTransitionRequest,
    actor: Actor = Depends(require_participant),
    db: AsyncSession = Depends(get_db),
):
    """Finish from the last page. Repeating it leaves the record as it is."""
    await _get_visible_quest(db, quest_id)
    flow = await _run_transition(db, quest_id, actor, lambda f: f.complete(body.current_index))
    return FlowStateResponse.model_validate(flow.state())
