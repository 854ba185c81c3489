"""Admin endpoints — user accounts, workshops, role assignments and workshop quests."""

from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from maker.auth import Actor, hash_password, require_admin
from maker.database import get_db
from maker.errors import EntityMissing
from maker.logging_config import get_logger
from maker.models import Quest, User, Workshop, WorkshopQuest, WorkshopUser
from maker.schemas import (
    AdminUserCreate,
    MessageResponse,
    UserResponse,
    WorkshopAssignmentCreate,
    WorkshopAssignmentResponse,
    WorkshopAssignmentUpdate,
    WorkshopCreate,
    WorkshopQuestCreate,
    WorkshopQuestResponse,
    WorkshopResponse,
    WorkshopUpdate,
)

logger = get_logger(__name__)
router = APIRouter(prefix="/api/admin", tags=["admin"])

USER_LIST_ROUTE = "/admin/users"
WORKSHOP_LIST_ROUTE = "/admin/workshops"


async def _get_workshop(db: AsyncSession, workshop_id: UUID) -> Workshop:
    result = await db.execute(select(Workshop).where(Workshop.id == workshop_id))
    workshop = result.scalar_one_or_none()
    if workshop is None:
        raise EntityMissing(WORKSHOP_LIST_ROUTE, "Workshop not found")
    return workshop


async def _get_assignment(db: AsyncSession, workshop_id: UUID, user_id: UUID) -> WorkshopUser:
    result = await db.execute(
        select(WorkshopUser).where(
            WorkshopUser.workshop_id == workshop_id,
            WorkshopUser.user_id == user_id,
        )
    )
    assignment = result.scalar_one_or_none()
    if assignment is None:
        raise HTTPException(status_code=404, detail="Assignment not found")
    return assignment


# ---------------------------------------------------------------------------
# Users
# ---------------------------------------------------------------------------


@router.get("/users", response_model=list[UserResponse])
async def list_users(
    actor: Actor = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    result = await db.execute(select(User).order_by(User.created_at.desc()))
    return result.scalars().all()


@router.post("/users", response_model=UserResponse, status_code=201)
async def create_user(
    body: AdminUserCreate,
    actor: Actor = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    """Create an account on someone's behalf; the admin's own session is unaffected."""
    user = User(
        email=body.email.lower(),
        display_name=body.display_name,
        bio=body.bio,
        password_hash=hash_password(body.password),
    )
    db.add(user)
    try:
        await db.commit()
    except IntegrityError:
        await db.rollback()
        raise HTTPException(status_code=409, detail="Email already registered")
    await db.refresh(user)

    logger.info("user_created_by_admin", user_id=str(user.id), admin_id=str(actor.user.id))
    return user


@router.delete("/users/{user_id}", response_model=MessageResponse)
async def delete_user(
    user_id: UUID,
    actor: Actor = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    """Delete an account with its assignments and progress. Admins cannot delete themselves."""
    if user_id == actor.user.id:
        raise HTTPException(status_code=400, detail="Cannot delete your own account")

    user = (await db.execute(select(User).where(User.id == user_id))).scalar_one_or_none()
    if user is None:
        raise EntityMissing(USER_LIST_ROUTE, "User not found")

    await db.delete(user)
    await db.commit()
    logger.info("user_deleted_by_admin", user_id=str(user_id), admin_id=str(actor.user.id))
    return MessageResponse(message="User deleted")


# ---------------------------------------------------------------------------
# Workshops
# ---------------------------------------------------------------------------


@router.get("/workshops", response_model=list[WorkshopResponse])
async def list_workshops(
    actor: Actor = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    result = await db.execute(
        select(Workshop).order_by(Workshop.scheduled_date.desc().nulls_last())
    )
    return result.scalars().all()


@router.post("/workshops", response_model=WorkshopResponse, status_code=201)
async def create_workshop(
    body: WorkshopCreate,
    actor: Actor = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    workshop = Workshop(**body.model_dump())
    db.add(workshop)
    await db.commit()
    await db.refresh(workshop)
    logger.info("workshop_created", workshop_id=str(workshop.id), name=workshop.name)
    return workshop


@router.patch("/workshops/{workshop_id}", response_model=WorkshopResponse)
async def update_workshop(
    workshop_id: UUID,
    body: WorkshopUpdate,
    actor: Actor = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    workshop = await _get_workshop(db, workshop_id)
    for field, value in body.model_dump(exclude_unset=True).items():
        setattr(workshop, field, value)
    await db.commit()
    await db.refresh(workshop)
    return workshop


@router.delete("/workshops/{workshop_id}", response_model=MessageResponse)
async def delete_workshop(
    workshop_id: UUID,
    actor: Actor = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    """Delete a workshop; its role assignments go with it."""
    workshop = await _get_workshop(db, workshop_id)
    await db.delete(workshop)
    await db.commit()
    logger.info("workshop_deleted", workshop_id=str(workshop_id))
    return MessageResponse(message="Workshop deleted")


# ---------------------------------------------------------------------------
# Workshop role assignments
# ---------------------------------------------------------------------------


@router.get("/workshops/{workshop_id}/users", response_model=list[WorkshopAssignmentResponse])
async def list_assignments(
    workshop_id: UUID,
    actor: Actor = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    await _get_workshop(db, workshop_id)
    result = await db.execute(
        select(WorkshopUser)
        .where(WorkshopUser.workshop_id == workshop_id)
        .order_by(WorkshopUser.created_at)
    )
    return result.scalars().all()


@router.post(
    "/workshops/{workshop_id}/users",
    response_model=WorkshopAssignmentResponse,
    status_code=201,
)
async def assign_user(
    workshop_id: UUID,
    body: WorkshopAssignmentCreate,
    actor: Actor = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    """Grant a user a role in a workshop.

    There is no existence check before the insert: the (workshop, user)
    unique constraint rejects a second assignment and that surfaces as 409.
    """
    assignment = WorkshopUser(
        workshop_id=workshop_id,
        user_id=body.user_id,
        role=body.role.value,
    )
    db.add(assignment)
    try:
        await db.commit()
    except IntegrityError as e:
        await db.rollback()
        logger.info(
            "workshop_assignment_rejected",
            workshop_id=str(workshop_id),
            user_id=str(body.user_id),
            error=str(e.orig),
        )
        raise HTTPException(
            status_code=409,
            detail="User is already assigned to this workshop, or the workshop or user does not exist",
        )
    await db.refresh(assignment)

    logger.info(
        "workshop_user_assigned",
        workshop_id=str(workshop_id),
        user_id=str(body.user_id),
        role=body.role.value,
    )
    return assignment


@router.patch(
    "/workshops/{workshop_id}/users/{user_id}",
    response_model=WorkshopAssignmentResponse,
)
async def change_role(
    workshop_id: UUID,
    user_id: UUID,
    body: WorkshopAssignmentUpdate,
    actor: Actor = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    assignment = await _get_assignment(db, workshop_id, user_id)
    assignment.role = body.role.value
    await db.commit()
    await db.refresh(assignment)
    logger.info(
        "workshop_role_changed",
        workshop_id=str(workshop_id),
        user_id=str(user_id),
        role=assignment.role,
    )
    return assignment


@router.delete("/workshops/{workshop_id}/users/{user_id}", response_model=MessageResponse)
async def unassign_user(
    workshop_id: UUID,
    user_id: UUID,
    actor: Actor = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    assignment = await _get_assignment(db, workshop_id, user_id)
    await db.delete(assignment)
    await db.commit()
    logger.info("workshop_user_unassigned", workshop_id=str(workshop_id), user_id=str(user_id))
    return MessageResponse(message="Assignment removed")


# ---------------------------------------------------------------------------
# Workshop quests
# ---------------------------------------------------------------------------


@router.get("/workshop-quests", response_model=list[WorkshopQuestResponse])
async def list_workshop_quests(
    workshop_id: UUID | None = Query(None),
    actor: Actor = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    """Quest links across workshops, newest first, optionally for one workshop."""
    query = select(WorkshopQuest).order_by(WorkshopQuest.created_at.desc())
    if workshop_id is not None:
        query = query.where(WorkshopQuest.workshop_id == workshop_id)
    result = await db.execute(query)
    return result.scalars().all()


@router.post(
    "/workshops/{workshop_id}/quests",
    response_model=list[WorkshopQuestResponse],
    status_code=201,
)
async def assign_quests(
    workshop_id: UUID,
    body: WorkshopQuestCreate,
    actor: Actor = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    """Link one or more quests to a workshop in a single transaction.

    Like role assignments, a pair that is already linked is rejected by the
    (workshop, quest) unique constraint and nothing from the batch is kept.
    """
    await _get_workshop(db, workshop_id)
    quest_ids = list(dict.fromkeys(body.quest_ids))
    found = set(
        (await db.execute(select(Quest.id).where(Quest.id.in_(quest_ids)))).scalars().all()
    )
    missing = [str(q) for q in quest_ids if q not in found]
    if missing:
        raise HTTPException(status_code=404, detail=f"Quests not found: {missing}")

    links = [WorkshopQuest(workshop_id=workshop_id, quest_id=q) for q in quest_ids]
    db.add_all(links)
    try:
        await db.commit()
    except IntegrityError as e:
        await db.rollback()
        logger.info(
            "workshop_quests_rejected",
            workshop_id=str(workshop_id),
            quests=len(quest_ids),
            error=str(e.orig),
        )
        raise HTTPException(
            status_code=409,
            detail="One or more quests are already assigned to this workshop",
        )
    for link in links:
        await db.refresh(link)

    logger.info("workshop_quests_assigned", workshop_id=str(workshop_id), quests=len(links))
    return links


@router.delete("/workshops/{workshop_id}/quests/{quest_id}", response_model=MessageResponse)
async def unassign_quest(
    workshop_id: UUID,
    quest_id: UUID,
    actor: Actor = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    result = await db.execute(
        select(WorkshopQuest).where(
            WorkshopQuest.workshop_id == workshop_id,
            WorkshopQuest.quest_id == quest_id,
        )
    )
    link = result.scalar_one_or_none()
    if link is None:
        raise HTTPException(status_code=404, detail="Quest is not assigned to this workshop")
    await db.delete(link)
    await db.commit()
    logger.info("workshop_quest_unassigned", workshop_id=str(workshop_id), quest_id=str(quest_id))
    return MessageResponse(message="Quest removed from workshop")
