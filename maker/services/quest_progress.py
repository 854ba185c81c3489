"""Quest progress engine — a participant's linear traversal of a quest.

A ``QuestFlow`` pairs the navigation cursor (which page is on screen) with the
persisted ``UserQuest`` record (status and the percent watermark). The cursor
moves on every transition; the record only ever moves forward:

- ``open``: lazily creates the record (in_progress, 0). Idempotent per pair.
- ``advance``: cursor + 1, raises the watermark if the new percent is higher.
- ``retreat``: cursor - 1, never touches the record.
- ``complete``: on the last page only; completed, 100, completed_at. Idempotent.

Store failures are logged and reported through ``saved=False``; the cursor
still moves and the next transition retries.
"""

from collections.abc import AsyncIterator, Iterator
from contextlib import asynccontextmanager, contextmanager
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Protocol
from uuid import UUID, uuid4

from sqlalchemy import func, select, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.exc import NoResultFound, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from maker.logging_config import get_logger
from maker.models import (
    ProgressStatusEnum,
    Quest,
    QuestPage,
    User,
    UserQuest,
    UserSkill,
)
from maker.services.quest_state import (
    COMPLETE,
    QuestTransitionError,
    in_progress_percent,
    last_index,
    percent_for,
    resume_index,
    validate_progress,
)
from maker.services.role_service import compute_level

logger = get_logger(__name__)

COMPLETED = ProgressStatusEnum.completed.value
IN_PROGRESS = ProgressStatusEnum.in_progress.value
NOT_STARTED = ProgressStatusEnum.not_started.value


class FlowBusy(Exception):
    """A transition for the same user and quest is already in flight."""


_in_flight: set[tuple[UUID, UUID]] = set()


@contextmanager
def flow_guard(user_id: UUID, quest_id: UUID) -> Iterator[None]:
    """Busy flag for one (user, quest) pair while a round trip is in flight."""
    key = (user_id, quest_id)
    if key in _in_flight:
        raise FlowBusy(f"A progress update for quest {quest_id} is already in flight")
    _in_flight.add(key)
    try:
        yield
    finally:
        _in_flight.discard(key)


@dataclass(frozen=True)
class ProgressRecord:
    """Plain copy of a user_quests row.

    The flow holds these rather than ORM instances: a rollback expires every
    instance in the session, and an expired attribute cannot be loaded
    lazily under asyncio.
    """

    id: UUID
    user_id: UUID
    quest_id: UUID
    status: str
    progress: int
    started_at: datetime | None = None
    completed_at: datetime | None = None

    @classmethod
    def of(cls, row: UserQuest) -> "ProgressRecord":
        return cls(
            id=row.id,
            user_id=row.user_id,
            quest_id=row.quest_id,
            status=row.status,
            progress=row.progress,
            started_at=row.started_at,
            completed_at=row.completed_at,
        )


# ---------------------------------------------------------------------------
# Store
# ---------------------------------------------------------------------------


class UserQuestStore(Protocol):
    async def get(self, user_id: UUID, quest_id: UUID) -> ProgressRecord | None: ...

    async def create_if_absent(self, user_id: UUID, quest_id: UUID) -> ProgressRecord: ...

    async def raise_progress(self, user_quest_id: UUID, progress: int) -> ProgressRecord | None: ...

    async def complete(self, user_quest_id: UUID) -> ProgressRecord: ...


class SqlUserQuestStore:
    """UserQuestStore over the request's AsyncSession.

    Every write is a single statement whose WHERE clause carries the guard
    (unique-pair insert-or-ignore, progress-only-upward, complete-once), so
    concurrent tabs cannot regress the record. Rows are copied out before
    the transaction ends.
    """

    def __init__(self, db: AsyncSession):
        self.db = db

    async def _select_one(self, *criteria) -> UserQuest | None:
        result = await self.db.execute(
            select(UserQuest)
            .where(*criteria)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def get(self, user_id: UUID, quest_id: UUID) -> ProgressRecord | None:
        row = await self._select_one(UserQuest.user_id == user_id, UserQuest.quest_id == quest_id)
        return ProgressRecord.of(row) if row is not None else None

    async def create_if_absent(self, user_id: UUID, quest_id: UUID) -> ProgressRecord:
        try:
            await self.db.execute(
                pg_insert(UserQuest)
                .values(
                    id=uuid4(),
                    user_id=user_id,
                    quest_id=quest_id,
                    status=IN_PROGRESS,
                    progress=0,
                    started_at=datetime.now(timezone.utc),
                )
                .on_conflict_do_nothing(constraint="uq_user_quest")
            )
            record = await self.get(user_id, quest_id)
            await self.db.commit()
        except SQLAlchemyError:
            await self.db.rollback()
            raise
        if record is None:
            raise SQLAlchemyError("user_quests row missing after insert")
        return record

    async def raise_progress(self, user_quest_id: UUID, progress: int) -> ProgressRecord | None:
        """Set progress if strictly higher and not completed. None when unchanged."""
        try:
            result = await self.db.execute(
                update(UserQuest)
                .where(
                    UserQuest.id == user_quest_id,
                    UserQuest.progress < progress,
                    UserQuest.status != COMPLETED,
                )
                .values(progress=progress, status=IN_PROGRESS)
                .returning(UserQuest)
                .execution_options(synchronize_session=False, populate_existing=True)
            )
            row = result.scalar_one_or_none()
            raised = ProgressRecord.of(row) if row is not None else None
            await self.db.commit()
        except SQLAlchemyError:
            await self.db.rollback()
            raise
        return raised

    async def complete(self, user_quest_id: UUID) -> ProgressRecord:
        """Mark completed once; the first completion awards the quest's XP."""
        try:
            result = await self.db.execute(
                update(UserQuest)
                .where(UserQuest.id == user_quest_id, UserQuest.status != COMPLETED)
                .values(
                    status=COMPLETED,
                    progress=COMPLETE,
                    completed_at=datetime.now(timezone.utc),
                )
                .returning(UserQuest)
                .execution_options(synchronize_session=False, populate_existing=True)
            )
            row = result.scalar_one_or_none()
            if row is None:
                row = await self._select_one(UserQuest.id == user_quest_id)
                if row is None:
                    raise NoResultFound(f"user_quests row {user_quest_id} not found")
                completed = ProgressRecord.of(row)
            else:
                completed = ProgressRecord.of(row)
                await self._award_xp(completed)
            await self.db.commit()
        except SQLAlchemyError:
            await self.db.rollback()
            raise
        return completed

    async def _award_xp(self, record: ProgressRecord) -> None:
        quest = (
            await self.db.execute(
                select(Quest.xp_reward, Quest.skill_id).where(Quest.id == record.quest_id)
            )
        ).one_or_none()
        reward = quest.xp_reward if quest is not None else 0
        if reward <= 0:
            return
        total_xp = (
            await self.db.execute(
                update(User)
                .where(User.id == record.user_id)
                .values(xp=User.xp + reward, updated_at=datetime.now(timezone.utc))
                .returning(User.xp)
            )
        ).scalar_one()
        await self.db.execute(
            update(User)
            .where(User.id == record.user_id)
            .values(level=compute_level(total_xp))
        )
        if quest.skill_id is not None:
            await self._credit_skill(record.user_id, quest.skill_id, reward)
        logger.info(
            "quest_xp_awarded",
            user_id=str(record.user_id),
            quest_id=str(record.quest_id),
            skill_id=str(quest.skill_id) if quest.skill_id else None,
            xp=reward,
            total_xp=total_xp,
        )

    async def _credit_skill(self, user_id: UUID, skill_id: UUID, reward: int) -> None:
        skill_xp = (
            await self.db.execute(
                update(UserSkill)
                .where(UserSkill.user_id == user_id, UserSkill.skill_id == skill_id)
                .values(xp=UserSkill.xp + reward)
                .returning(UserSkill.xp)
            )
        ).scalar_one_or_none()
        if skill_xp is None:
            self.db.add(
                UserSkill(
                    user_id=user_id,
                    skill_id=skill_id,
                    xp=reward,
                    level=compute_level(reward),
                    created_at=datetime.now(timezone.utc),
                )
            )
            await self.db.flush()
            return
        await self.db.execute(
            update(UserSkill)
            .where(UserSkill.user_id == user_id, UserSkill.skill_id == skill_id)
            .values(level=compute_level(skill_xp))
        )


# ---------------------------------------------------------------------------
# Flow
# ---------------------------------------------------------------------------


@dataclass
class FlowState:
    cursor: int
    total_pages: int
    percent: int
    progress: int
    status: str
    saved: bool
    is_last_page: bool


class QuestFlow:
    def __init__(
        self,
        store: UserQuestStore,
        quest_id: UUID,
        user_id: UUID,
        total_pages: int,
        user_quest: ProgressRecord | None = None,
        cursor: int = 0,
    ):
        self.store = store
        self.quest_id = quest_id
        self.user_id = user_id
        self.total_pages = total_pages
        self.user_quest = user_quest
        self.cursor = cursor
        self.saving = False
        self.saved = True

    @property
    def last_index(self) -> int:
        return last_index(self.total_pages)

    @property
    def status(self) -> str:
        if self.user_quest is None:
            return NOT_STARTED
        return self.user_quest.status

    @property
    def progress(self) -> int:
        if self.user_quest is None:
            return 0
        return self.user_quest.progress

    def state(self) -> FlowState:
        return FlowState(
            cursor=self.cursor,
            total_pages=self.total_pages,
            percent=percent_for(self.cursor, self.total_pages),
            progress=self.progress,
            status=self.status,
            saved=self.saved,
            is_last_page=self.cursor == self.last_index,
        )

    def _check_index(self, current_index: int) -> None:
        if not 0 <= current_index <= self.last_index:
            raise QuestTransitionError(
                f"Page index {current_index} is outside 0..{self.last_index}"
            )

    @asynccontextmanager
    async def _persisting(self, action: str) -> AsyncIterator[None]:
        self.saving = True
        try:
            yield
            self.saved = True
        except SQLAlchemyError as e:
            self.saved = False
            logger.warning(
                "progress_persist_failed",
                action=action,
                user_id=str(self.user_id),
                quest_id=str(self.quest_id),
                error=str(e),
            )
        finally:
            self.saving = False

    async def open(self) -> ProgressRecord | None:
        """Ensure the progress record exists. A second call is a plain read."""
        if self.user_quest is not None:
            return self.user_quest
        validate_progress(NOT_STARTED, IN_PROGRESS)
        async with self._persisting("open"):
            self.user_quest = await self.store.create_if_absent(self.user_id, self.quest_id)
            logger.info(
                "quest_flow_opened",
                user_id=str(self.user_id),
                quest_id=str(self.quest_id),
                user_quest_id=str(self.user_quest.id),
            )
        return self.user_quest

    async def advance(self, current_index: int) -> FlowState:
        self._check_index(current_index)
        self.cursor = min(current_index + 1, self.last_index)

        if self.status == COMPLETED:
            return self.state()
        if self.user_quest is None and await self.open() is None:
            return self.state()

        target = in_progress_percent(self.cursor, self.total_pages)
        if self.status == NOT_STARTED:
            validate_progress(NOT_STARTED, IN_PROGRESS)
        elif target <= self.user_quest.progress:
            return self.state()

        async with self._persisting("advance"):
            raised = await self.store.raise_progress(self.user_quest.id, target)
            if raised is None:
                # Another session moved the record first; adopt what it stored.
                raised = await self.store.get(self.user_id, self.quest_id)
            self.user_quest = raised
        return self.state()

    def retreat(self, current_index: int) -> FlowState:
        self._check_index(current_index)
        self.cursor = max(current_index - 1, 0)
        return self.state()

    async def complete(self, current_index: int) -> FlowState:
        self._check_index(current_index)
        if current_index != self.last_index:
            raise QuestTransitionError("A quest can only be finished from its last page")
        self.cursor = current_index

        if self.status == COMPLETED:
            return self.state()
        if self.user_quest is None and await self.open() is None:
            return self.state()
        validate_progress(self.status, COMPLETED)

        async with self._persisting("complete"):
            self.user_quest = await self.store.complete(self.user_quest.id)
            logger.info(
                "quest_completed",
                user_id=str(self.user_id),
                quest_id=str(self.quest_id),
            )
        return self.state()


async def count_pages(db: AsyncSession, quest_id: UUID) -> int:
    result = await db.execute(
        select(func.count()).select_from(QuestPage).where(QuestPage.quest_id == quest_id)
    )
    return result.scalar() or 0


async def load_flow(db: AsyncSession, quest_id: UUID, user_id: UUID) -> QuestFlow:
    """Rebuild a flow for one request, resuming the cursor at the watermark page."""
    store = SqlUserQuestStore(db)
    total_pages = await count_pages(db, quest_id)
    user_quest = await store.get(user_id, quest_id)
    cursor = 0
    if user_quest is not None:
        cursor = resume_index(user_quest.progress, user_quest.status, total_pages)
    return QuestFlow(store, quest_id, user_id, total_pages, user_quest, cursor)
