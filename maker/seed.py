"""Seed script — demo workshop, one user per role, and a few quests.

Usage:
    python -m maker.seed

Every seeded account uses the password ``maker-demo-pass``.
"""

import asyncio
from datetime import date, datetime, timedelta, timezone

from sqlalchemy import select

from maker.auth import hash_password
from maker.database import close_db, get_db_session, init_db
from maker.logging_config import configure_logging, get_logger
from maker.models import (
    LearningResource,
    Quest,
    QuestPage,
    Skill,
    Task,
    User,
    UserQuest,
    Workshop,
    WorkshopQuest,
    WorkshopUser,
)

logger = get_logger(__name__)

NOW = datetime.now(timezone.utc)
DEMO_PASSWORD = "maker-demo-pass"

USERS = [
    {"email": "admin@maker.dev", "display_name": "Ada Admin", "role": "admin"},
    {"email": "facilitator@maker.dev", "display_name": "Fran Facilitator", "role": "facilitator"},
    {"email": "participant@maker.dev", "display_name": "Pat Participant", "role": "participant"},
    {"email": "newcomer@maker.dev", "display_name": "Nico Newcomer", "role": None},
]

QUESTS = [
    {
        "title": "Light The Tower",
        "skill": "Circuits",
        "description": "Wire a battery, a switch and an LED into a lighthouse model.",
        "difficulty": "beginner",
        "xp_reward": 100,
        "status": "published",
        "materials_needed": "LED, 9V battery, toggle switch, jumper wires, cardboard tube",
        "pages": [
            ("Meet the circuit", "<p>A circuit is a loop. Current leaves the battery and must come back.</p>"),
            ("Build the loop", "<p>Connect the battery, switch and LED in series.</p>"),
            ("Light it up", "<p>Mount the LED at the top of the tower and flip the switch.</p>"),
        ],
        "tasks": [
            (1, "Sketch the loop before touching any wires."),
            (2, "Check the LED's long leg faces the battery's positive terminal."),
            (3, "Photograph your tower lit up."),
        ],
        "resources": [
            ("Ohm's law in one page", "https://en.wikipedia.org/wiki/Ohm%27s_law"),
        ],
    },
    {
        "title": "Paper Circuits",
        "skill": "Circuits",
        "description": "Copper tape and coin cells on a greeting card.",
        "difficulty": "intermediate",
        "xp_reward": 150,
        "status": "published",
        "materials_needed": "Copper tape, CR2032 cell, LED stickers, card stock",
        "pages": [
            ("Plan the card", "<p>Draw where the light should shine.</p>"),
            ("Lay the tape", "<p>Keep the tape in one piece around corners.</p>"),
        ],
        "tasks": [(2, "Fold the tape at corners instead of cutting it.")],
        "resources": [],
    },
    {
        "title": "Solder Basics",
        "skill": "Soldering",
        "description": "Work in progress: safe soldering for first timers.",
        "difficulty": "advanced",
        "xp_reward": 200,
        "status": "draft",
        "materials_needed": None,
        "pages": [("Safety first", "<p>Ventilation, eye protection, a stand for the iron.</p>")],
        "tasks": [],
        "resources": [],
    },
]

SKILLS = [
    {"name": "Circuits", "description": "Closing a loop so current can flow.", "icon": "zap"},
    {"name": "Soldering", "description": "Joining components with molten solder.", "icon": "flame"},
]


async def seed():
    configure_logging(level="INFO", json_format=False)
    await init_db()

    async with get_db_session() as db:
        existing = await db.execute(select(User).where(User.email == USERS[0]["email"]))
        if existing.scalar_one_or_none() is not None:
            logger.info("seed_skipped", reason="demo data already present")
            await close_db()
            return

        workshop = Workshop(
            name="Lighthouse Makers",
            description="Intro electronics for the autumn cohort.",
            scheduled_date=date.today() + timedelta(days=7),
        )
        db.add(workshop)
        await db.flush()

        password_hash = hash_password(DEMO_PASSWORD)
        users: dict[str, User] = {}
        for entry in USERS:
            user = User(
                email=entry["email"],
                display_name=entry["display_name"],
                password_hash=password_hash,
            )
            db.add(user)
            await db.flush()
            users[entry["email"]] = user
            if entry["role"] is not None:
                db.add(WorkshopUser(workshop_id=workshop.id, user_id=user.id, role=entry["role"]))

        skills: dict[str, Skill] = {}
        for entry in SKILLS:
            skill = Skill(**entry)
            db.add(skill)
            skills[entry["name"]] = skill
        await db.flush()

        author = users["facilitator@maker.dev"]
        quests: list[Quest] = []
        for entry in QUESTS:
            quest = Quest(
                title=entry["title"],
                description=entry["description"],
                difficulty=entry["difficulty"],
                xp_reward=entry["xp_reward"],
                status=entry["status"],
                materials_needed=entry["materials_needed"],
                skill_id=skills[entry["skill"]].id,
                created_by=author.id,
            )
            db.add(quest)
            await db.flush()
            quests.append(quest)
            if quest.status == "published":
                db.add(WorkshopQuest(workshop_id=workshop.id, quest_id=quest.id))

            for number, (title, content) in enumerate(entry["pages"], start=1):
                db.add(QuestPage(quest_id=quest.id, page_number=number, title=title, content=content))
            for page_number, description in entry["tasks"]:
                db.add(Task(quest_id=quest.id, page_number=page_number, description=description))
            for title, url in entry["resources"]:
                db.add(LearningResource(quest_id=quest.id, title=title, url=url))

        # The participant is part-way through the second quest.
        db.add(
            UserQuest(
                user_id=users["participant@maker.dev"].id,
                quest_id=quests[1].id,
                status="in_progress",
                progress=50,
                started_at=NOW - timedelta(days=1),
            )
        )

        await db.commit()
        logger.info(
            "seed_complete",
            workshop=workshop.name,
            users=len(users),
            quests=len(quests),
            skills=len(skills),
        )

    await close_db()


if __name__ == "__main__":
    asyncio.run(seed())
