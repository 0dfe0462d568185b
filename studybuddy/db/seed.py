"""
Demo data for local development.

Seeds a small CBC activity catalog and, optionally, demo learners with varied
skill proficiencies and a few weeks of activity reports.
"""

from __future__ import annotations

import random
from dataclasses import dataclass
from datetime import timedelta

from loguru import logger
from sqlalchemy import func, select
from sqlalchemy.orm import Session

from studybuddy.db.models import ActivityReport, LearnerSkill, StudyActivity
from studybuddy.db.models.learning import utcnow

# skill_code -> (title, sample question)
CBC_SKILLS: dict[str, tuple[str, str]] = {
    "math.arithmetic.addition": ("Addition", "Wanjiru has 7 mangoes and buys 5 more. How many now?"),
    "math.arithmetic.subtraction": ("Subtraction", "A matatu carries 14 people and 6 alight. How many remain?"),
    "math.geometry.shapes": ("Shapes", "How many sides does a triangle have?"),
    "science.living.animals": ("Animals", "Which of these animals is a herbivore: lion, giraffe, hyena?"),
    "science.physical.matter": ("States of Matter", "What happens to water when it is boiled?"),
    "science.earth.water-cycle": ("The Water Cycle", "What do we call water falling from clouds?"),
    "english.reading.comprehension": ("Reading Comprehension", "Read the passage and name the main character."),
    "english.writing.composition": ("Composition", "Write three sentences about market day."),
    "english.grammar.punctuation": ("Punctuation", "Which mark ends a question?"),
    "kiswahili.kusoma": ("Kusoma", "Soma hadithi fupi na ujibu maswali."),
    "kiswahili.kuandika": ("Kuandika", "Andika sentensi tatu kuhusu familia yako."),
    "kiswahili.sarufi": ("Sarufi", "Taja wingi wa neno 'mtoto'."),
    "social.kenya.geography": ("Kenya Geography", "Name the highest mountain in Kenya."),
    "social.kenya.history": ("Kenya History", "In which year did Kenya gain independence?"),
    "social.economics": ("Basic Economics", "Why do people trade goods at the market?"),
}

# (label, difficulty, estimated_time_sec)
DIFFICULTY_LEVELS = [
    ("Warm-up", 0.3, 120),
    ("Practice", 0.5, 180),
    ("Challenge", 0.75, 300),
]


@dataclass
class SeedSummary:
    activities: int = 0
    learners: int = 0
    skills: int = 0
    reports: int = 0


def seed_catalog(session: Session, locale: str = "ke") -> int:
    """Insert the demo catalog if no activities exist. Returns rows added."""
    existing = session.scalar(select(func.count(StudyActivity.id))) or 0
    if existing:
        logger.info("Catalog already has {} activities, skipping", existing)
        return 0

    added = 0
    for skill_code, (title, question) in CBC_SKILLS.items():
        for label, difficulty, seconds in DIFFICULTY_LEVELS:
            session.add(
                StudyActivity(
                    skill_code=skill_code,
                    title=title,
                    description=f"{label}: {title.lower()} practice",
                    activity_type="quiz",
                    content={"question": question},
                    difficulty=difficulty,
                    estimated_time_sec=seconds,
                    locale=locale,
                )
            )
            added += 1
    session.flush()
    logger.info("Seeded {} catalog activities", added)
    return added


def seed_demo_learners(
    session: Session,
    learners: int = 8,
    rng: random.Random | None = None,
) -> SeedSummary:
    """Create demo learners with skills in 0.3-0.8 and 5-19 reports each."""
    rng = rng or random.Random()
    activities = list(session.scalars(select(StudyActivity).limit(20)))
    summary = SeedSummary()
    now = utcnow()

    for index in range(learners):
        user_id = f"demo-learner-{index + 1}"
        skill_codes = rng.sample(sorted(CBC_SKILLS), k=rng.randint(5, 12))
        for skill_code in skill_codes:
            existing = session.scalars(
                select(LearnerSkill).where(
                    LearnerSkill.user_id == user_id, LearnerSkill.skill_code == skill_code
                )
            ).first()
            proficiency = rng.uniform(0.3, 0.8)
            practiced = now - timedelta(days=rng.randrange(30))
            if existing is None:
                session.add(
                    LearnerSkill(
                        user_id=user_id,
                        skill_code=skill_code,
                        proficiency=proficiency,
                        last_practiced_at=practiced,
                    )
                )
            else:
                existing.proficiency = proficiency
                existing.last_practiced_at = practiced
            summary.skills += 1

        for _ in range(rng.randint(5, 19) if activities else 0):
            activity = rng.choice(activities)
            session.add(
                ActivityReport(
                    user_id=user_id,
                    activity_id=activity.id,
                    score=rng.uniform(0.5, 0.9),
                    time_spent_sec=rng.randint(60, 360),
                    metadata_={"source": "demo"},
                    completed_at=now - timedelta(days=rng.randrange(45)),
                )
            )
            summary.reports += 1
        summary.learners += 1

    session.flush()
    logger.info(
        "Seeded {} demo learners ({} skills, {} reports)",
        summary.learners,
        summary.skills,
        summary.reports,
    )
    return summary
