"""
Activity selection for the adaptive study loop.

Next activity, in strict fallback order ("always show something"):
1. A difficulty-matched activity for the weakest of the learner's three
   lowest-proficiency skills that has any match.
2. Any activity sharing the skill of the learner's most recent report.
3. A random activity from the catalog.

Starter (hydration) activity:
1. The easiest activity of the learner's weakest skill.
2. A random easy activity.

Ties are broken by a uniform random pick from the injected random source.
"""

from __future__ import annotations

import random
from dataclasses import dataclass
from typing import Any, Protocol, Sequence

from loguru import logger

from studybuddy.learning.gap_classifier import to_percent
from studybuddy.learning.proficiency import DEFAULT_PROFICIENCY

WEAK_SKILL_WINDOW = 3
BAND_BELOW = 0.1
BAND_ABOVE = 0.2
MATCH_LIMIT = 5
CATALOG_LIMIT = 20
EASY_DIFFICULTY = 0.5
EASY_LIMIT = 10


class SkillLike(Protocol):
    skill_code: str
    proficiency: float | None


class ActivityCatalog(Protocol):
    """Read side the selector needs; LearningRepository implements it."""

    def weakest_skills(self, user_id: str, limit: int = 3) -> Sequence[SkillLike]: ...

    def activities_for_skill(
        self,
        skill_code: str,
        min_difficulty: float | None = None,
        max_difficulty: float | None = None,
        limit: int = 5,
    ) -> Sequence[Any]: ...

    def last_completed_skill(self, user_id: str) -> str | None: ...

    def catalog_sample(self, limit: int = 20) -> Sequence[Any]: ...

    def easiest_for_skill(self, skill_code: str) -> Any | None: ...

    def easy_activities(self, max_difficulty: float = 0.5, limit: int = 10) -> Sequence[Any]: ...


@dataclass
class Recommendation:
    """A selected activity and the learner-facing reason for it."""

    activity: Any
    reason: str
    strategy: str  # matched, recent_skill, random, weak_skill_starter, easy_starter


class ActivitySelector:
    """Pick next and starter activities from a catalog."""

    def __init__(self, catalog: ActivityCatalog, rng: random.Random | None = None):
        self.catalog = catalog
        self.rng = rng or random.Random()

    def _pick(self, candidates: Sequence[Any]) -> Any:
        return candidates[self.rng.randrange(len(candidates))]

    def matched_for_skills(self, skills: Sequence[SkillLike]) -> Recommendation | None:
        """First skill (weakest first) with an activity in its difficulty band."""
        for skill in skills[:WEAK_SKILL_WINDOW]:
            proficiency = DEFAULT_PROFICIENCY if skill.proficiency is None else skill.proficiency
            matches = self.catalog.activities_for_skill(
                skill.skill_code,
                min_difficulty=proficiency - BAND_BELOW,
                max_difficulty=proficiency + BAND_ABOVE,
                limit=MATCH_LIMIT,
            )
            if matches:
                return Recommendation(
                    activity=self._pick(matches),
                    reason=(
                        f"Focus on {skill.skill_code} ({to_percent(proficiency)}% mastery). "
                        "This activity matches your level."
                    ),
                    strategy="matched",
                )
        return None

    def select_next(self, user_id: str) -> Recommendation | None:
        """Recommend the next activity, or None if the catalog is empty."""
        skills = self.catalog.weakest_skills(user_id, limit=WEAK_SKILL_WINDOW)
        recommendation = self.matched_for_skills(skills)

        if recommendation is None:
            last_skill = self.catalog.last_completed_skill(user_id)
            if last_skill:
                candidates = self.catalog.activities_for_skill(last_skill, limit=MATCH_LIMIT)
                if candidates:
                    recommendation = Recommendation(
                        activity=self._pick(candidates),
                        reason=f"Continue practicing {last_skill}",
                        strategy="recent_skill",
                    )

        if recommendation is None:
            candidates = self.catalog.catalog_sample(limit=CATALOG_LIMIT)
            if candidates:
                recommendation = Recommendation(
                    activity=self._pick(candidates),
                    reason="Try something new!",
                    strategy="random",
                )

        if recommendation is None:
            logger.warning("No activities available for {}", user_id)
        else:
            logger.debug(
                "Next activity for {}: {} ({})",
                user_id,
                getattr(recommendation.activity, "id", None),
                recommendation.strategy,
            )
        return recommendation

    def select_starter(self, user_id: str) -> Recommendation | None:
        """Pick a quick starter activity for a new session."""
        skills = self.catalog.weakest_skills(user_id, limit=WEAK_SKILL_WINDOW)
        if skills:
            weakest = skills[0]
            activity = self.catalog.easiest_for_skill(weakest.skill_code)
            if activity is not None:
                return Recommendation(
                    activity=activity,
                    reason=f"Practice for your weak skill: {weakest.skill_code}",
                    strategy="weak_skill_starter",
                )

        candidates = self.catalog.easy_activities(max_difficulty=EASY_DIFFICULTY, limit=EASY_LIMIT)
        if candidates:
            return Recommendation(
                activity=self._pick(candidates),
                reason="Quick win to get started!",
                strategy="easy_starter",
            )
        return None
