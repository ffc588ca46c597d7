import math
from typing import Iterable, List, Optional

from .records import LeaderboardEntry, ParticipantSnapshot, QuestionView

BASE_POINTS = 50
SPEED_BONUS_POINTS = 50

SINGLE_ANSWER_TYPES = ('single_choice', 'true_false')
MULTI_ANSWER_TYPES = ('multi_select',)


def is_correct(question: QuestionView, submitted_option_ids: Iterable[int]) -> bool:
    """Check a submission against the question's correct options.

    Single-answer questions need exactly one submitted id matching the single
    correct option. Multi-select needs the submitted set to equal the correct
    set. Unknown question types never score.
    """
    submitted = list(submitted_option_ids)
    correct_ids = question.correct_option_ids
    if question.type in SINGLE_ANSWER_TYPES:
        if len(submitted) != 1 or len(correct_ids) != 1:
            return False
        return submitted[0] == correct_ids[0]
    if question.type in MULTI_ANSWER_TYPES:
        if not correct_ids:
            return False
        return set(submitted) == set(correct_ids)
    return False


def points(correct: bool, time_to_answer: float, time_limit: float) -> int:
    """Base 50 for a correct answer plus up to 50 scaled linearly by speed."""
    if not correct:
        return 0
    if time_limit <= 0:
        bonus = 0.0
    else:
        bonus = min(1.0, max(0.0, (time_limit - time_to_answer) / time_limit))
    # Half rounds up
    return int(math.floor(BASE_POINTS + SPEED_BONUS_POINTS * bonus + 0.5))


def clamp_time_to_answer(time_to_answer: float, time_limit: float) -> float:
    if time_limit <= 0:
        return 0.0
    return min(float(time_limit), max(0.0, float(time_to_answer)))


def leaderboard(participants: Iterable[ParticipantSnapshot], limit: Optional[int] = 5) -> List[LeaderboardEntry]:
    # sorted() is stable, so equal scores keep join order
    ranked = sorted(participants, key=lambda p: p.score, reverse=True)
    if limit is not None:
        ranked = ranked[:limit]
    return [LeaderboardEntry(participant_id=p.id, name=p.name, score=p.score) for p in ranked]
