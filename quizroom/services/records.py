"""Immutable point-in-time records handed out by the session store.

Callers never hold live ORM rows across a store call; anything they need later
is re-read through the store.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Optional, Tuple


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


@dataclass(frozen=True)
class OptionView:
    id: int
    text: str
    is_correct: bool

    def to_dict(self, include_answers: bool = False):
        data = {'id': self.id, 'text': self.text}
        if include_answers:
            data['isCorrect'] = self.is_correct
        return data


@dataclass(frozen=True)
class QuestionView:
    id: int
    type: str
    text: str
    options: Tuple[OptionView, ...]
    time_limit: int
    point_value: int = 100

    @property
    def correct_option_ids(self) -> Tuple[int, ...]:
        return tuple(o.id for o in self.options if o.is_correct)

    def to_dict(self, include_answers: bool = False):
        """Client view; ``isCorrect`` only appears when ``include_answers`` is set."""
        return {
            'id': self.id,
            'type': self.type,
            'text': self.text,
            'options': [o.to_dict(include_answers) for o in self.options],
            'timeLimit': self.time_limit,
            'points': self.point_value,
        }


@dataclass(frozen=True)
class QuizView:
    id: int
    title: str
    join_code: str
    questions: Tuple[QuestionView, ...]
    description: Optional[str] = None

    @property
    def question_count(self) -> int:
        return len(self.questions)

    def summary(self):
        return {
            'id': self.id,
            'title': self.title,
            'description': self.description,
            'joinCode': self.join_code,
            'questionCount': self.question_count,
        }

    def to_dict(self, include_answers: bool = False):
        data = self.summary()
        data['questions'] = [q.to_dict(include_answers) for q in self.questions]
        return data


@dataclass(frozen=True)
class AnswerRecord:
    question_id: int
    selected_option_ids: Tuple[int, ...]
    time_to_answer: float
    is_correct: bool
    points: int

    def to_dict(self):
        return {
            'questionId': self.question_id,
            'selectedOptionIds': list(self.selected_option_ids),
            'timeToAnswer': self.time_to_answer,
            'isCorrect': self.is_correct,
            'points': self.points,
        }


@dataclass(frozen=True)
class ParticipantSnapshot:
    id: int
    name: str
    score: int
    joined_at: Optional[datetime] = None
    answers: Tuple[AnswerRecord, ...] = ()

    def answer_for(self, question_id: int) -> Optional[AnswerRecord]:
        for answer in self.answers:
            if answer.question_id == question_id:
                return answer
        return None

    def to_dict(self, include_answers: bool = False):
        data = {
            'id': self.id,
            'name': self.name,
            'score': self.score,
            'joinedAt': _iso(self.joined_at),
        }
        if include_answers:
            data['answers'] = [a.to_dict() for a in self.answers]
        return data


@dataclass(frozen=True)
class SessionSnapshot:
    id: int
    quiz_id: int
    status: str
    current_question_index: int
    participants: Tuple[ParticipantSnapshot, ...] = ()
    question_deadline: Optional[float] = None
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None

    def participant(self, participant_id: int) -> Optional[ParticipantSnapshot]:
        for p in self.participants:
            if p.id == participant_id:
                return p
        return None

    def to_dict(self):
        return {
            'sessionId': self.id,
            'quizId': self.quiz_id,
            'status': self.status,
            'currentQuestionIndex': self.current_question_index,
            'startTime': _iso(self.start_time),
            'endTime': _iso(self.end_time),
        }


@dataclass(frozen=True)
class LeaderboardEntry:
    participant_id: int
    name: str
    score: int

    def to_dict(self):
        return {'participantId': self.participant_id, 'name': self.name, 'score': self.score}


def leaderboard_payload(entries):
    return [e.to_dict() for e in entries]

