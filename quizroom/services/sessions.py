"""Quiz session lifecycle: waiting -> active -> completed.

These are stateless functions over the session store. The store is the
source of truth and enforces the transition order with conditional updates,
so nothing here assumes its earlier read is still current when it writes.
"""

import time
from dataclasses import dataclass
from typing import List, Optional, Sequence

from flask import current_app

from quizroom.errors import (
    DuplicateAnswer,
    InvalidTransition,
    ParticipantNotFound,
    QuestionNotFound,
)
from quizroom.models import STATUS_ACTIVE, STATUS_COMPLETED
from . import scoring, store
from .records import (
    AnswerRecord,
    LeaderboardEntry,
    QuestionView,
    QuizView,
    SessionSnapshot,
)


@dataclass(frozen=True)
class JoinResult:
    quiz: QuizView
    session: SessionSnapshot
    participant_id: int


@dataclass(frozen=True)
class HostView:
    quiz: QuizView
    session: SessionSnapshot


@dataclass(frozen=True)
class QuizStarted:
    quiz: QuizView
    session_id: int
    countdown: int


@dataclass(frozen=True)
class QuestionStarted:
    quiz: QuizView
    session_id: int
    index: int
    question: QuestionView
    timeout_after: int


@dataclass(frozen=True)
class AnswerResult:
    quiz: QuizView
    answer: AnswerRecord
    leaderboard: List[LeaderboardEntry]


@dataclass(frozen=True)
class QuestionEnded:
    quiz: QuizView
    session_id: int
    index: int
    correct_option_ids: Sequence[int]
    leaderboard: List[LeaderboardEntry]
    is_last: bool


@dataclass(frozen=True)
class QuizCompleted:
    quiz: QuizView
    session_id: int
    leaderboard: List[LeaderboardEntry]


@dataclass(frozen=True)
class SessionResults:
    quiz: QuizView
    session: SessionSnapshot
    leaderboard: List[LeaderboardEntry]


def _leaderboard_size() -> int:
    return int(current_app.config.get('LEADERBOARD_SIZE', 5))


def join(join_code: str, participant_name: str) -> JoinResult:
    """Add a participant to the quiz's open session, creating it if needed.

    Joining an active session is allowed; the newcomer can only answer the
    question in progress and those that follow.
    """
    quiz = store.get_quiz_by_join_code(join_code)
    session = store.find_or_create_open_session(quiz.id)
    participant_id = store.append_participant(session.id, participant_name)
    current_app.logger.info(f"[join] quiz={quiz.id} session={session.id} participant={participant_id}")
    return JoinResult(quiz=quiz, session=store.read_session(session.id), participant_id=participant_id)


def host_connect(join_code: str) -> HostView:
    quiz = store.get_quiz_by_join_code(join_code)
    session = store.find_or_create_open_session(quiz.id)
    return HostView(quiz=quiz, session=session)


def start_quiz(session_id: int) -> QuizStarted:
    session = store.read_session(session_id)
    quiz = store.get_quiz(session.quiz_id)
    if not quiz.questions:
        raise InvalidTransition('Quiz has no questions')
    store.set_status(session_id, STATUS_ACTIVE)
    countdown = int(current_app.config.get('QUIZ_START_COUNTDOWN_SEC', 3))
    current_app.logger.info(f"[quiz-start] session={session_id} questions={quiz.question_count} countdown={countdown}s")
    return QuizStarted(quiz=quiz, session_id=session_id, countdown=countdown)


def start_question(session_id: int, index: int) -> QuestionStarted:
    session = store.read_session(session_id)
    if session.status != STATUS_ACTIVE:
        raise InvalidTransition(f'Session is {session.status}, expected {STATUS_ACTIVE}')
    quiz = store.get_quiz(session.quiz_id)
    if not 0 <= index < quiz.question_count:
        raise QuestionNotFound()
    question = quiz.questions[index]
    timeout_after = question.time_limit + int(current_app.config.get('QUESTION_GRACE_SEC', 1))
    store.set_current_question(session_id, index, deadline=time.time() + timeout_after)
    current_app.logger.info(f"[question-start] session={session_id} index={index} question={question.id}")
    return QuestionStarted(
        quiz=quiz, session_id=session_id, index=index, question=question, timeout_after=timeout_after,
    )


def first_question(session_id: int) -> Optional[QuestionStarted]:
    """Start question 0 after the countdown; None when the host got there first."""
    session = store.read_session(session_id)
    if session.status == STATUS_ACTIVE and session.current_question_index == -1:
        try:
            return start_question(session_id, 0)
        except InvalidTransition:
            session = store.read_session(session_id)
    current_app.logger.info(
        f"[first-question-stale] session={session_id} "
        f"status={session.status} current={session.current_question_index}"
    )
    return None


def submit_answer(session_id: int, participant_id: int, question_id: int,
                  selected_option_ids: Sequence[int], time_to_answer: float) -> AnswerResult:
    session = store.read_session(session_id)
    if session.status != STATUS_ACTIVE:
        raise InvalidTransition('Quiz is not accepting answers')
    if session.current_question_index < 0:
        raise InvalidTransition('No question in progress')
    quiz = store.get_quiz(session.quiz_id)
    question = quiz.questions[session.current_question_index]
    if question.id != question_id:
        raise InvalidTransition('Question is no longer accepting answers')
    if session.question_deadline is not None and time.time() > session.question_deadline:
        raise InvalidTransition('Time is up for this question')
    participant = session.participant(participant_id)
    if participant is None:
        raise ParticipantNotFound()
    if participant.answer_for(question_id) is not None:
        raise DuplicateAnswer()

    elapsed = scoring.clamp_time_to_answer(time_to_answer, question.time_limit)
    correct = scoring.is_correct(question, selected_option_ids)
    answer = AnswerRecord(
        question_id=question_id,
        selected_option_ids=tuple(selected_option_ids),
        time_to_answer=elapsed,
        is_correct=correct,
        points=scoring.points(correct, elapsed, question.time_limit),
    )
    # The unique (participant, question) constraint rejects a concurrent twin;
    # the index guard rejects an answer overtaken by the next question
    store.record_answer(session_id, participant_id, answer, question_index=session.current_question_index)
    current_app.logger.info(
        f"[answer] session={session_id} participant={participant_id} question={question_id} "
        f"correct={correct} points={answer.points}"
    )
    fresh = store.read_session(session_id)
    return AnswerResult(quiz=quiz, answer=answer, leaderboard=scoring.leaderboard(fresh.participants, _leaderboard_size()))


def question_timeout(session_id: int, index: int) -> Optional[QuestionEnded]:
    """Close the answer window for ``index``; None when the timer is stale.

    The session is re-read here so every answer recorded before the timer
    fired shows up in the leaderboard.
    """
    session = store.read_session(session_id)
    if session.status != STATUS_ACTIVE or session.current_question_index != index:
        current_app.logger.info(
            f"[timeout-stale] session={session_id} index={index} "
            f"status={session.status} current={session.current_question_index}"
        )
        return None
    quiz = store.get_quiz(session.quiz_id)
    question = quiz.questions[index]
    return QuestionEnded(
        quiz=quiz,
        session_id=session_id,
        index=index,
        correct_option_ids=list(question.correct_option_ids),
        leaderboard=scoring.leaderboard(session.participants, _leaderboard_size()),
        is_last=index == quiz.question_count - 1,
    )


def end_quiz(session_id: int) -> QuizCompleted:
    store.set_status(session_id, STATUS_COMPLETED)
    session = store.read_session(session_id)
    quiz = store.get_quiz(session.quiz_id)
    current_app.logger.info(f"[quiz-end] session={session_id} participants={len(session.participants)}")
    return QuizCompleted(
        quiz=quiz, session_id=session_id, leaderboard=scoring.leaderboard(session.participants, _leaderboard_size()),
    )


def session_results(session_id: int) -> SessionResults:
    session = store.read_session(session_id)
    quiz = store.get_quiz(session.quiz_id)
    return SessionResults(quiz=quiz, session=session, leaderboard=scoring.leaderboard(session.participants, limit=None))
