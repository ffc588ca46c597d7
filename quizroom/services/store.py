"""Session store: atomic operations over quizzes and live sessions.

Every mutation is a single statement or a single transaction so concurrent
participant connections never lose each other's updates. Reads return frozen
records from :mod:`quizroom.services.records`, never live ORM rows.
"""

import functools
import random
import string
from typing import Iterable, List, Optional

from flask import current_app
from sqlalchemy import exists, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from quizroom import db
from quizroom.errors import (
    DuplicateAnswer,
    InvalidTransition,
    ParticipantNotFound,
    QuizNotFound,
    QuizSessionError,
    SessionNotFound,
    StoreUnavailable,
)
from quizroom.models import (
    STATUS_ACTIVE,
    STATUS_COMPLETED,
    STATUS_WAITING,
    Answer,
    Option,
    Participant,
    Question,
    Quiz,
    QuizSession,
    utcnow,
)
from .records import (
    AnswerRecord,
    OptionView,
    ParticipantSnapshot,
    QuestionView,
    QuizView,
    SessionSnapshot,
)

JOIN_CODE_ALPHABET = string.ascii_uppercase + string.digits
JOIN_CODE_ATTEMPTS = 5

# Status each target status must be reached from
_PREVIOUS_STATUS = {
    STATUS_ACTIVE: STATUS_WAITING,
    STATUS_COMPLETED: STATUS_ACTIVE,
}


def store_operation(func):
    """Roll back and surface database failures as ``StoreUnavailable``."""

    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        try:
            return func(*args, **kwargs)
        except QuizSessionError:
            raise
        except SQLAlchemyError as exc:
            db.session.rollback()
            current_app.logger.error(f"[store-error] op={func.__name__} error={exc!r}")
            raise StoreUnavailable() from exc

    return wrapper


# ---- Quiz collaborator ----

def _quiz_view(quiz: Quiz) -> QuizView:
    return QuizView(
        id=quiz.id,
        title=quiz.title,
        description=quiz.description,
        join_code=quiz.join_code,
        questions=tuple(
            QuestionView(
                id=q.id,
                type=q.type,
                text=q.text,
                time_limit=q.time_limit,
                point_value=q.point_value,
                options=tuple(OptionView(id=o.id, text=o.text, is_correct=bool(o.is_correct)) for o in q.options),
            )
            for q in quiz.questions
        ),
    )


def generate_join_code(length: int = 6) -> str:
    """Generate a unique, short join code."""
    while True:
        code = ''.join(random.choices(JOIN_CODE_ALPHABET, k=length))
        if not Quiz.query.filter_by(join_code=code).first():
            return code


@store_operation
def create_quiz(title: str, questions: Iterable[dict], description: Optional[str] = None,
                join_code: Optional[str] = None) -> QuizView:
    """Persist a quiz.

    ``questions`` are dicts with ``type``, ``text``, ``time_limit``, optional
    ``point_value`` and ``options`` (dicts with ``text`` and ``is_correct``).
    """
    questions = list(questions)
    generated = join_code is None
    for attempt in range(JOIN_CODE_ATTEMPTS if generated else 1):
        if generated:
            code = generate_join_code(int(current_app.config.get('JOIN_CODE_LENGTH', 6)))
        else:
            code = join_code.upper()
        quiz = _build_quiz(title, description, code, questions)
        db.session.add(quiz)
        try:
            db.session.commit()
            return _quiz_view(quiz)
        except IntegrityError as exc:
            db.session.rollback()
            if not generated:
                raise InvalidTransition(f'Join code {code} is already in use') from exc
            current_app.logger.info(f"[join-code-clash] code={code} attempt={attempt + 1}")
    raise InvalidTransition('Could not allocate a unique join code')


def _build_quiz(title: str, description: Optional[str], join_code: str, questions: list) -> Quiz:
    quiz = Quiz(title=title, description=description, join_code=join_code)
    for q_pos, q in enumerate(questions):
        question = Question(
            position=q_pos,
            type=q['type'],
            text=q['text'],
            time_limit=int(q.get('time_limit', 30)),
            point_value=int(q.get('point_value', 100)),
        )
        for o_pos, o in enumerate(q.get('options', [])):
            question.options.append(Option(position=o_pos, text=o['text'], is_correct=bool(o.get('is_correct'))))
        quiz.questions.append(question)
    return quiz


@store_operation
def list_quizzes() -> List[QuizView]:
    return [_quiz_view(q) for q in Quiz.query.order_by(Quiz.id).all()]


@store_operation
def get_quiz(quiz_id: int) -> QuizView:
    quiz = db.session.get(Quiz, quiz_id)
    if not quiz:
        raise QuizNotFound()
    return _quiz_view(quiz)


@store_operation
def get_quiz_by_join_code(join_code: str) -> QuizView:
    quiz = Quiz.query.filter_by(join_code=(join_code or '').strip().upper()).first()
    if not quiz:
        raise QuizNotFound()
    return _quiz_view(quiz)


# ---- Sessions ----

def _answer_record(answer: Answer) -> AnswerRecord:
    return AnswerRecord(
        question_id=answer.question_id,
        selected_option_ids=tuple(answer.selected_option_ids or ()),
        time_to_answer=answer.time_to_answer,
        is_correct=bool(answer.is_correct),
        points=answer.points,
    )


def _snapshot(session: QuizSession) -> SessionSnapshot:
    participants = (
        Participant.query.filter_by(session_id=session.id)
        .order_by(Participant.id)
        .populate_existing()
        .all()
    )
    answers_by_participant = {}
    if participants:
        answers = (
            Answer.query.filter(Answer.participant_id.in_([p.id for p in participants]))
            .order_by(Answer.id)
            .populate_existing()
            .all()
        )
        for a in answers:
            answers_by_participant.setdefault(a.participant_id, []).append(_answer_record(a))
    return SessionSnapshot(
        id=session.id,
        quiz_id=session.quiz_id,
        status=session.status,
        current_question_index=session.current_question_index,
        question_deadline=session.question_deadline,
        start_time=session.start_time,
        end_time=session.end_time,
        participants=tuple(
            ParticipantSnapshot(
                id=p.id,
                name=p.name,
                score=p.score,
                joined_at=p.joined_at,
                answers=tuple(answers_by_participant.get(p.id, ())),
            )
            for p in participants
        ),
    )


def _load_session(session_id: int) -> QuizSession:
    session = db.session.get(QuizSession, session_id, populate_existing=True)
    if not session:
        raise SessionNotFound()
    return session


def _find_open_session(quiz_id: int) -> Optional[QuizSession]:
    return (
        QuizSession.query.filter(QuizSession.quiz_id == quiz_id, QuizSession.status != STATUS_COMPLETED)
        .populate_existing()
        .first()
    )


@store_operation
def find_or_create_open_session(quiz_id: int) -> SessionSnapshot:
    """Return the quiz's non-completed session, creating a waiting one if needed.

    The partial unique index on open sessions makes the insert the arbiter: a
    creator that loses the race gets an IntegrityError and reads the winner.
    """
    session = _find_open_session(quiz_id)
    if session:
        return _snapshot(session)
    if not db.session.get(Quiz, quiz_id):
        raise QuizNotFound()
    session = QuizSession(quiz_id=quiz_id, status=STATUS_WAITING, current_question_index=-1)
    db.session.add(session)
    try:
        db.session.commit()
        current_app.logger.info(f"[session-create] quiz={quiz_id} session={session.id}")
    except IntegrityError:
        db.session.rollback()
        session = _find_open_session(quiz_id)
        if not session:
            raise
        current_app.logger.info(f"[session-race] quiz={quiz_id} reusing session={session.id}")
    return _snapshot(session)


@store_operation
def append_participant(session_id: int, name: str) -> int:
    _load_session(session_id)
    participant = Participant(session_id=session_id, name=name, score=0)
    db.session.add(participant)
    db.session.commit()
    return participant.id


@store_operation
def record_answer(session_id: int, participant_id: int, answer: AnswerRecord,
                  question_index: Optional[int] = None) -> None:
    """Append the answer and add its points to the participant in one transaction.

    With ``question_index`` the increment only matches while the session is
    active on that question, so an answer racing the host's next
    ``start-question`` or ``end-quiz`` is rejected instead of scored.
    """
    stmt = update(Participant).where(Participant.id == participant_id, Participant.session_id == session_id)
    if question_index is not None:
        stmt = stmt.where(exists().where(
            QuizSession.id == session_id,
            QuizSession.status == STATUS_ACTIVE,
            QuizSession.current_question_index == question_index,
        ))
    result = db.session.execute(
        stmt.values(score=Participant.score + answer.points).execution_options(synchronize_session=False)
    )
    if result.rowcount == 0:
        db.session.rollback()
        current = _load_session(session_id)
        if question_index is not None and (
            current.status != STATUS_ACTIVE or current.current_question_index != question_index
        ):
            raise InvalidTransition('Question is no longer accepting answers')
        raise ParticipantNotFound()
    db.session.add(Answer(
        participant_id=participant_id,
        question_id=answer.question_id,
        selected_option_ids=list(answer.selected_option_ids),
        time_to_answer=answer.time_to_answer,
        is_correct=answer.is_correct,
        points=answer.points,
    ))
    try:
        db.session.commit()
    except IntegrityError as exc:
        db.session.rollback()
        raise DuplicateAnswer() from exc


@store_operation
def set_status(session_id: int, status: str, timestamp=None) -> None:
    """Move the session one step along waiting -> active -> completed.

    The update only matches when the session is in the preceding status, so
    two concurrent callers cannot both perform the same transition.
    """
    previous = _PREVIOUS_STATUS.get(status)
    if previous is None:
        raise InvalidTransition(f'Cannot move a session to {status}')
    timestamp = timestamp or utcnow()
    values = {'status': status, 'updated_at': utcnow()}
    if status == STATUS_ACTIVE:
        values['start_time'] = timestamp
    else:
        values['end_time'] = timestamp
        values['question_deadline'] = None
    result = db.session.execute(
        update(QuizSession)
        .where(QuizSession.id == session_id, QuizSession.status == previous)
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount == 0:
        db.session.rollback()
        current = _load_session(session_id)
        raise InvalidTransition(f'Session is {current.status}, expected {previous}')
    db.session.commit()


@store_operation
def set_current_question(session_id: int, index: int, deadline: Optional[float] = None) -> None:
    """Advance the current question; only forward moves on an active session match."""
    result = db.session.execute(
        update(QuizSession)
        .where(
            QuizSession.id == session_id,
            QuizSession.status == STATUS_ACTIVE,
            QuizSession.current_question_index < index,
        )
        .values(current_question_index=index, question_deadline=deadline, updated_at=utcnow())
        .execution_options(synchronize_session=False)
    )
    if result.rowcount == 0:
        db.session.rollback()
        current = _load_session(session_id)
        if current.status != STATUS_ACTIVE:
            raise InvalidTransition(f'Session is {current.status}, expected {STATUS_ACTIVE}')
        raise InvalidTransition(
            f'Question {index} cannot follow question {current.current_question_index}'
        )
    db.session.commit()


@store_operation
def read_session(session_id: int) -> SessionSnapshot:
    return _snapshot(_load_session(session_id))
