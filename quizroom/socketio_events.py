from dataclasses import asdict, dataclass
from typing import Callable, Dict, Optional

from flask import current_app, request, session
from flask_socketio import join_room, leave_room

from quizroom import socketio
from quizroom.errors import InvalidTransition, QuizSessionError, ValidationError
from quizroom.services import sessions
from quizroom.services.records import leaderboard_payload
from quizroom.services.scheduler import schedule_intent
from quizroom import validation

NAMESPACE = '/ws'


def room_for(join_code: str) -> str:
    return f"quiz:{join_code.upper()}"


@dataclass
class ConnectionContext:
    """What this connection joined; kept in the transport's per-connection session."""

    join_code: Optional[str] = None
    session_id: Optional[int] = None
    participant_id: Optional[int] = None
    is_host: bool = False

    @classmethod
    def load(cls) -> 'ConnectionContext':
        return cls(**session.get('conn', {}))

    def save(self) -> None:
        session['conn'] = asdict(self)


class RoomBroadcaster:
    """Sole caller of the transport's room and emit primitives."""

    def __init__(self, namespace: str):
        self.namespace = namespace

    def join(self, sid: str, room: str) -> None:
        join_room(room, sid=sid, namespace=self.namespace)

    def leave(self, sid: str, room: str) -> None:
        leave_room(room, sid=sid, namespace=self.namespace)

    def emit_to(self, sid: str, event: str, payload: dict) -> None:
        socketio.emit(event, payload, to=sid, namespace=self.namespace)

    def emit_to_room(self, room: str, event: str, payload: dict) -> None:
        socketio.emit(event, payload, to=room, namespace=self.namespace)


broadcaster = RoomBroadcaster(NAMESPACE)


def _get_sid() -> str:
    return request.sid  # type: ignore[attr-defined]


def _bind_connection(sid: str, ctx: ConnectionContext, join_code: str) -> str:
    room = room_for(join_code)
    broadcaster.join(sid, room)
    ctx.join_code = join_code.upper()
    return room


def _schedule(delay: float, event: str, sid: Optional[str], payload: dict) -> None:
    schedule_intent(current_app._get_current_object(), delay, dispatch, event, sid, payload)


# ---- Intent handlers: (sid, payload) -> None ----

def on_join(sid: str, data: dict) -> None:
    join_code = validation.require_str(data, 'joinCode')
    name = validation.require_str(
        data, 'participantName', max_length=int(current_app.config.get('MAX_NAME_LENGTH', 64))
    )
    ctx = ConnectionContext.load()
    if ctx.join_code:
        raise InvalidTransition('Connection already joined a quiz')
    result = sessions.join(join_code, name)
    room = _bind_connection(sid, ctx, result.quiz.join_code)
    ctx.session_id = result.session.id
    ctx.participant_id = result.participant_id
    ctx.save()

    broadcaster.emit_to(sid, 'joined', {
        'sessionId': result.session.id,
        'participantId': result.participant_id,
        'status': result.session.status,
        'currentQuestionIndex': result.session.current_question_index,
        'quizTitle': result.quiz.title,
    })
    broadcaster.emit_to_room(room, 'participant-list-updated', {
        'participants': [p.to_dict() for p in result.session.participants],
    })


def on_host_connect(sid: str, data: dict) -> None:
    join_code = validation.require_str(data, 'joinCode')
    ctx = ConnectionContext.load()
    if ctx.join_code:
        raise InvalidTransition('Connection already joined a quiz')
    view = sessions.host_connect(join_code)
    _bind_connection(sid, ctx, view.quiz.join_code)
    ctx.session_id = view.session.id
    ctx.is_host = True
    ctx.save()

    broadcaster.emit_to(sid, 'host-connected', {
        'sessionId': view.session.id,
        'status': view.session.status,
        'quiz': view.quiz.to_dict(include_answers=True),
        'participants': [p.to_dict() for p in view.session.participants],
    })


def on_start_quiz(sid: str, data: dict) -> None:
    session_id = validation.require_int(data, 'sessionId')
    started = sessions.start_quiz(session_id)
    broadcaster.emit_to_room(room_for(started.quiz.join_code), 'quiz-started', {
        'sessionId': session_id,
        'countdown': started.countdown,
    })
    # First question follows the countdown; question-started goes back to this host
    _schedule(started.countdown, 'first-question', sid, {'sessionId': session_id})


def _announce_question(sid: Optional[str], started: sessions.QuestionStarted) -> None:
    if sid:
        broadcaster.emit_to(sid, 'question-started', {
            'questionIndex': started.index,
            'timeLimit': started.question.time_limit,
            'questionCount': started.quiz.question_count,
        })
    broadcaster.emit_to_room(room_for(started.quiz.join_code), 'new-question', {
        'questionIndex': started.index,
        'question': started.question.to_dict(),
        'timeLimit': started.question.time_limit,
    })
    _schedule(started.timeout_after, 'question-timeout', None,
              {'sessionId': started.session_id, 'questionIndex': started.index})


def on_start_question(sid: Optional[str], data: dict) -> None:
    session_id = validation.require_int(data, 'sessionId')
    index = validation.require_int(data, 'questionIndex')
    _announce_question(sid, sessions.start_question(session_id, index))


def on_first_question(sid: Optional[str], data: dict) -> None:
    started = sessions.first_question(validation.require_int(data, 'sessionId'))
    if started is not None:
        _announce_question(sid, started)


def on_submit_answer(sid: str, data: dict) -> None:
    session_id = validation.require_int(data, 'sessionId')
    if data.get('participantId') is not None:
        participant_id = validation.require_int(data, 'participantId')
    else:
        participant_id = ConnectionContext.load().participant_id
        if participant_id is None:
            raise ValidationError('participantId is required')
    result = sessions.submit_answer(
        session_id,
        participant_id,
        validation.require_int(data, 'questionId'),
        validation.option_ids(data, 'answer'),
        validation.require_number(data, 'timeToAnswer'),
    )
    broadcaster.emit_to_room(room_for(result.quiz.join_code), 'leaderboard-updated', {
        'leaderboard': leaderboard_payload(result.leaderboard),
    })


def on_end_quiz(sid: Optional[str], data: dict) -> None:
    session_id = validation.require_int(data, 'sessionId')
    completed = sessions.end_quiz(session_id)
    broadcaster.emit_to_room(room_for(completed.quiz.join_code), 'quiz-completed', {
        'sessionId': session_id,
        'leaderboard': leaderboard_payload(completed.leaderboard),
    })


def on_question_timeout(sid: Optional[str], data: dict) -> None:
    session_id = validation.require_int(data, 'sessionId')
    index = validation.require_int(data, 'questionIndex')
    ended = sessions.question_timeout(session_id, index)
    if ended is None:
        return
    room = room_for(ended.quiz.join_code)
    broadcaster.emit_to_room(room, 'question-ended', {
        'questionIndex': index,
        'correctOptionIds': list(ended.correct_option_ids),
    })
    broadcaster.emit_to_room(room, 'leaderboard-updated', {
        'leaderboard': leaderboard_payload(ended.leaderboard),
    })
    if ended.is_last and current_app.config.get('AUTO_END_AFTER_LAST_QUESTION'):
        on_end_quiz(sid, {'sessionId': session_id})


INTENTS: Dict[str, Callable[[Optional[str], dict], None]] = {
    'join': on_join,
    'host-connect': on_host_connect,
    'start-quiz': on_start_quiz,
    'start-question': on_start_question,
    'submit-answer': on_submit_answer,
    'end-quiz': on_end_quiz,
    # Timer-only; never registered as socket events
    'first-question': on_first_question,
    'question-timeout': on_question_timeout,
}


def dispatch(event: str, sid: Optional[str], data) -> None:
    """Single entry point for client intents and timer messages.

    Failures are reported to the originating connection only. Timer messages
    have no connection, so their failures are logged and that cycle skipped.
    """
    handler = INTENTS[event]
    try:
        handler(sid, validation.require_mapping(data))
    except QuizSessionError as exc:
        current_app.logger.info(f"[intent-rejected] event={event} sid={sid} kind={exc.kind} message={exc.message}")
        if sid:
            broadcaster.emit_to(sid, 'error', {'message': exc.message})
    except Exception:
        current_app.logger.exception(f"[intent-failed] event={event} sid={sid}")
        if sid:
            broadcaster.emit_to(sid, 'error', {'message': f'Failed to handle {event}'})


def handle_connect(auth=None):
    broadcaster.emit_to(_get_sid(), 'connected', {'message': f'Connected to {NAMESPACE}'})


def handle_disconnect(*args):
    # Leaving the room is all a disconnect does; scores and answers stay
    ctx = ConnectionContext.load()
    if not ctx.join_code:
        return
    sid = _get_sid()
    broadcaster.leave(sid, room_for(ctx.join_code))
    current_app.logger.info(
        f"[disconnect] sid={sid} room={room_for(ctx.join_code)} participant={ctx.participant_id} host={ctx.is_host}"
    )


def _socket_handler(event: str):
    def handler(data=None):
        dispatch(event, _get_sid(), data)

    handler.__name__ = f"handle_{event.replace('-', '_')}"
    return handler


CLIENT_EVENTS = ('join', 'host-connect', 'submit-answer', 'start-quiz', 'start-question', 'end-quiz')


def register_socketio_handlers() -> None:
    """Register Socket.IO event handlers on the '/ws' namespace."""
    socketio.on_event('connect', handle_connect, namespace=NAMESPACE)
    socketio.on_event('disconnect', handle_disconnect, namespace=NAMESPACE)
    for event in CLIENT_EVENTS:
        socketio.on_event(event, _socket_handler(event), namespace=NAMESPACE)
