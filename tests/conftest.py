import os

import pytest

from quizroom import create_app, db, socketio
from quizroom.services import store


class TestConfig:
    TESTING = True
    SECRET_KEY = os.environ.get('SECRET_KEY', 'test-secret')
    SQLALCHEMY_DATABASE_URI = 'sqlite://'
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    CORS_ORIGINS = '*'
    LOG_LEVEL = 'DEBUG'
    QUIZ_START_COUNTDOWN_SEC = 3
    QUESTION_GRACE_SEC = 1
    LEADERBOARD_SIZE = 5
    JOIN_CODE_LENGTH = 6
    MAX_NAME_LENGTH = 64
    AUTO_END_AFTER_LAST_QUESTION = False
    TIMER_HEARTBEAT_SEC = 0


def single_choice(text='2 + 2 = ?', time_limit=30, correct='4', wrong='5'):
    return {
        'type': 'single_choice',
        'text': text,
        'time_limit': time_limit,
        'options': [
            {'text': correct, 'is_correct': True},
            {'text': wrong, 'is_correct': False},
        ],
    }


def multi_select(text='Pick the primes', time_limit=30):
    return {
        'type': 'multi_select',
        'text': text,
        'time_limit': time_limit,
        'options': [
            {'text': '2', 'is_correct': True},
            {'text': '4', 'is_correct': False},
            {'text': '3', 'is_correct': True},
        ],
    }


@pytest.fixture()
def flask_app():
    application = create_app(TestConfig)
    with application.app_context():
        # Ensure models are imported so tables are created
        import quizroom.models  # noqa: F401
        db.create_all()
        yield application
        db.session.remove()
        db.drop_all()


@pytest.fixture()
def client(flask_app):
    return flask_app.test_client()


@pytest.fixture()
def quiz(flask_app):
    """Two single-choice questions, 30 seconds each."""
    return store.create_quiz(
        title='Arithmetic',
        questions=[single_choice(), single_choice(text='3 + 3 = ?', correct='6', wrong='7')],
        join_code='ABC123',
    )


@pytest.fixture()
def scheduled(monkeypatch):
    """Capture timer messages instead of running background tasks."""
    calls = []

    def fake_schedule(app, delay, handler, event, sid, payload):
        calls.append({'delay': delay, 'handler': handler, 'event': event, 'sid': sid, 'payload': payload})

    monkeypatch.setattr('quizroom.socketio_events.schedule_intent', fake_schedule)
    return calls


@pytest.fixture()
def sio_factory(flask_app):
    clients = []

    def make():
        test_client = socketio.test_client(
            flask_app,
            flask_test_client=flask_app.test_client(),
            namespace='/ws',
        )
        # Flush the connect greeting
        test_client.get_received('/ws')
        clients.append(test_client)
        return test_client

    yield make
    for c in clients:
        if c.is_connected('/ws'):
            c.disconnect(namespace='/ws')


def events(sio_client, name=None):
    received = sio_client.get_received('/ws')
    if name is None:
        return received
    return [pkt['args'][0] if pkt['args'] else None for pkt in received if pkt['name'] == name]
