from flask import Flask
from flask_sqlalchemy import SQLAlchemy
from flask_cors import CORS
from flask_migrate import Migrate
from flask_socketio import SocketIO
import click
from config import Config

db = SQLAlchemy()
migrate = Migrate()
socketio = SocketIO(async_mode=None)


def create_app(config_class=Config):
    flask_app = Flask(__name__)
    flask_app.config.from_object(config_class)
    flask_app.logger.setLevel(flask_app.config.get('LOG_LEVEL', 'INFO'))

    origins = flask_app.config.get('CORS_ORIGINS') or '*'
    db.init_app(flask_app)
    migrate.init_app(flask_app, db)
    CORS(flask_app, origins=origins)

    # Initialize Socket.IO after app is created
    socketio.init_app(flask_app, cors_allowed_origins=origins)

    from quizroom.routes import main
    flask_app.register_blueprint(main)

    from quizroom.api.quizzes import quizzes
    flask_app.register_blueprint(quizzes, url_prefix='/api/quizzes')

    # Handlers must be registered after init_app so they bind to the new server
    from quizroom.socketio_events import register_socketio_handlers
    register_socketio_handlers()

    @click.command('db-reset')
    def db_reset_command():
        """Drops, recreates, and seeds the database with a demo quiz."""
        from quizroom.services import store
        with flask_app.app_context():
            db.drop_all()
            db.create_all()
            quiz = store.create_quiz(
                title='Demo quiz',
                description='Seeded by db-reset',
                questions=[
                    {
                        'type': 'single_choice',
                        'text': 'What is the capital of France?',
                        'time_limit': 20,
                        'options': [
                            {'text': 'Paris', 'is_correct': True},
                            {'text': 'Lyon', 'is_correct': False},
                            {'text': 'Marseille', 'is_correct': False},
                        ],
                    },
                    {
                        'type': 'true_false',
                        'text': 'Python lists are immutable.',
                        'time_limit': 15,
                        'options': [
                            {'text': 'True', 'is_correct': False},
                            {'text': 'False', 'is_correct': True},
                        ],
                    },
                    {
                        'type': 'multi_select',
                        'text': 'Which of these are prime numbers?',
                        'time_limit': 30,
                        'options': [
                            {'text': '2', 'is_correct': True},
                            {'text': '4', 'is_correct': False},
                            {'text': '7', 'is_correct': True},
                        ],
                    },
                ],
            )
            print(f'Database has been reset and seeded! Join code: {quiz.join_code}')

    flask_app.cli.add_command(db_reset_command)

    return flask_app
