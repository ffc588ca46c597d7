from flask import Blueprint, current_app, jsonify, request

from quizroom.errors import QuizSessionError
from quizroom.services import sessions, store
from quizroom.services.records import leaderboard_payload
from quizroom import validation


quizzes = Blueprint('quizzes', __name__)


@quizzes.errorhandler(QuizSessionError)
def handle_quiz_error(exc):
    current_app.logger.info(f"[api-error] path={request.path} kind={exc.kind} message={exc.message}")
    return jsonify({'error': exc.message}), exc.status_code


@quizzes.route('', methods=['GET'])
def list_quizzes():
    return jsonify([quiz.summary() for quiz in store.list_quizzes()])


@quizzes.route('', methods=['POST'])
def create_quiz():
    definition = validation.quiz_definition(request.get_json(silent=True))
    quiz = store.create_quiz(**definition)
    return jsonify(quiz.to_dict(include_answers=True)), 201


@quizzes.route('/<int:quiz_id>', methods=['GET'])
def get_quiz(quiz_id):
    quiz = store.get_quiz(quiz_id)
    return jsonify(quiz.to_dict(include_answers=True))


@quizzes.route('/join/<string:join_code>', methods=['GET'])
def get_quiz_by_join_code(join_code):
    # Participants only get the summary; questions arrive one at a time over the socket
    quiz = store.get_quiz_by_join_code(join_code)
    return jsonify(quiz.summary())


@quizzes.route('/sessions/<int:session_id>/results', methods=['GET'])
def get_session_results(session_id):
    results = sessions.session_results(session_id)
    payload = results.session.to_dict()
    payload['quiz'] = results.quiz.summary()
    payload['leaderboard'] = leaderboard_payload(results.leaderboard)
    payload['participants'] = [p.to_dict(include_answers=True) for p in results.session.participants]
    return jsonify(payload)
