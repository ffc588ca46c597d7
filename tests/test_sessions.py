import pytest

from quizroom import db
from quizroom.errors import (
    DuplicateAnswer,
    InvalidTransition,
    ParticipantNotFound,
    QuestionNotFound,
    QuizNotFound,
)
from quizroom.models import QuizSession
from quizroom.services import sessions, store

from conftest import multi_select, single_choice


def _correct(question):
    return [o.id for o in question.options if o.is_correct]


def _wrong(question):
    return [o.id for o in question.options if not o.is_correct][:1]


@pytest.fixture()
def one_question_quiz(flask_app):
    return store.create_quiz(title='One', questions=[single_choice(time_limit=30)], join_code='ONE111')


def _active(quiz_view, names=('Ann',)):
    joined = [sessions.join(quiz_view.join_code, n) for n in names]
    session_id = joined[0].session.id
    sessions.start_quiz(session_id)
    return session_id, [j.participant_id for j in joined]


def test_join_creates_waiting_session_and_lists_participants(quiz):
    first = sessions.join('abc123', 'Ann')
    second = sessions.join('ABC123', 'Bob')
    assert first.session.id == second.session.id
    assert second.session.status == 'waiting'
    assert [p.name for p in second.session.participants] == ['Ann', 'Bob']
    assert second.participant_id != first.participant_id


def test_join_unknown_code(flask_app):
    with pytest.raises(QuizNotFound):
        sessions.join('ZZZZZZ', 'Ann')


def test_host_connect_shares_the_participants_session(quiz):
    host = sessions.host_connect('ABC123')
    joined = sessions.join('ABC123', 'Ann')
    assert host.session.id == joined.session.id
    assert host.quiz.id == quiz.id


def test_start_quiz_requires_waiting(quiz):
    session_id = sessions.join(quiz.join_code, 'Ann').session.id
    started = sessions.start_quiz(session_id)
    assert started.countdown == 3
    assert store.read_session(session_id).status == 'active'
    with pytest.raises(InvalidTransition):
        sessions.start_quiz(session_id)


def test_start_quiz_without_questions(flask_app):
    empty = store.create_quiz(title='Empty', questions=[], join_code='EMPTY1')
    session_id = sessions.join(empty.join_code, 'Ann').session.id
    with pytest.raises(InvalidTransition):
        sessions.start_quiz(session_id)
    assert store.read_session(session_id).status == 'waiting'


def test_start_question_validates_state_and_range(quiz):
    session_id = sessions.join(quiz.join_code, 'Ann').session.id
    with pytest.raises(InvalidTransition):
        sessions.start_question(session_id, 0)
    sessions.start_quiz(session_id)
    with pytest.raises(QuestionNotFound):
        sessions.start_question(session_id, 2)
    with pytest.raises(QuestionNotFound):
        sessions.start_question(session_id, -1)
    started = sessions.start_question(session_id, 0)
    assert started.timeout_after == 31
    assert started.question.id == quiz.questions[0].id
    assert 'isCorrect' not in str(started.question.to_dict())


def test_question_index_never_rewinds(quiz):
    session_id, _ = _active(quiz)
    sessions.start_question(session_id, 0)
    sessions.start_question(session_id, 1)
    with pytest.raises(InvalidTransition):
        sessions.start_question(session_id, 0)
    assert store.read_session(session_id).current_question_index == 1


def test_scenario_a_fast_correct_answer(one_question_quiz):
    session_id, (pid,) = _active(one_question_quiz)
    question = one_question_quiz.questions[0]
    sessions.start_question(session_id, 0)
    result = sessions.submit_answer(session_id, pid, question.id, _correct(question), 0)
    assert result.answer.is_correct is True
    assert result.answer.points == 100
    assert [e.to_dict() for e in result.leaderboard] == [{'participantId': pid, 'name': 'Ann', 'score': 100}]


def test_scenario_b_wrong_answer_at_the_limit(one_question_quiz):
    session_id, (pid,) = _active(one_question_quiz)
    question = one_question_quiz.questions[0]
    sessions.start_question(session_id, 0)
    result = sessions.submit_answer(session_id, pid, question.id, _wrong(question), 30)
    assert result.answer.is_correct is False
    assert result.answer.points == 0


def test_scenario_c_multi_select(flask_app):
    quiz = store.create_quiz(title='Multi', questions=[multi_select()], join_code='MULTI1')
    session_id, (ann, bob) = _active(quiz, names=('Ann', 'Bob'))
    question = quiz.questions[0]
    o1, o2, o3 = [o.id for o in question.options]
    sessions.start_question(session_id, 0)
    assert sessions.submit_answer(session_id, ann, question.id, [o1, o2], 1).answer.is_correct is False
    assert sessions.submit_answer(session_id, bob, question.id, [o1, o3], 1).answer.is_correct is True


def test_scenario_f_second_submission_is_rejected(one_question_quiz):
    session_id, (pid,) = _active(one_question_quiz)
    question = one_question_quiz.questions[0]
    sessions.start_question(session_id, 0)
    first = sessions.submit_answer(session_id, pid, question.id, _correct(question), 15)
    with pytest.raises(DuplicateAnswer):
        sessions.submit_answer(session_id, pid, question.id, _correct(question), 0)
    participant = store.read_session(session_id).participant(pid)
    assert participant.score == first.answer.points == 75
    assert len(participant.answers) == 1


def test_time_to_answer_is_clamped(one_question_quiz):
    session_id, (pid,) = _active(one_question_quiz)
    question = one_question_quiz.questions[0]
    sessions.start_question(session_id, 0)
    result = sessions.submit_answer(session_id, pid, question.id, _correct(question), 500)
    assert result.answer.time_to_answer == 30
    assert result.answer.points == 50


def test_late_answer_for_previous_question_is_not_scored(quiz):
    session_id, (pid,) = _active(quiz)
    q1 = quiz.questions[0]
    sessions.start_question(session_id, 0)
    sessions.start_question(session_id, 1)
    with pytest.raises(InvalidTransition):
        sessions.submit_answer(session_id, pid, q1.id, _correct(q1), 1)
    assert store.read_session(session_id).participant(pid).score == 0


def test_answers_need_an_open_question(quiz):
    joined = sessions.join(quiz.join_code, 'Ann')
    q1 = quiz.questions[0]
    with pytest.raises(InvalidTransition):
        sessions.submit_answer(joined.session.id, joined.participant_id, q1.id, _correct(q1), 1)
    sessions.start_quiz(joined.session.id)
    with pytest.raises(InvalidTransition):
        sessions.submit_answer(joined.session.id, joined.participant_id, q1.id, _correct(q1), 1)


def test_answer_after_deadline_is_rejected(one_question_quiz):
    session_id, (pid,) = _active(one_question_quiz)
    question = one_question_quiz.questions[0]
    sessions.start_question(session_id, 0)
    db.session.get(QuizSession, session_id).question_deadline = 0.0
    db.session.commit()
    with pytest.raises(InvalidTransition):
        sessions.submit_answer(session_id, pid, question.id, _correct(question), 1)


def test_unknown_participant_cannot_answer(one_question_quiz):
    session_id, _ = _active(one_question_quiz)
    question = one_question_quiz.questions[0]
    sessions.start_question(session_id, 0)
    with pytest.raises(ParticipantNotFound):
        sessions.submit_answer(session_id, 9999, question.id, _correct(question), 1)


def test_late_joiner_can_answer_the_current_question(quiz):
    session_id, _ = _active(quiz)
    sessions.start_question(session_id, 0)
    sessions.start_question(session_id, 1)
    late = sessions.join(quiz.join_code, 'Late')
    assert late.session.id == session_id
    assert late.session.status == 'active'
    q2 = quiz.questions[1]
    result = sessions.submit_answer(session_id, late.participant_id, q2.id, _correct(q2), 0)
    assert result.answer.points == 100


def test_timeout_reveals_and_reads_fresh_scores(one_question_quiz):
    session_id, (ann, bob) = _active(one_question_quiz, names=('Ann', 'Bob'))
    question = one_question_quiz.questions[0]
    sessions.start_question(session_id, 0)
    sessions.submit_answer(session_id, bob, question.id, _correct(question), 0)
    ended = sessions.question_timeout(session_id, 0)
    assert ended.correct_option_ids == _correct(question)
    assert ended.is_last is True
    assert [e.participant_id for e in ended.leaderboard] == [bob, ann]
    # Timeout does not advance or end anything
    snapshot = store.read_session(session_id)
    assert snapshot.status == 'active'
    assert snapshot.current_question_index == 0


def test_scenario_e_stale_timeout_is_a_no_op(quiz):
    session_id, _ = _active(quiz)
    sessions.start_question(session_id, 0)
    sessions.start_question(session_id, 1)
    assert sessions.question_timeout(session_id, 0) is None
    assert sessions.question_timeout(session_id, 1) is not None


def test_timeout_after_quiz_ended_is_a_no_op(quiz):
    session_id, _ = _active(quiz)
    sessions.start_question(session_id, 0)
    sessions.end_quiz(session_id)
    assert sessions.question_timeout(session_id, 0) is None


def test_end_quiz_requires_active_and_ranks(quiz):
    joined = sessions.join(quiz.join_code, 'Ann')
    with pytest.raises(InvalidTransition):
        sessions.end_quiz(joined.session.id)
    sessions.start_quiz(joined.session.id)
    done = sessions.end_quiz(joined.session.id)
    assert [e.name for e in done.leaderboard] == ['Ann']
    assert store.read_session(joined.session.id).status == 'completed'
    with pytest.raises(InvalidTransition):
        sessions.end_quiz(joined.session.id)


def test_broadcast_leaderboard_is_capped_but_results_are_not(quiz):
    names = [f'P{i}' for i in range(7)]
    session_id, pids = _active(quiz, names=names)
    question = quiz.questions[0]
    sessions.start_question(session_id, 0)
    for i, pid in enumerate(pids):
        sessions.submit_answer(session_id, pid, question.id, _correct(question), i)
    ended = sessions.question_timeout(session_id, 0)
    assert len(ended.leaderboard) == 5
    scores = [e.score for e in ended.leaderboard]
    assert scores == sorted(scores, reverse=True)
    results = sessions.session_results(session_id)
    assert len(results.leaderboard) == 7


def test_answer_overtaken_by_next_question_is_not_scored(quiz, monkeypatch):
    session_id, (pid,) = _active(quiz)
    q1 = quiz.questions[0]
    sessions.start_question(session_id, 0)
    real_record = store.record_answer

    def host_advances_first(*args, **kwargs):
        store.set_current_question(session_id, 1)
        return real_record(*args, **kwargs)

    monkeypatch.setattr(store, 'record_answer', host_advances_first)
    with pytest.raises(InvalidTransition):
        sessions.submit_answer(session_id, pid, q1.id, _correct(q1), 0)
    participant = store.read_session(session_id).participant(pid)
    assert participant.score == 0
    assert participant.answers == ()


def test_answer_overtaken_by_end_quiz_is_not_scored(one_question_quiz, monkeypatch):
    session_id, (pid,) = _active(one_question_quiz)
    question = one_question_quiz.questions[0]
    sessions.start_question(session_id, 0)
    real_record = store.record_answer

    def host_ends_first(*args, **kwargs):
        store.set_status(session_id, 'completed')
        return real_record(*args, **kwargs)

    monkeypatch.setattr(store, 'record_answer', host_ends_first)
    with pytest.raises(InvalidTransition):
        sessions.submit_answer(session_id, pid, question.id, _correct(question), 0)
    assert store.read_session(session_id).participant(pid).score == 0


def test_first_question_starts_index_zero_once(quiz):
    session_id, _ = _active(quiz)
    started = sessions.first_question(session_id)
    assert started.index == 0
    assert store.read_session(session_id).current_question_index == 0
    assert sessions.first_question(session_id) is None


def test_first_question_after_end_is_a_no_op(quiz):
    session_id, _ = _active(quiz)
    sessions.end_quiz(session_id)
    assert sessions.first_question(session_id) is None
