from datetime import datetime, timezone

from quizroom import db

QUESTION_TYPES = ('single_choice', 'true_false', 'multi_select')

STATUS_WAITING = 'waiting'
STATUS_ACTIVE = 'active'
STATUS_COMPLETED = 'completed'


def utcnow():
    return datetime.now(timezone.utc)


class Quiz(db.Model):
    __tablename__ = 'quiz'
    id = db.Column(db.Integer, primary_key=True)
    title = db.Column(db.String(200), nullable=False)
    description = db.Column(db.Text, nullable=True)
    join_code = db.Column(db.String(12), unique=True, index=True, nullable=False)
    created_at = db.Column(db.DateTime, default=utcnow, nullable=False)
    questions = db.relationship(
        'Question', back_populates='quiz', order_by='Question.position',
        cascade='all, delete-orphan',
    )


class Question(db.Model):
    __tablename__ = 'question'
    id = db.Column(db.Integer, primary_key=True)
    quiz_id = db.Column(db.Integer, db.ForeignKey('quiz.id'), nullable=False, index=True)
    position = db.Column(db.Integer, nullable=False)
    type = db.Column(db.String(32), nullable=False)  # single_choice, true_false, multi_select
    text = db.Column(db.Text, nullable=False)
    time_limit = db.Column(db.Integer, nullable=False, default=30)
    point_value = db.Column(db.Integer, nullable=False, default=100)
    quiz = db.relationship('Quiz', back_populates='questions')
    options = db.relationship(
        'Option', back_populates='question', order_by='Option.position',
        cascade='all, delete-orphan',
    )


class Option(db.Model):
    __tablename__ = 'question_option'
    id = db.Column(db.Integer, primary_key=True)
    question_id = db.Column(db.Integer, db.ForeignKey('question.id'), nullable=False, index=True)
    position = db.Column(db.Integer, nullable=False)
    text = db.Column(db.Text, nullable=False)
    is_correct = db.Column(db.Boolean, nullable=False, default=False)
    question = db.relationship('Question', back_populates='options')


class QuizSession(db.Model):
    __tablename__ = 'quiz_session'
    id = db.Column(db.Integer, primary_key=True)
    quiz_id = db.Column(db.Integer, db.ForeignKey('quiz.id'), nullable=False, index=True)
    status = db.Column(db.String(16), nullable=False, default=STATUS_WAITING)  # waiting, active, completed
    current_question_index = db.Column(db.Integer, nullable=False, default=-1)
    # Epoch seconds after which the current question stops accepting answers
    question_deadline = db.Column(db.Float, nullable=True)
    start_time = db.Column(db.DateTime, nullable=True)
    end_time = db.Column(db.DateTime, nullable=True)
    created_at = db.Column(db.DateTime, default=utcnow, nullable=False)
    updated_at = db.Column(db.DateTime, default=utcnow, onupdate=utcnow, nullable=False)
    participants = db.relationship('Participant', back_populates='session', order_by='Participant.id')

    __table_args__ = (
        # At most one open (non-completed) session per quiz
        db.Index(
            'uq_quiz_session_open_per_quiz', 'quiz_id', unique=True,
            sqlite_where=db.text("status != 'completed'"),
            postgresql_where=db.text("status != 'completed'"),
        ),
    )


class Participant(db.Model):
    __tablename__ = 'participant'
    id = db.Column(db.Integer, primary_key=True)
    session_id = db.Column(db.Integer, db.ForeignKey('quiz_session.id'), nullable=False, index=True)
    name = db.Column(db.String(64), nullable=False)
    score = db.Column(db.Integer, nullable=False, default=0)
    joined_at = db.Column(db.DateTime, default=utcnow, nullable=False)
    session = db.relationship('QuizSession', back_populates='participants')
    answers = db.relationship('Answer', back_populates='participant', order_by='Answer.id')


class Answer(db.Model):
    __tablename__ = 'answer'
    id = db.Column(db.Integer, primary_key=True)
    participant_id = db.Column(db.Integer, db.ForeignKey('participant.id'), nullable=False, index=True)
    question_id = db.Column(db.Integer, db.ForeignKey('question.id'), nullable=False)
    selected_option_ids = db.Column(db.JSON, nullable=False)
    time_to_answer = db.Column(db.Float, nullable=False)
    is_correct = db.Column(db.Boolean, nullable=False)
    points = db.Column(db.Integer, nullable=False)
    created_at = db.Column(db.DateTime, default=utcnow, nullable=False)
    participant = db.relationship('Participant', back_populates='answers')

    __table_args__ = (
        db.UniqueConstraint('participant_id', 'question_id', name='uq_answer_participant_question'),
    )
