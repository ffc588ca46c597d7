"""Field checks for inbound socket payloads and HTTP bodies."""

from numbers import Number
from typing import List, Optional

from quizroom.errors import ValidationError
from quizroom.models import QUESTION_TYPES


def require_mapping(data) -> dict:
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValidationError('Payload must be an object')
    return data


def require_str(data: dict, key: str, max_length: Optional[int] = None) -> str:
    value = data.get(key)
    if not isinstance(value, str) or not value.strip():
        raise ValidationError(f'{key} is required')
    value = value.strip()
    if max_length is not None and len(value) > max_length:
        raise ValidationError(f'{key} must be at most {max_length} characters')
    return value


def _as_int(value, key: str) -> int:
    if isinstance(value, bool):
        raise ValidationError(f'{key} must be an integer')
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        try:
            return int(value.strip())
        except ValueError:
            pass
    raise ValidationError(f'{key} must be an integer')


def require_int(data: dict, key: str) -> int:
    if data.get(key) is None:
        raise ValidationError(f'{key} is required')
    return _as_int(data[key], key)


def option_ids(data: dict, key: str = 'answer') -> List[int]:
    value = data.get(key)
    if value is None:
        raise ValidationError(f'{key} is required')
    if not isinstance(value, (list, tuple)):
        value = [value]
    return [_as_int(v, key) for v in value]


def require_number(data: dict, key: str) -> float:
    value = data.get(key)
    if isinstance(value, bool) or not isinstance(value, Number):
        raise ValidationError(f'{key} must be a number')
    return float(value)


def quiz_definition(data) -> dict:
    """Validate a quiz body from the HTTP API into ``store.create_quiz`` kwargs."""
    data = require_mapping(data)
    title = require_str(data, 'title', max_length=200)
    questions = data.get('questions')
    if not isinstance(questions, list):
        raise ValidationError('questions must be a list')
    parsed = []
    for i, q in enumerate(questions):
        if not isinstance(q, dict):
            raise ValidationError(f'questions[{i}] must be an object')
        q_type = q.get('type')
        if q_type not in QUESTION_TYPES:
            raise ValidationError(f'questions[{i}].type must be one of {", ".join(QUESTION_TYPES)}')
        time_limit = _as_int(q.get('timeLimit', 30), f'questions[{i}].timeLimit')
        if time_limit <= 0:
            raise ValidationError(f'questions[{i}].timeLimit must be positive')
        options = q.get('options')
        if not isinstance(options, list) or len(options) < 2:
            raise ValidationError(f'questions[{i}].options needs at least two options')
        parsed_options = []
        for j, o in enumerate(options):
            if not isinstance(o, dict):
                raise ValidationError(f'questions[{i}].options[{j}] must be an object')
            parsed_options.append({
                'text': require_str(o, 'text'),
                'is_correct': bool(o.get('isCorrect')),
            })
        correct = sum(1 for o in parsed_options if o['is_correct'])
        if q_type == 'multi_select' and correct < 1:
            raise ValidationError(f'questions[{i}] needs at least one correct option')
        if q_type != 'multi_select' and correct != 1:
            raise ValidationError(f'questions[{i}] needs exactly one correct option')
        parsed.append({
            'type': q_type,
            'text': require_str(q, 'text'),
            'time_limit': time_limit,
            'point_value': _as_int(q.get('points', 100), f'questions[{i}].points'),
            'options': parsed_options,
        })
    description = data.get('description')
    return {
        'title': title,
        'description': description if isinstance(description, str) else None,
        'questions': parsed,
    }
