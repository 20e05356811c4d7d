import os
import pytest

TEST_DB = os.path.join(os.getcwd(), 'test_app.db')
os.environ['DATABASE_URL'] = f'sqlite:///{TEST_DB}'

from assessments.db import init_db  # noqa: E402
from assessments.service import AssessmentService  # noqa: E402


@pytest.fixture(scope='session', autouse=True)
def reset_db():
    # Ensure a clean DB for the test session
    try:
        os.remove(TEST_DB)
    except FileNotFoundError:
        pass
    init_db()
    yield
    try:
        os.remove(TEST_DB)
    except OSError:
        pass


@pytest.fixture
def service():
    return AssessmentService()


_batch_counter = iter(range(1000, 10**6))


@pytest.fixture
def batch_id():
    # every test gets its own batch so listings do not see other tests' rows
    return next(_batch_counter)


def mcq(prompt='Q', correct='A', marks=1, options=('A', 'B', 'C', 'D')):
    return {
        'type': 'MCQ',
        'prompt': prompt,
        'options': [{'id': o, 'text': f'option {o}'} for o in options],
        'correctAnswer': {'kind': 'MCQ', 'optionId': correct},
        'marks': marks,
    }


def msq(prompt='Q', correct=('A', 'B'), marks=1, options=('A', 'B', 'C', 'D')):
    return {
        'type': 'MSQ',
        'prompt': prompt,
        'options': [{'id': o, 'text': f'option {o}'} for o in options],
        'correctAnswer': {'kind': 'MSQ', 'optionIds': list(correct)},
        'marks': marks,
    }


def nat(prompt='Q', value=0.0, tolerance=None, marks=1):
    correct = {'kind': 'NAT', 'value': value}
    if tolerance is not None:
        correct['tolerance'] = tolerance
    return {'type': 'NAT', 'prompt': prompt, 'correctAnswer': correct, 'marks': marks}


@pytest.fixture
def scenario(service, batch_id):
    """Two questions: Q1 MCQ (2 marks, A), Q2 NAT (3 marks, 5 +/- 1); 0.25 negative marking."""
    created = service.create_assessment(1, batch_id, 7, {
        'title': 'Scenario',
        'negativeMarking': 0.25,
        'maxAttempts': 1,
        'questions': [
            mcq('Q1', correct='A', marks=2),
            nat('Q2', value=5, tolerance=1, marks=3),
        ],
    })
    return created
