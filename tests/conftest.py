import mongomock
import pytest

import app as app_module
from auth import signup_user

PASSWORD = 'secret123'


@pytest.fixture
def database():
    db = mongomock.MongoClient()['smartmedicare_test']
    app_module.bind_database(db)
    yield db


@pytest.fixture
def flask_app(database, tmp_path):
    app_module.app.config.update(
        TESTING=True,
        SECRET_KEY='test-secret',
        UPLOAD_FOLDER=str(tmp_path / 'uploads'),
    )
    return app_module.app


@pytest.fixture
def client(flask_app):
    return flask_app.test_client()


def make_account(email, role, patient_code, name='Test Patient'):
    return signup_user(app_module.users, app_module.patients, email, PASSWORD, role, name, patient_code)


def login(client, email, password=PASSWORD):
    return client.post('/login', data={'email': email, 'password': password})


@pytest.fixture
def patient_user(database):
    return make_account('pat@example.com', 'patient', 'PAT-AAA111', name='Asha Rao')


@pytest.fixture
def doctor_user(patient_user):
    return make_account('doc@example.com', 'doctor', 'PAT-AAA111')


@pytest.fixture
def other_doctor(database):
    make_account('other.pat@example.com', 'patient', 'PAT-BBB222', name='Ben Ode')
    return make_account('other.doc@example.com', 'doctor', 'PAT-BBB222')


@pytest.fixture
def patient_id(patient_user):
    return str(patient_user['patient'])


@pytest.fixture
def doctor_client(flask_app, doctor_user):
    client = flask_app.test_client()
    login(client, 'doc@example.com')
    return client


@pytest.fixture
def patient_client(flask_app, patient_user):
    client = flask_app.test_client()
    login(client, 'pat@example.com')
    return client
