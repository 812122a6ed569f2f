# auth.py
from functools import wraps

from flask import current_app, g, redirect, session, url_for

from errors import DuplicateEmail, DuplicatePatientCode, InvalidCredentials, PatientNotFound


def authenticate(users, email, password):
    """Return the stored user for ``email`` if ``password`` matches its hash."""
    user = users.find_by_email(email)
    if not user:
        raise InvalidCredentials('Email not registered')
    if not users.check_password(user, password):
        raise InvalidCredentials('Incorrect password')
    return user


def login_user(user):
    session.clear()
    session['user_id'] = str(user['_id'])  # only the id lives in the session


def logout_user():
    session.clear()


def load_current_user(users):
    # Runs before every request so views always see the stored user as it is now
    g.user = None
    user_id = session.get('user_id')
    if not user_id:
        return
    user = users.find_by_id(user_id)
    if user is None:
        current_app.logger.info('Dropping session for unknown user %s', user_id)
        session.pop('user_id', None)
        return
    g.user = user


def signup_user(users, patients, email, password, role, name, patient_code):
    """Create the user (and for patients, their patient record).

    A patient signup creates a new Patient under ``patient_code``; a doctor
    signup attaches to the existing Patient with that code. If the user
    insert fails after a new Patient was created, the Patient is removed
    again so no orphan is left behind.
    """
    if users.find_by_email(email):
        raise DuplicateEmail()

    created_patient = None
    if role == 'patient':
        if patients.find_by_code(patient_code):
            raise DuplicatePatientCode()
        patient = created_patient = patients.create_patient(name, patient_code)
    else:
        patient = patients.find_by_code(patient_code)
        if not patient:
            raise PatientNotFound()

    try:
        return users.create_user(email, password, role, patient['_id'])
    except Exception:
        if created_patient is not None:
            patients.delete(created_patient['_id'])
        raise


def owns_patient(user, patient):
    """True when the user's patient reference points at ``patient``.

    For a doctor that is the patient they are assigned to, for a patient it
    is their own record.
    """
    if not user or not patient:
        return False
    return str(user.get('patient')) == str(patient['_id'])


def login_required(view):
    @wraps(view)
    def wrapped_view(*args, **kwargs):
        if g.get('user') is None:
            return redirect(url_for('login'))
        return view(*args, **kwargs)
    return wrapped_view


def doctor_required(view):
    @wraps(view)
    def wrapped_view(*args, **kwargs):
        user = g.get('user')
        if not user or user.get('role') != 'doctor':
            return 'Access Denied: Doctors only', 403
        return view(*args, **kwargs)
    return wrapped_view
