# errors.py
class ClinicError(Exception):
    """Base error; the message is safe to show to the user as a flash."""
    message = 'Something went wrong'

    def __init__(self, message=None):
        super().__init__(message or self.message)


class InvalidCredentials(ClinicError):
    message = 'Invalid credentials. Please try again.'


class DuplicateEmail(ClinicError):
    message = 'Email already registered'


class DuplicatePatientCode(ClinicError):
    message = 'Patient ID already exists'


class PatientNotFound(ClinicError):
    message = 'Patient ID not found'
