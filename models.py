# models.py
import random
import string
from datetime import datetime, timezone

from bson.errors import InvalidId
from bson.objectid import ObjectId
from pymongo import ASCENDING, DESCENDING
from werkzeug.security import generate_password_hash, check_password_hash


ROLES = ('doctor', 'patient')
VITAL_FIELDS = ('bp', 'sugar', 'weight', 'temperature')


def parse_object_id(value):
    """Return an ObjectId for ``value`` or None when it is not a valid id."""
    if value is None:
        return None
    if isinstance(value, ObjectId):
        return value
    try:
        return ObjectId(value)
    except (InvalidId, TypeError):
        return None


def to_number(value):
    # Empty form fields are stored as missing values, anything else must be numeric
    if value is None or str(value).strip() == '':
        return None
    text = str(value).strip()
    try:
        return int(text)
    except ValueError:
        return float(text)


def generate_patient_code(length=6):
    alphabet = string.ascii_uppercase + string.digits
    return 'PAT-' + ''.join(random.choices(alphabet, k=length))


class UserModel:
    def __init__(self, collection):
        self.collection = collection

    def ensure_indexes(self):
        self.collection.create_index([('email', ASCENDING)], unique=True)

    def find_by_email(self, email):
        return self.collection.find_one({'email': email})

    def find_by_id(self, user_id):
        oid = parse_object_id(user_id)
        if oid is None:
            return None
        return self.collection.find_one({'_id': oid})

    def create_user(self, email, password, role, patient_id):
        user_data = {
            'email': email,
            'password': generate_password_hash(password),
            'role': role,
            'patient': patient_id,
        }
        user_data['_id'] = self.collection.insert_one(user_data).inserted_id
        return user_data

    @staticmethod
    def check_password(user, password):
        return check_password_hash(user['password'], password)


class PatientModel:
    def __init__(self, collection):
        self.collection = collection

    def ensure_indexes(self):
        self.collection.create_index([('patientCode', ASCENDING)], unique=True)

    def find_by_id(self, patient_id):
        oid = parse_object_id(patient_id)
        if oid is None:
            return None
        return self.collection.find_one({'_id': oid})

    def find_by_code(self, patient_code):
        return self.collection.find_one({'patientCode': patient_code})

    def create_patient(self, name, patient_code=None):
        if not patient_code:
            patient_code = generate_patient_code()
            while self.find_by_code(patient_code):
                patient_code = generate_patient_code()

        patient_data = {
            'patientCode': patient_code,
            'name': name,
            'age': None,
            'gender': None,
            'bloodGroup': None,
            'phone': None,
            'hospital': None,
            'medicines': [],
            'schedules': [],
            'notifications': [],
            'vitals': {field: '' for field in VITAL_FIELDS},
            'assignedDoctor': None,
            'image': None,
        }
        patient_data['_id'] = self.collection.insert_one(patient_data).inserted_id
        return patient_data

    def delete(self, patient_id):
        self.collection.delete_one({'_id': patient_id})

    def assign_doctor(self, patient_id, doctor_id):
        self.collection.update_one({'_id': patient_id}, {'$set': {'assignedDoctor': doctor_id}})

    def add_medicine(self, patient_id, medicine_id):
        self.collection.update_one({'_id': patient_id}, {'$push': {'medicines': medicine_id}})

    def remove_medicine(self, patient_id, medicine_id):
        self.collection.update_one({'_id': patient_id}, {'$pull': {'medicines': medicine_id}})

    def add_notification(self, patient_id, message):
        entry = {'message': message, 'date': datetime.now(timezone.utc)}
        self.collection.update_one({'_id': patient_id}, {'$push': {'notifications': entry}})

    def update_profile(self, patient_id, update_data):
        self.collection.update_one({'_id': patient_id}, {'$set': update_data})

    def set_image(self, patient_id, filename):
        self.collection.update_one({'_id': patient_id}, {'$set': {'image': filename}})


class MedicineModel:
    def __init__(self, collection):
        self.collection = collection

    def find_by_id(self, medicine_id):
        oid = parse_object_id(medicine_id)
        if oid is None:
            return None
        return self.collection.find_one({'_id': oid})

    def find_for_patient(self, patient_id, newest_first=False):
        cursor = self.collection.find({'patient': patient_id})
        if newest_first:
            cursor = cursor.sort('_id', DESCENDING)
        return list(cursor)

    def create_medicine(self, patient_id, name, doses_remaining, frequency, reason):
        medicine_data = {
            'name': name,
            'dosesRemaining': to_number(doses_remaining),
            'frequency': frequency,
            'reason': reason,
            'patient': patient_id,
        }
        medicine_data['_id'] = self.collection.insert_one(medicine_data).inserted_id
        return medicine_data

    def update_medicine(self, medicine_id, name, doses_remaining, frequency, reason):
        self.collection.update_one(
            {'_id': medicine_id},
            {'$set': {
                'name': name,
                'dosesRemaining': to_number(doses_remaining),
                'frequency': frequency,
                'reason': reason,
            }},
        )

    def delete_medicine(self, medicine_id):
        """Delete by id and return the removed document (None when absent)."""
        return self.collection.find_one_and_delete({'_id': medicine_id})


class PrescriptionModel:
    def __init__(self, collection):
        self.collection = collection

    def find_for_patient(self, patient_id):
        return list(self.collection.find({'patient': patient_id}).sort('date', DESCENDING))

    def count_for_patient(self, patient_id):
        return self.collection.count_documents({'patient': patient_id})

    def create_prescription(self, patient_id, doctor_id, medicines, notes):
        prescription_data = {
            'patient': patient_id,
            'doctor': doctor_id,
            'medicines': [
                {
                    'name': line.get('name'),
                    'dosage': to_number(line.get('dosage')),
                    'days': to_number(line.get('days')),
                }
                for line in medicines
            ],
            'notes': notes,
            'date': datetime.now(timezone.utc),
        }
        prescription_data['_id'] = self.collection.insert_one(prescription_data).inserted_id
        return prescription_data
