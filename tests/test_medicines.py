from bson.objectid import ObjectId

import app as app_module
from conftest import PASSWORD, login


def add_medicine(client, patient_id, name, doses='10'):
    return client.post('/doctor/patient/%s/medicines' % patient_id, data={
        'name': name,
        'dosesRemaining': doses,
        'frequency': 'Twice a day',
        'reason': 'Blood pressure',
    })


def test_dashboard_auto_assigns_doctor(doctor_client, doctor_user, patient_id, database):
    assert database['patients'].find_one({'_id': ObjectId(patient_id)})['assignedDoctor'] is None

    response = doctor_client.get('/doctor/dashboard')

    assert response.status_code == 200
    assert b'Asha Rao' in response.data
    patient = database['patients'].find_one({'_id': ObjectId(patient_id)})
    assert patient['assignedDoctor'] == doctor_user['_id']


def test_dashboard_keeps_existing_assignment(doctor_client, patient_id, database):
    first_doctor = ObjectId()
    database['patients'].update_one({'_id': ObjectId(patient_id)}, {'$set': {'assignedDoctor': first_doctor}})

    doctor_client.get('/doctor/dashboard')

    assert database['patients'].find_one({'_id': ObjectId(patient_id)})['assignedDoctor'] == first_doctor


def test_create_medicine(doctor_client, patient_id, database):
    response = add_medicine(doctor_client, patient_id, 'Amlodipine')

    assert response.status_code == 302
    assert response.headers['Location'].endswith('/doctor/patient/%s/medicines' % patient_id)

    medicine = database['medicines'].find_one({'name': 'Amlodipine'})
    assert medicine['dosesRemaining'] == 10
    assert medicine['frequency'] == 'Twice a day'
    assert medicine['patient'] == ObjectId(patient_id)
    patient = database['patients'].find_one({'_id': ObjectId(patient_id)})
    assert patient['medicines'] == [medicine['_id']]


def test_doctor_list_is_newest_first(doctor_client, patient_id):
    add_medicine(doctor_client, patient_id, 'Older')
    add_medicine(doctor_client, patient_id, 'Newer')

    listed = app_module.medicines.find_for_patient(ObjectId(patient_id), newest_first=True)
    assert [m['name'] for m in listed] == ['Newer', 'Older']

    body = doctor_client.get('/doctor/patient/%s/medicines' % patient_id).data
    assert body.index(b'Newer') < body.index(b'Older')


def test_non_numeric_doses_is_a_server_error(doctor_client, patient_id, database):
    response = add_medicine(doctor_client, patient_id, 'Broken', doses='lots')

    assert response.status_code == 500
    assert database['medicines'].count_documents({}) == 0


def test_update_medicine(doctor_client, patient_id, database):
    add_medicine(doctor_client, patient_id, 'Amlodipine')
    medicine_id = database['medicines'].find_one({'name': 'Amlodipine'})['_id']

    response = doctor_client.post('/doctor/medicine/%s/update' % medicine_id, data={
        'name': 'Amlodipine 5mg',
        'dosesRemaining': '4',
        'frequency': 'Once a day',
        'reason': 'Hypertension',
    })

    assert response.status_code == 302
    assert response.headers['Location'].endswith('/doctor/patient/%s/medicines' % patient_id)
    medicine = database['medicines'].find_one({'_id': medicine_id})
    assert medicine['name'] == 'Amlodipine 5mg'
    assert medicine['dosesRemaining'] == 4
    assert medicine['frequency'] == 'Once a day'
    assert medicine['reason'] == 'Hypertension'


def test_delete_medicine(doctor_client, patient_id, database):
    add_medicine(doctor_client, patient_id, 'Keep')
    add_medicine(doctor_client, patient_id, 'Remove')
    medicine_id = database['medicines'].find_one({'name': 'Remove'})['_id']

    response = doctor_client.post('/doctor/medicine/%s/delete' % medicine_id)

    assert response.status_code == 302
    assert app_module.medicines.find_by_id(medicine_id) is None
    remaining = app_module.medicines.find_for_patient(ObjectId(patient_id))
    assert [m['name'] for m in remaining] == ['Keep']
    patient = database['patients'].find_one({'_id': ObjectId(patient_id)})
    assert medicine_id not in patient['medicines']
    assert b'Remove' not in doctor_client.get('/doctor/patient/%s/medicines' % patient_id).data


def test_missing_medicine(doctor_client):
    assert doctor_client.post('/doctor/medicine/%s/delete' % ObjectId()).status_code == 404
    assert doctor_client.post('/doctor/medicine/not-an-id/update', data={}).status_code == 404


def test_update_failure_is_a_server_error(doctor_client, patient_id, database, monkeypatch):
    add_medicine(doctor_client, patient_id, 'Amlodipine')
    medicine_id = database['medicines'].find_one({'name': 'Amlodipine'})['_id']

    def broken_update(*args, **kwargs):
        raise RuntimeError('write failed')

    monkeypatch.setattr(app_module.medicines, 'update_medicine', broken_update)

    response = doctor_client.post('/doctor/medicine/%s/update' % medicine_id, data={'name': 'X'})
    assert response.status_code == 500
    assert b'Failure to update Medicine' in response.data


def test_other_doctor_cannot_manage_medicines(flask_app, doctor_client, other_doctor, patient_id, database):
    add_medicine(doctor_client, patient_id, 'Amlodipine')
    medicine_id = database['medicines'].find_one({'name': 'Amlodipine'})['_id']

    client = flask_app.test_client()
    login(client, 'other.doc@example.com')

    assert client.get('/doctor/patient/%s/medicines' % patient_id).status_code == 403
    assert add_medicine(client, patient_id, 'Sneaky').status_code == 403
    assert client.post('/doctor/medicine/%s/delete' % medicine_id).status_code == 403
    assert app_module.medicines.find_by_id(medicine_id) is not None


def test_delete_failure_is_a_server_error(doctor_client, patient_id, database, monkeypatch):
    add_medicine(doctor_client, patient_id, 'Amlodipine')
    medicine_id = database['medicines'].find_one({'name': 'Amlodipine'})['_id']

    def broken_delete(*args, **kwargs):
        raise RuntimeError('delete failed')

    monkeypatch.setattr(app_module.medicines, 'delete_medicine', broken_delete)

    response = doctor_client.post('/doctor/medicine/%s/delete' % medicine_id)
    assert response.status_code == 500
    assert b'Failure to delete Medicine' in response.data
    assert app_module.medicines.find_by_id(medicine_id) is not None


def test_doctor_without_patient_gets_404(flask_app, database):
    app_module.users.create_user('lonely.doc@example.com', PASSWORD, 'doctor', None)
    client = flask_app.test_client()
    login(client, 'lonely.doc@example.com')

    response = client.get('/doctor/dashboard')

    assert response.status_code == 404
    assert database['patients'].count_documents({}) == 0
