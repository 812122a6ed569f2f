from flask import Flask, request, render_template, g, redirect, url_for, flash, get_flashed_messages
from flask_cors import CORS
from werkzeug.utils import secure_filename
import os
import re
from collections import namedtuple
from datetime import datetime, timezone
from pymongo import MongoClient
from dotenv import load_dotenv
import phonenumbers

from auth import (
    authenticate, doctor_required, load_current_user, login_required, login_user, logout_user,
    owns_patient, signup_user,
)
from errors import ClinicError, InvalidCredentials
from insights import analyze
from models import (
    MedicineModel, PatientModel, PrescriptionModel, UserModel, ROLES, VITAL_FIELDS, parse_object_id,
)

# Load environment variables
load_dotenv()

app = Flask(__name__, static_folder='static', template_folder='templates')
CORS(app)

# Define the upload folder and allowed extensions
UPLOAD_FOLDER = os.path.join(app.root_path, 'static', 'uploads')
ALLOWED_EXTENSIONS = {'png', 'jpg', 'jpeg', 'gif'}

app.config['UPLOAD_FOLDER'] = UPLOAD_FOLDER
app.config['MAX_CONTENT_LENGTH'] = 2 * 1024 * 1024  # Limit file size to 2MB

# Secret key for signing the session cookie
app.secret_key = os.getenv('FLASK_SECRET_KEY', 'dev-secret-change-me')

MONGO_URI = os.getenv('MONGO_URI', 'mongodb://localhost:27017')
MONGO_DB_NAME = os.getenv('MONGO_DB_NAME', 'smartmedicare')
PORT = int(os.getenv('PORT', '3000'))
PHONE_REGION = os.getenv('PHONE_REGION', 'IN')

app.logger.setLevel(os.getenv('LOG_LEVEL', 'INFO').upper())

# Per-request data handed to every template as ``view``
ViewContext = namedtuple('ViewContext', ['user', 'messages'])

MEDICINE_LINE_KEY = re.compile(r'^medicines\[(\d+)\]\[(name|dosage|days)\]$')


def bind_database(database):
    """Point the models at ``database`` (a pymongo Database).

    Unique indexes are built on the first request served against it.
    """
    global db, users, patients, medicines, prescriptions, indexes_ready
    db = database
    users = UserModel(db['users'])
    patients = PatientModel(db['patients'])
    medicines = MedicineModel(db['medicines'])
    prescriptions = PrescriptionModel(db['prescriptions'])
    indexes_ready = False


def init_db():
    global indexes_ready
    users.ensure_indexes()
    patients.ensure_indexes()
    indexes_ready = True


# MongoDB setup (the client connects lazily on first use)
client = MongoClient(MONGO_URI)
bind_database(client[MONGO_DB_NAME])


def render_view(template, **data):
    view = ViewContext(user=g.get('user'), messages=get_flashed_messages(with_categories=True))
    return render_template(template, view=view, **data)


def allowed_file(filename):
    return '.' in filename and \
           filename.rsplit('.', 1)[1].lower() in ALLOWED_EXTENSIONS


def parse_medicine_lines(form):
    """Collect ``medicines[<i>][name|dosage|days]`` form fields into ordered lines."""
    lines = {}
    for key, value in form.items():
        match = MEDICINE_LINE_KEY.match(key)
        if match:
            lines.setdefault(int(match.group(1)), {})[match.group(2)] = value.strip()
    return [lines[i] for i in sorted(lines) if lines[i].get('name')]


def load_patient(patient_id):
    """Return ``(patient, None)`` or ``(None, error_response)``."""
    oid = parse_object_id(patient_id)
    if oid is None:
        return None, ('Invalid patient ID', 400)
    patient = patients.find_by_id(oid)
    if not patient:
        return None, ('Patient not found', 404)
    return patient, None


def load_owned_patient(patient_id):
    patient, error = load_patient(patient_id)
    if error:
        return None, error
    if not owns_patient(g.user, patient):
        app.logger.warning('User %s denied access to patient %s', g.user['_id'], patient['_id'])
        return None, ('Unauthorized', 403)
    return patient, None


@app.before_request
def load_user():
    if not indexes_ready:
        init_db()
    load_current_user(users)


# Static pages
@app.route('/')
def index():
    return render_view('home.html')


@app.route('/healthTips')
def health_tips():
    return render_view('health_tips.html')


@app.route('/about')
def about():
    return render_view('about.html')


@app.route('/contact')
def contact():
    return render_view('contact.html')


@app.route('/appointment')
def appointment():
    return render_view('appointment.html')


@app.route('/dashboard')
@login_required
def dashboard():
    return render_view('dashboard.html')


# Signup route
@app.route('/signup', methods=['GET', 'POST'])
def signup():
    if request.method == 'POST':
        email = request.form.get('email', '').strip().lower()
        password = request.form.get('password', '')
        role = request.form.get('role', '').strip().lower()
        name = request.form.get('name', '').strip()
        patient_code = request.form.get('patientId', '').strip()

        if not email or not password or not patient_code or role not in ROLES:
            flash('Please fill in all fields!', 'danger')
            return redirect(url_for('signup'))

        try:
            user = signup_user(users, patients, email, password, role, name, patient_code)
        except ClinicError as e:
            app.logger.info('Signup rejected for %s: %s', email, e)
            flash(str(e), 'danger')
            return redirect(url_for('signup'))
        except Exception:
            app.logger.exception('Signup failed for %s', email)
            flash('Signup failed', 'danger')
            return redirect(url_for('signup'))

        app.logger.info('New %s account %s', role, user['_id'])
        flash('Signup successful. Please log in.', 'success')
        return redirect(url_for('login'))

    return render_view('signup.html')


# Login route
@app.route('/login', methods=['GET', 'POST'])
def login():
    if request.method == 'POST':
        email = request.form.get('email', '').strip().lower()
        password = request.form.get('password', '')

        try:
            user = authenticate(users, email, password)
        except InvalidCredentials as e:
            app.logger.warning('Failed login for %s', email)
            flash(str(e), 'danger')
            return redirect(url_for('login'))

        login_user(user)
        app.logger.info('User %s logged in as %s', user['_id'], user['role'])
        flash('Login successful!', 'success')

        if user['role'] == 'doctor':
            return redirect(url_for('doctor_dashboard'))
        if user['role'] == 'patient':
            return redirect(url_for('patient_detail', id=str(user['patient'])))
        return redirect(url_for('dashboard'))

    return render_view('login.html')


# Logout route
@app.route('/logout')
def logout():
    logout_user()
    flash('You have been logged out.', 'info')
    return redirect(url_for('index'))


# Patient pages
@app.route('/patient/<id>')
@login_required
def patient_detail(id):
    if id == 'undefined':
        return redirect(url_for('dashboard'))

    # Any signed-in user may view a patient record by id
    patient, error = load_patient(id)
    if error:
        return error
    return render_view('patient_view.html', patient=patient)


@app.route('/patient/<id>/medicines')
@login_required
def patient_medicines(id):
    patient, error = load_patient(id)
    if error:
        return error
    return render_view('medicine_view.html', patient=patient,
                       medicines=medicines.find_for_patient(patient['_id']))


@app.route('/patient/<id>/edit', methods=['GET', 'POST'])
@login_required
def edit_patient(id):
    patient, error = load_owned_patient(id)
    if error:
        return error

    if request.method == 'POST':
        age = request.form.get('age', '').strip()
        phone = request.form.get('phone', '').strip()

        if phone:  # Only validate if a phone number is provided
            try:
                is_valid_phone = phonenumbers.is_valid_number(phonenumbers.parse(phone, PHONE_REGION))
            except phonenumbers.NumberParseException:
                is_valid_phone = False
            if not is_valid_phone:
                flash('Please enter a valid phone number.', 'danger')
                return render_view('edit_patient.html', patient=patient)

        if age and not age.isdecimal():
            flash('Please enter a valid age.', 'danger')
            return render_view('edit_patient.html', patient=patient)

        update_data = {}
        if age:
            update_data['age'] = int(age)
        if phone:
            update_data['phone'] = phone
        for field in ('gender', 'bloodGroup', 'hospital'):
            value = request.form.get(field, '').strip()
            if value:
                update_data[field] = value
        for field in VITAL_FIELDS:
            value = request.form.get(field, '').strip()
            if value:
                update_data['vitals.' + field] = value

        if not update_data:
            flash('No changes were made.', 'info')
            return redirect(url_for('edit_patient', id=id))

        patients.update_profile(patient['_id'], update_data)
        app.logger.info('User %s updated patient %s', g.user['_id'], patient['_id'])
        flash('Patient details updated successfully!', 'success')
        return redirect(url_for('patient_detail', id=id))

    return render_view('edit_patient.html', patient=patient)


@app.route('/patient/<id>/image', methods=['POST'])
@login_required
def upload_patient_image(id):
    patient, error = load_owned_patient(id)
    if error:
        return error

    if 'image' not in request.files:
        flash('No file part', 'danger')
        return redirect(url_for('patient_detail', id=id))
    file = request.files['image']
    filename = secure_filename(file.filename or '')
    if filename == '':
        flash('No selected file', 'danger')
        return redirect(url_for('patient_detail', id=id))
    if not allowed_file(filename):
        flash('Allowed file types are png, jpg, jpeg, gif', 'danger')
        return redirect(url_for('patient_detail', id=id))

    os.makedirs(app.config['UPLOAD_FOLDER'], exist_ok=True)
    extension = filename.rsplit('.', 1)[1].lower()
    stored_name = f"{patient['_id']}_{datetime.now(timezone.utc).timestamp():.0f}.{extension}"
    file.save(os.path.join(app.config['UPLOAD_FOLDER'], stored_name))
    patients.set_image(patient['_id'], stored_name)
    flash('Image uploaded successfully!', 'success')
    return redirect(url_for('patient_detail', id=id))


# Doctor dashboard
@app.route('/doctor/dashboard')
@login_required
@doctor_required
def doctor_dashboard():
    try:
        patient = patients.find_by_id(g.user.get('patient'))
        if not patient:
            return 'Patient not found', 404

        if not patient.get('assignedDoctor'):
            patients.assign_doctor(patient['_id'], g.user['_id'])
            patient['assignedDoctor'] = g.user['_id']
            app.logger.info('Patient %s auto-assigned to doctor %s', patient['_id'], g.user['_id'])

        patient_medicines = medicines.find_for_patient(patient['_id'])
        return render_view('doctor_view.html', patient=patient, medicines=patient_medicines)
    except Exception:
        app.logger.exception('Doctor dashboard error')
        return 'Server Error', 500


# Medicines (doctor)
@app.route('/doctor/patient/<id>/medicines', methods=['GET', 'POST'])
@login_required
@doctor_required
def doctor_medicines(id):
    patient, error = load_owned_patient(id)
    if error:
        return error

    if request.method == 'POST':
        try:
            medicine = medicines.create_medicine(
                patient['_id'],
                request.form.get('name', '').strip(),
                request.form.get('dosesRemaining'),
                request.form.get('frequency', '').strip(),
                request.form.get('reason', '').strip(),
            )
            patients.add_medicine(patient['_id'], medicine['_id'])
            app.logger.info('Medicine %s added for patient %s', medicine['_id'], patient['_id'])
        except Exception:
            app.logger.exception('Add medicine error')
            return 'Server Error', 500
        return redirect(url_for('doctor_medicines', id=id))

    try:
        patient_medicines = medicines.find_for_patient(patient['_id'], newest_first=True)
    except Exception:
        app.logger.exception('Medicine view error')
        return 'Server Error', 500
    return render_view('medicine_view.html', patient=patient, medicines=patient_medicines)


def load_owned_medicine(medicine_id):
    medicine = medicines.find_by_id(medicine_id)
    if not medicine:
        return None, ('Medicine not found', 404)
    _, error = load_owned_patient(medicine.get('patient'))
    if error:
        return None, error
    return medicine, None


@app.route('/doctor/medicine/<id>/update', methods=['POST'])
@login_required
@doctor_required
def update_medicine(id):
    try:
        medicine, error = load_owned_medicine(id)
        if error:
            return error

        medicines.update_medicine(
            medicine['_id'],
            request.form.get('name', '').strip(),
            request.form.get('dosesRemaining'),
            request.form.get('frequency', '').strip(),
            request.form.get('reason', '').strip(),
        )
        app.logger.info('Medicine %s updated', medicine['_id'])
        return redirect(url_for('doctor_medicines', id=str(medicine['patient'])))
    except Exception:
        app.logger.exception('Update medicine error')
        return 'Failure to update Medicine', 500


@app.route('/doctor/medicine/<id>/delete', methods=['POST'])
@login_required
@doctor_required
def delete_medicine(id):
    try:
        medicine, error = load_owned_medicine(id)
        if error:
            return error

        medicines.delete_medicine(medicine['_id'])
        patients.remove_medicine(medicine['patient'], medicine['_id'])
        app.logger.info('Medicine %s deleted', medicine['_id'])
        return redirect(url_for('doctor_medicines', id=str(medicine['patient'])))
    except Exception:
        app.logger.exception('Delete medicine error')
        return 'Failure to delete Medicine', 500


# Prescriptions
@app.route('/doctor/patient/<id>/prescriptions', methods=['GET', 'POST'])
@login_required
@doctor_required
def doctor_prescriptions(id):
    patient, error = load_owned_patient(id)
    if error:
        return error

    if request.method == 'POST':
        try:
            prescription = prescriptions.create_prescription(
                patient['_id'],
                g.user['_id'],
                parse_medicine_lines(request.form),
                request.form.get('notes', '').strip(),
            )
            patients.add_notification(patient['_id'], 'New prescription added')
            app.logger.info('Prescription %s saved for patient %s', prescription['_id'], patient['_id'])
        except Exception:
            app.logger.exception('Save prescription error')
            return 'Failed to save Prescription', 500
        return redirect(url_for('doctor_prescriptions', id=id))

    try:
        patient_prescriptions = prescriptions.find_for_patient(patient['_id'])
    except Exception:
        app.logger.exception('Prescription list error')
        return 'Error loading Prescriptions', 500
    return render_view('doctor_prescriptions.html', patient=patient, prescriptions=patient_prescriptions)


# AI insights
@app.route('/doctor/patient/<id>/ai-insights')
@login_required
@doctor_required
def ai_insights(id):
    patient, error = load_owned_patient(id)
    if error:
        return error

    try:
        insight = analyze(patient.get('vitals'), prescriptions.count_for_patient(patient['_id']))
    except Exception:
        app.logger.exception('AI analysis error')
        return 'AI analysis failed', 500

    app.logger.debug('AI insight for patient %s: %s', patient['_id'], insight)
    return render_view('ai_insights.html', patient=patient, score=insight.score,
                       risks=insight.risks, suggestions=insight.suggestions)


if __name__ == '__main__':
    init_db()
    app.run(debug=os.getenv('FLASK_ENV', '').lower() != 'production', port=PORT)
