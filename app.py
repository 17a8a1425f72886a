# app.py
import io
from datetime import datetime
from urllib.parse import urlencode
from flask import (
    Flask, render_template, request, redirect, url_for, flash,
    session, jsonify, send_file, g
)
from sqlalchemy import text
from config import SQLALCHEMY_DATABASE_URI, SECRET_KEY, UPLOAD_FOLDER, MAX_UPLOAD_SIZE, DEBUG
from models import db, User, Admin
from services import (
    auth_service, storage_service, customer_service, lender_service,
    university_service, ai_extractor
)
from services.ai_extraction_engine import (
    AIExtractionError, DocumentInput, with_defaults, NOT_SPECIFIED,
    OFFER_LETTER_FIELDS, PERSONAL_KYC_FIELDS, CO_SIGNATORY_FIELDS,
    PROFESSIONAL_PROFILE_FIELDS, ID_DOCUMENT_TYPES, PROFILE_SOURCE_TYPES
)
from services.customer_service import CustomerNotFoundError
from services.loan_steps import (
    LOAN_APP_STEPS, OFFER_LETTER_SESSION_KEY, resolve_application_type,
    parse_offer_letter_flag, filter_steps, locate_current_step, following_step,
    build_progress_trail, find_catalog_conflicts
)
from functools import wraps

# PDF Generation imports
from reportlab.lib.pagesizes import A4
from reportlab.platypus import SimpleDocTemplate, Table, TableStyle, Paragraph, Spacer
from reportlab.lib.styles import getSampleStyleSheet, ParagraphStyle
from reportlab.lib import colors
from reportlab.lib.units import inch

app = Flask(__name__)
app.config['SQLALCHEMY_DATABASE_URI'] = SQLALCHEMY_DATABASE_URI
app.config['SECRET_KEY'] = SECRET_KEY
app.config['UPLOAD_FOLDER'] = UPLOAD_FOLDER
app.config['MAX_CONTENT_LENGTH'] = MAX_UPLOAD_SIZE

db.init_app(app)

ACADEMIC_KYC_FIELDS = (
    'highestQualification', 'institutionName', 'fieldOfStudy', 'graduationYear',
    'percentageOrCgpa', 'englishTestType', 'englishTestScore',
)
WORK_EMPLOYMENT_FIELDS = (
    'employmentStatus', 'employerName', 'jobTitle', 'annualIncome',
    'coSignatoryChoice', 'coSignatoryRelationship', 'coSignatoryIdDocumentType',
)
PREFERENCE_FIELDS = ('preferredCountry1', 'preferredCountry2', 'courseLevel', 'courseField')


def customer_required(f):
    """Wizard pages need a customer who has verified their mobile number"""
    @wraps(f)
    def decorated_function(*args, **kwargs):
        customer_id = session.get('customer_id')
        if not customer_id:
            flash('Please verify your mobile number to continue.', 'error')
            return redirect(step_url('/loan-application/mobile'))
        try:
            g.customer = customer_service.get_customer(customer_id)
        except CustomerNotFoundError:
            session.pop('customer_id', None)
            flash('Your application could not be found. Please start again.', 'error')
            return redirect(step_url('/loan-application/mobile'))
        return f(*args, **kwargs)
    return decorated_function


def api_admin_required(f):
    @wraps(f)
    def decorated_function(*args, **kwargs):
        if 'admin_id' not in session:
            return jsonify({'error': 'Unauthorized'}), 401
        return f(*args, **kwargs)
    return decorated_function


from admin.routes import admin_bp
app.register_blueprint(admin_bp)

with app.app_context():
    db.create_all()

for conflict in find_catalog_conflicts(LOAN_APP_STEPS):
    app.logger.warning(f"Loan step catalog: {conflict}")


# --- Wizard helpers ---

def application_type():
    return resolve_application_type(request.args.get('type'))


def has_offer_letter():
    return parse_offer_letter_flag(session.get(OFFER_LETTER_SESSION_KEY))


def visible_steps():
    return filter_steps(LOAN_APP_STEPS, application_type(), has_offer_letter())


def step_url(path):
    return f"{path}?{urlencode({'type': application_type()})}"


def redirect_to_next_step():
    step = following_step(visible_steps(), request.path)
    if step is None:
        return redirect(step_url('/loan-application/final-summary'))
    return redirect(step_url(step.path))


def form_values(fields, defaults=None):
    """Form values win over extracted ones, but only when the user typed something"""
    values = dict(defaults or {})
    for field in fields:
        submitted = (request.form.get(field) or '').strip()
        if submitted:
            values[field] = submitted
    return values


def store_uploads(customer, files):
    for saved in storage_service.save_customer_documents(customer.id, files):
        customer_service.add_document(customer, saved['type'], saved['name'], saved['url'],
                                      saved['size'], saved['contentType'])


@app.context_processor
def inject_progress_trail():
    if not request.path.startswith('/loan-application'):
        return {}
    steps = visible_steps()
    index = locate_current_step(steps, request.path)
    return {
        'application_type': application_type(),
        'progress_trail': build_progress_trail(steps, index),
        'compact_progress_trail': build_progress_trail(steps, index, compact=True),
    }


@app.after_request
def set_security_headers(response):
    if request.path.startswith('/api/'):
        return response
    if DEBUG:
        csp = [
            "default-src 'self'",
            "script-src 'self' 'unsafe-inline' 'unsafe-eval' https: http:",
            "style-src 'self' 'unsafe-inline' https: http:",
            "img-src 'self' data: blob: https: http:",
            "font-src 'self' data: https: http:",
            "connect-src 'self' ws: wss: https: http:",
            "frame-src 'self' https:",
            "form-action 'self'",
            "base-uri 'self'",
            "object-src 'none'",
        ]
    else:
        csp = [
            "default-src 'self'",
            "script-src 'self' 'unsafe-inline'",
            "style-src 'self' 'unsafe-inline' https://fonts.googleapis.com",
            "img-src 'self' data: blob: https:",
            "font-src 'self' https://fonts.gstatic.com data:",
            "connect-src 'self' https://*.googleapis.com https://live-mt-server.wati.io",
            "frame-src 'self'",
            "form-action 'self'",
            "base-uri 'self'",
            "object-src 'none'",
            "upgrade-insecure-requests",
        ]
    response.headers['X-Content-Type-Options'] = 'nosniff'
    response.headers['X-Frame-Options'] = 'DENY'
    response.headers['X-XSS-Protection'] = '1; mode=block'
    response.headers['Referrer-Policy'] = 'strict-origin-when-cross-origin'
    response.headers['Permissions-Policy'] = 'camera=(), microphone=(), geolocation=()'
    response.headers['Content-Security-Policy'] = '; '.join(csp)
    return response


@app.route('/')
def index():
    return render_template('index.html')

@app.route('/login', methods=['GET', 'POST'])
def login():
    if request.method == 'POST':
        username = request.form.get('username')
        password = request.form.get('password')
        admin = Admin.query.filter_by(username=username).first()
        if admin and admin.check_password(password):
            session['admin_id'] = admin.id
            session['admin_logged_in'] = True
            flash('Admin login successful!', 'success')
            return redirect(url_for('admin.dashboard'))
        flash('Invalid admin credentials.', 'danger')
    return render_template('login.html')

@app.route('/logout')
def logout():
    """Clears both the applicant and the admin session"""
    session.clear()
    flash('You have been logged out.', 'info')
    return redirect(url_for('index'))


# --- Loan application wizard ---

@app.route('/loan-application/mobile', methods=['GET', 'POST'])
def loan_mobile():
    if request.method == 'GET':
        return render_template('loan_application/mobile.html', otp_sent=False)

    action = request.form.get('action')
    if action == 'send':
        mobile = (request.form.get('mobile_number') or '').strip()
        if not mobile:
            flash('Please enter your mobile number.', 'error')
            return render_template('loan_application/mobile.html', otp_sent=False), 400
        result = auth_service.send_otp(mobile)
        if not result.success:
            app.logger.error(f"OTP send failed for {mobile}: {result.message}")
            flash(result.message, 'error')
            return render_template('loan_application/mobile.html', otp_sent=False, mobile=mobile,
                                   can_retry=result.is_retryable)
        session['mobile_for_verification'] = mobile
        flash('OTP sent to your WhatsApp number.', 'success')
        return render_template('loan_application/mobile.html', otp_sent=True, mobile=mobile)

    if action == 'verify':
        mobile = session.get('mobile_for_verification')
        if not mobile:
            flash('Please request an OTP first.', 'error')
            return render_template('loan_application/mobile.html', otp_sent=False), 400
        result = auth_service.verify_otp(mobile, request.form.get('otp'))
        if not result.success:
            flash(result.message, 'error')
            return render_template('loan_application/mobile.html', otp_sent=True, mobile=mobile)

        try:
            user = User.query.filter_by(mobile_number=mobile).first()
            if not user:
                user = User(mobile_number=mobile)
                db.session.add(user)
                db.session.commit()
            customer = customer_service.get_customer_for_user(user)
            customer_service.update_section(customer, 'application', {'applicationType': application_type()})
            customer_service.mark_step_completed(customer, '/loan-application/mobile')
        except Exception as e:
            db.session.rollback()
            app.logger.error(f"Error creating applicant for {mobile}: {e}")
            flash('Could not start your application. Please try again.', 'error')
            return render_template('loan_application/mobile.html', otp_sent=True, mobile=mobile), 500

        session['user_id'] = user.id
        session['customer_id'] = customer.id
        session.pop('mobile_for_verification', None)
        flash('Mobile verified!', 'success')

        # Loan applicants are always asked about their offer letter first
        if application_type() == 'loan':
            return redirect(step_url('/loan-application/admission-kyc'))
        return redirect_to_next_step()

    flash('Unknown action.', 'error')
    return render_template('loan_application/mobile.html', otp_sent=False), 400

@app.route('/loan-application/admission-kyc', methods=['GET', 'POST'])
@customer_required
def loan_admission_kyc():
    customer = g.customer
    if request.method == 'GET':
        return render_template('loan_application/admission_kyc.html',
                               data=(customer.kyc or {}).get('admissionKyc') or {})

    choice = request.form.get('has_offer_letter')
    if choice == 'yes':
        session[OFFER_LETTER_SESSION_KEY] = 'true'
        upload = request.files.get('offer_letter')
        extracted = with_defaults({}, OFFER_LETTER_FIELDS)
        try:
            if upload and upload.filename:
                store_uploads(customer, {'offer_letter': upload})
                extracted = ai_extractor.extract_offer_letter(DocumentInput.from_upload(upload))
        except AIExtractionError as e:
            app.logger.error(f"Offer letter extraction failed for customer {customer.id}: {e}")
            flash('We could not read your offer letter automatically. Please fill in the details.', 'warning')
        admission = form_values(OFFER_LETTER_FIELDS, extracted)
        admission['hasOfferLetter'] = True
        customer_service.set_kyc(customer, 'admissionKyc', admission)
    elif choice == 'no':
        session[OFFER_LETTER_SESSION_KEY] = 'false'
        customer_service.clear_kyc(customer, 'admissionKyc')
    else:
        flash('Please tell us whether you have an offer letter.', 'error')
        return render_template('loan_application/admission_kyc.html', data={}), 400

    customer_service.mark_step_completed(customer, '/loan-application/admission-kyc')
    return redirect_to_next_step()

@app.route('/loan-application/personal-kyc', methods=['GET', 'POST'])
@customer_required
def loan_personal_kyc():
    customer = g.customer
    if request.method == 'GET':
        return render_template('loan_application/personal_kyc.html', id_document_types=ID_DOCUMENT_TYPES)

    id_type = request.form.get('id_document_type') or ID_DOCUMENT_TYPES[0]
    if id_type not in ID_DOCUMENT_TYPES:
        flash('Please choose a supported ID document.', 'error')
        return render_template('loan_application/personal_kyc.html', id_document_types=ID_DOCUMENT_TYPES), 400

    id_upload = request.files.get('id_document')
    passport_upload = request.files.get('passport')
    try:
        store_uploads(customer, {'id_document': id_upload, 'passport': passport_upload})
        extracted = ai_extractor.extract_personal_kyc(
            DocumentInput.from_upload(id_upload), DocumentInput.from_upload(passport_upload), id_type)
    except AIExtractionError as e:
        app.logger.error(f"Personal KYC extraction failed for customer {customer.id}: {e}")
        flash('We could not read your documents automatically. Please review and fill in the details.', 'warning')
        extracted = with_defaults({'idType': id_type}, PERSONAL_KYC_FIELDS)

    extracted['confirmed'] = False
    customer_service.set_kyc(customer, 'personalKyc', extracted)
    return redirect(step_url('/loan-application/review-personal-kyc'))

@app.route('/loan-application/review-personal-kyc', methods=['GET', 'POST'])
@customer_required
def loan_review_personal_kyc():
    customer = g.customer
    data = (customer.kyc or {}).get('personalKyc') or with_defaults({}, PERSONAL_KYC_FIELDS)
    if request.method == 'GET':
        return render_template('loan_application/review.html', title='Review Personal KYC',
                               fields=PERSONAL_KYC_FIELDS, data=data)

    confirmed = form_values(PERSONAL_KYC_FIELDS, data)
    confirmed['confirmed'] = True
    customer_service.set_kyc(customer, 'personalKyc', confirmed)

    personal_info = {
        'fullName': confirmed.get('nameOnPassport'),
        'dateOfBirth': confirmed.get('dateOfBirth'),
        'address': confirmed.get('permanentAddress'),
        'country': confirmed.get('countryOfUser'),
    }
    customer_service.update_section(customer, 'personalInfo',
                                    {k: v for k, v in personal_info.items() if v and v != NOT_SPECIFIED})
    customer_service.mark_step_completed(customer, '/loan-application/personal-kyc')
    return redirect_to_next_step()

@app.route('/loan-application/academic-kyc', methods=['GET', 'POST'])
@customer_required
def loan_academic_kyc():
    customer = g.customer
    data = (customer.kyc or {}).get('academicKyc') or {}
    if request.method == 'GET':
        return render_template('loan_application/form_step.html', title='Academic KYC',
                               fields=ACADEMIC_KYC_FIELDS, data=data)

    academic = form_values(ACADEMIC_KYC_FIELDS)
    missing = [f for f in ('highestQualification', 'institutionName') if not academic.get(f)]
    if missing:
        flash('Please fill in your qualification and institution.', 'error')
        return render_template('loan_application/form_step.html', title='Academic KYC',
                               fields=ACADEMIC_KYC_FIELDS, data=academic), 400
    academic['confirmed'] = False
    customer_service.set_kyc(customer, 'academicKyc', academic)
    return redirect(step_url('/loan-application/review-academic-kyc'))

@app.route('/loan-application/review-academic-kyc', methods=['GET', 'POST'])
@customer_required
def loan_review_academic_kyc():
    customer = g.customer
    data = (customer.kyc or {}).get('academicKyc') or {}
    if request.method == 'GET':
        return render_template('loan_application/review.html', title='Review Academic KYC',
                               fields=ACADEMIC_KYC_FIELDS, data=data)

    confirmed = form_values(ACADEMIC_KYC_FIELDS, data)
    confirmed['confirmed'] = True
    customer_service.set_kyc(customer, 'academicKyc', confirmed)
    customer_service.mark_step_completed(customer, '/loan-application/academic-kyc')
    return redirect_to_next_step()

@app.route('/loan-application/professional-kyc', methods=['GET', 'POST'])
@customer_required
def loan_professional_kyc():
    customer = g.customer
    if request.method == 'GET':
        return render_template('loan_application/professional_kyc.html', source_types=PROFILE_SOURCE_TYPES)

    source_type = request.form.get('profile_source')
    if source_type not in PROFILE_SOURCE_TYPES:
        flash('Please choose how to share your work profile.', 'error')
        return render_template('loan_application/professional_kyc.html', source_types=PROFILE_SOURCE_TYPES), 400

    if source_type == 'linkedinUrl':
        source = (request.form.get('linkedin_url') or '').strip()
    elif source_type == 'resumeText':
        source = DocumentInput(text=(request.form.get('resume_text') or '').strip() or None)
    else:
        upload = request.files.get('resume')
        store_uploads(customer, {'resume': upload})
        source = DocumentInput.from_upload(upload)

    try:
        profile = ai_extractor.extract_professional_profile(source, source_type)
    except AIExtractionError as e:
        app.logger.error(f"Professional profile extraction failed for customer {customer.id}: {e}")
        flash('We could not read your profile automatically. Please fill in the details.', 'warning')
        profile = with_defaults({}, PROFESSIONAL_PROFILE_FIELDS)

    professional = dict((customer.kyc or {}).get('professionalKyc') or {})
    professional.update({'profile': profile, 'sourceType': source_type, 'confirmed': False})
    customer_service.set_kyc(customer, 'professionalKyc', professional)
    return redirect(step_url('/loan-application/work-employment-kyc'))

@app.route('/loan-application/work-employment-kyc', methods=['GET', 'POST'])
@customer_required
def loan_work_employment_kyc():
    customer = g.customer
    professional = dict((customer.kyc or {}).get('professionalKyc') or {})
    if request.method == 'GET':
        return render_template('loan_application/work_employment_kyc.html',
                               fields=WORK_EMPLOYMENT_FIELDS, data=professional.get('workEmployment') or {},
                               id_document_types=ID_DOCUMENT_TYPES)

    employment = form_values(WORK_EMPLOYMENT_FIELDS)
    if employment.get('coSignatoryChoice') == 'yes':
        id_type = employment.get('coSignatoryIdDocumentType') or ID_DOCUMENT_TYPES[0]
        upload = request.files.get('co_signatory_id')
        try:
            if upload and upload.filename:
                store_uploads(customer, {'co_signatory_id': upload})
            co_signatory = ai_extractor.extract_co_signatory_id(DocumentInput.from_upload(upload), id_type)
        except AIExtractionError as e:
            app.logger.error(f"Co-signatory extraction failed for customer {customer.id}: {e}")
            flash('We could not read the co-signatory ID automatically.', 'warning')
            co_signatory = with_defaults({'idType': id_type}, CO_SIGNATORY_FIELDS)
        employment['coSignatory'] = co_signatory

    professional['workEmployment'] = employment
    customer_service.set_kyc(customer, 'professionalKyc', professional)
    return redirect(step_url('/loan-application/review-professional-kyc'))

@app.route('/loan-application/review-professional-kyc', methods=['GET', 'POST'])
@customer_required
def loan_review_professional_kyc():
    customer = g.customer
    professional = dict((customer.kyc or {}).get('professionalKyc') or {})
    profile = professional.get('profile') or with_defaults({}, PROFESSIONAL_PROFILE_FIELDS)
    if request.method == 'GET':
        return render_template('loan_application/review.html', title='Review Professional KYC',
                               fields=PROFESSIONAL_PROFILE_FIELDS, data=profile,
                               extra=professional.get('workEmployment') or {})

    professional['profile'] = form_values(PROFESSIONAL_PROFILE_FIELDS, profile)
    professional['confirmed'] = True
    customer_service.set_kyc(customer, 'professionalKyc', professional)
    customer_service.mark_step_completed(customer, '/loan-application/professional-kyc')
    return redirect_to_next_step()

@app.route('/loan-application/preferences', methods=['GET', 'POST'])
@customer_required
def loan_preferences():
    customer = g.customer
    application = customer.application or {}
    if request.method == 'GET':
        return render_template('loan_application/preferences.html', fields=PREFERENCE_FIELDS,
                               data=application.get('preferences') or {},
                               recommendations=customer.recommendations or [])

    if request.form.get('action') == 'continue':
        customer_service.mark_step_completed(customer, '/loan-application/preferences')
        return redirect_to_next_step()

    preferences = form_values(PREFERENCE_FIELDS)
    if not all(preferences.get(f) for f in ('preferredCountry1', 'courseLevel', 'courseField')):
        flash('Please choose a country, course level and field of study.', 'error')
        return render_template('loan_application/preferences.html', fields=PREFERENCE_FIELDS,
                               data=preferences, recommendations=[]), 400
    customer_service.update_section(customer, 'application', {'preferences': preferences})

    try:
        result = ai_extractor.generate_university_recommendations(
            preferences['preferredCountry1'], preferences['courseLevel'], preferences['courseField'],
            university_service.active_university_names(), preferences.get('preferredCountry2'))
    except AIExtractionError as e:
        app.logger.error(f"University recommendations failed for customer {customer.id}: {e}")
        flash('Recommendations are unavailable right now. Please try again later.', 'warning')
        result = {'recommendations': []}

    customer_service.update_customer(customer.id, {'recommendations': result['recommendations']})
    return render_template('loan_application/preferences.html', fields=PREFERENCE_FIELDS,
                           data=preferences, recommendations=result['recommendations'])

@app.route('/loan-application/lender-recommendations', methods=['GET', 'POST'])
@customer_required
def loan_lender_recommendations():
    customer = g.customer
    if request.method == 'POST':
        selected = (request.form.get('lender_name') or '').strip()
        if selected:
            customer_service.update_section(customer, 'application', {'selectedLender': selected})
        customer_service.mark_step_completed(customer, '/loan-application/lender-recommendations')
        return redirect_to_next_step()

    kyc = customer.kyc or {}
    admission = kyc.get('admissionKyc') or {}
    country = ((kyc.get('personalKyc') or {}).get('countryOfUser')
               or (customer.personal_info or {}).get('country') or NOT_SPECIFIED)
    recommendations = ai_extractor.generate_lender_recommendations(
        country,
        admission.get('universityName', NOT_SPECIFIED),
        admission.get('admissionFees', NOT_SPECIFIED),
        admission.get('admissionLevel', NOT_SPECIFIED),
    )
    return render_template('loan_application/lender_recommendations.html',
                           recommendations=recommendations,
                           partner_lenders=lender_service.list_lenders(active_only=True))

@app.route('/loan-application/final-summary', methods=['GET', 'POST'])
@customer_required
def loan_final_summary():
    customer = g.customer
    if request.method == 'POST':
        try:
            customer_service.submit_application(customer)
            flash('Your application has been submitted!', 'success')
        except Exception as e:
            db.session.rollback()
            app.logger.error(f"Error submitting application for customer {customer.id}: {e}")
            flash('Could not submit your application. Please try again.', 'error')
        return redirect(step_url('/loan-application/final-summary'))
    return render_template('loan_application/final_summary.html', customer=customer.to_dict())

@app.route('/loan-application/final-summary/pdf')
@customer_required
def loan_final_summary_pdf():
    """Download the application summary as a PDF"""
    customer = g.customer.to_dict()
    try:
        buffer = io.BytesIO()
        doc = SimpleDocTemplate(buffer, pagesize=A4, topMargin=0.5*inch)
        elements = []
        styles = getSampleStyleSheet()

        title_style = ParagraphStyle(
            'CustomTitle',
            parent=styles['Heading1'],
            fontSize=18,
            textColor=colors.darkblue,
            spaceAfter=20,
            alignment=1
        )
        heading_style = ParagraphStyle(
            'Heading2',
            parent=styles['Heading2'],
            fontSize=14,
            textColor=colors.darkblue,
            spaceAfter=10
        )

        elements.append(Paragraph("LOAN APPLICATION SUMMARY", title_style))
        application = customer['application']
        kyc = customer['kyc']
        sections = [
            ('Application', {
                'Reference': customer['id'],
                'Type': application.get('applicationType', 'loan'),
                'Status': application.get('status', 'draft'),
                'Generated': datetime.now().strftime('%d-%b-%Y'),
            }),
            ('Applicant', customer['personalInfo']),
            ('Admission', kyc.get('admissionKyc') or {}),
            ('Personal KYC', kyc.get('personalKyc') or {}),
            ('Academic KYC', kyc.get('academicKyc') or {}),
            ('Professional KYC', (kyc.get('professionalKyc') or {}).get('profile') or {}),
            ('Preferences', application.get('preferences') or {}),
        ]
        for heading, values in sections:
            rows = [[str(k), str(v)] for k, v in values.items()
                    if k != 'confirmed' and not isinstance(v, (dict, list))]
            if not rows:
                continue
            elements.append(Paragraph(heading, heading_style))
            table = Table(rows, colWidths=[2.5*inch, 3.5*inch])
            table.setStyle(TableStyle([
                ('FONTNAME', (0, 0), (-1, -1), 'Helvetica'),
                ('FONTSIZE', (0, 0), (-1, -1), 10),
                ('BOTTOMPADDING', (0, 0), (-1, -1), 6),
                ('GRID', (0, 0), (-1, -1), 0.5, colors.grey),
            ]))
            elements.append(table)
            elements.append(Spacer(1, 12))

        doc.build(elements)
        buffer.seek(0)
        return send_file(
            buffer,
            as_attachment=True,
            download_name=f"Application_Summary_{customer['id']}.pdf",
            mimetype='application/pdf'
        )
    except Exception as e:
        app.logger.error(f"Error generating PDF: {e}")
        return f"Error generating document: {str(e)}", 500


# --- JSON API ---

def no_store(response):
    response.headers['Cache-Control'] = 'no-store, max-age=0'
    return response

@app.route('/api/health')
def health():
    try:
        db.session.execute(text('SELECT 1'))
        return jsonify({
            'status': 'healthy',
            'database': 'connected',
            'timestamp': datetime.utcnow().isoformat(),
        })
    except Exception as e:
        app.logger.error(f"Health check failed: {e}")
        return jsonify({
            'status': 'unhealthy',
            'error': str(e),
            'timestamp': datetime.utcnow().isoformat(),
        }), 500

@app.route('/api/customers')
@api_admin_required
def api_customers():
    customers = customer_service.list_customers(status=request.args.get('status'))
    return no_store(jsonify([c.to_dict() for c in customers]))

@app.route('/api/customers/<customer_id>', methods=['GET', 'PATCH', 'DELETE'])
@api_admin_required
def api_customer(customer_id):
    try:
        if request.method == 'DELETE':
            customer_service.delete_customer(customer_id)
            return no_store(jsonify({'success': True}))
        if request.method == 'PATCH':
            updates = request.get_json(silent=True)
            if not isinstance(updates, dict):
                return jsonify({'error': 'Invalid JSON body'}), 400
            customer = customer_service.update_customer(customer_id, updates)
        else:
            customer = customer_service.get_customer(customer_id)
        return no_store(jsonify(customer.to_dict()))
    except CustomerNotFoundError:
        return jsonify({'error': 'Customer not found'}), 404
    except Exception as e:
        db.session.rollback()
        app.logger.error(f"Error handling customer {customer_id}: {e}")
        return jsonify({'error': 'Failed to process customer request'}), 500


if __name__ == '__main__':
    app.run(debug=DEBUG)
