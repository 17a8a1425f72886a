# admin/routes.py
from datetime import datetime, timedelta
from flask import (
    Blueprint, render_template, request, redirect, url_for,
    flash, session, jsonify, current_app, abort
)
from models import db, Customer, Lender, University
from services import customer_service, lender_service, lender_import_service, university_service
from services.customer_service import APPLICATION_STATUSES, CustomerNotFoundError
from services.lender_service import LenderNotFoundError, validate_lender
from services.lender_import_service import LenderImportError
from services.university_service import UniversityNotFoundError
from functools import wraps

# Create admin blueprint
admin_bp = Blueprint('admin', __name__, url_prefix='/admin')

# Admin required decorator
def admin_required(f):
    @wraps(f)
    def decorated_function(*args, **kwargs):
        if 'admin_id' not in session:
            flash('Please log in as admin to access this page.', 'error')
            return redirect(url_for('login'))
        return f(*args, **kwargs)
    return decorated_function

def _split(value):
    return [part.strip() for part in (value or '').split(',') if part.strip()]

@admin_bp.route('/dashboard')
@admin_required
def dashboard():
    """Admin dashboard with customer, lender and university counts"""
    try:
        stats = {
            'total_customers': Customer.query.count(),
            'total_lenders': Lender.query.count(),
            'active_lenders': Lender.query.filter_by(is_active=True).count(),
            'total_universities': University.query.count(),
            'applications': customer_service.status_counts(),
        }
        recent_customers = Customer.query.order_by(Customer.created_at.desc()).limit(20).all()
        return render_template('admin/dashboard.html', stats=stats, customers=recent_customers)

    except Exception as e:
        current_app.logger.error(f"Error loading admin dashboard: {str(e)}")
        flash('Error loading dashboard.', 'error')
        return render_template('admin/dashboard.html', stats={}, customers=[])

# --- Customers ---

@admin_bp.route('/customers')
@admin_required
def customers():
    return render_template('admin/customers.html', customers=customer_service.list_customers())

@admin_bp.route('/customers/<customer_id>', methods=['GET', 'POST'])
@admin_required
def customer_detail(customer_id):
    """JSON detail; POST with a JSON body replaces the given sections"""
    try:
        if request.method == 'POST':
            updates = request.get_json(silent=True)
            if not isinstance(updates, dict):
                return jsonify({'error': 'Invalid JSON body'}), 400
            customer = customer_service.update_customer(customer_id, updates)
        else:
            customer = customer_service.get_customer(customer_id)
        return jsonify(customer.to_dict())
    except CustomerNotFoundError:
        return jsonify({'error': 'Customer not found'}), 404
    except Exception as e:
        db.session.rollback()
        current_app.logger.error(f"Error updating customer {customer_id}: {str(e)}")
        return jsonify({'error': 'Failed to update customer'}), 500

@admin_bp.route('/customers/<customer_id>/delete', methods=['POST'])
@admin_required
def delete_customer(customer_id):
    try:
        customer_service.delete_customer(customer_id)
        flash('Customer deleted.', 'success')
    except CustomerNotFoundError:
        abort(404)
    return redirect(url_for('admin.customers'))

@admin_bp.route('/customers/<customer_id>/documents/<int:index>/review', methods=['POST'])
@admin_required
def review_document(customer_id, index):
    data = request.get_json(silent=True) or request.form
    try:
        document = customer_service.review_document(customer_id, index, data.get('status'), data.get('notes'))
        return jsonify({'success': True, 'document': document})
    except CustomerNotFoundError:
        return jsonify({'error': 'Customer not found'}), 404
    except IndexError:
        return jsonify({'error': 'Document not found'}), 404
    except ValueError as e:
        return jsonify({'error': str(e)}), 400

# --- Applications ---

@admin_bp.route('/applications')
@admin_required
def applications():
    """View customer applications filtered by status"""
    status_filter = request.args.get('status', 'all')
    if status_filter != 'all' and status_filter not in APPLICATION_STATUSES:
        flash(f'Unknown status: {status_filter}', 'error')
        status_filter = 'all'

    customers = customer_service.list_customers(status=None if status_filter == 'all' else status_filter)
    status_counts = customer_service.status_counts()
    status_counts['all'] = sum(status_counts.values())
    return render_template('admin/applications.html',
                           customers=customers,
                           status_counts=status_counts,
                           current_status=status_filter)

# --- Lenders ---

@admin_bp.route('/lenders', methods=['GET', 'POST'])
@admin_required
def lenders():
    if request.method == 'GET':
        return render_template('admin/lenders.html', lenders=lender_service.list_lenders())

    if request.is_json:
        data = request.get_json(silent=True) or {}
    else:
        form = request.form
        data = {
            'name': form.get('name'),
            'description': form.get('description'),
            'logoUrl': form.get('logoUrl'),
            'website': form.get('website'),
            'contactEmail': form.get('contactEmail'),
            'contactPhone': form.get('contactPhone'),
            'countries': _split(form.get('countries')),
            'isActive': form.get('isActive', 'true').lower() != 'false',
            'criteria': {
                'interestRates': form.get('interestRates'),
                'processingTime': form.get('processingTime'),
                'collateralRequired': form.get('collateralRequired') in ('yes', 'true', 'on'),
                'coApplicantRequired': form.get('coApplicantRequired') in ('yes', 'true', 'on'),
                'eligibleCourses': _split(form.get('eligibleCourses')),
            },
        }

    lender_data = validate_lender(data)
    if lender_data is None:
        message = 'Lender needs a name, at least one country and a criteria block.'
        if request.is_json:
            return jsonify({'error': message}), 400
        flash(message, 'error')
        return redirect(url_for('admin.lenders'))

    try:
        lender = lender_service.add_lender(lender_data)
    except Exception as e:
        db.session.rollback()
        current_app.logger.error(f"Error adding lender: {str(e)}")
        if request.is_json:
            return jsonify({'error': 'Failed to add lender'}), 500
        flash('Error adding lender.', 'error')
        return redirect(url_for('admin.lenders'))

    if request.is_json:
        return jsonify(lender.to_dict()), 201
    flash(f'Lender {lender.name} added.', 'success')
    return redirect(url_for('admin.lenders'))

@admin_bp.route('/lenders/<lender_id>/delete', methods=['POST'])
@admin_required
def delete_lender(lender_id):
    try:
        lender_service.delete_lender(lender_id)
        flash('Lender deleted.', 'success')
    except LenderNotFoundError:
        abort(404)
    return redirect(url_for('admin.lenders'))

@admin_bp.route('/lenders/upload', methods=['POST'])
@admin_required
def upload_lenders():
    """Parse a lender file; with ``preview`` set, nothing is saved"""
    file = request.files.get('file')
    if not file or not file.filename:
        return jsonify({'error': 'No file uploaded'}), 400

    try:
        parsed = lender_import_service.parse_upload(file.filename, file.read())
    except LenderImportError as e:
        return jsonify({'error': str(e)}), 400

    if request.form.get('preview'):
        return jsonify(parsed)

    result = lender_service.bulk_upload(parsed['data'])
    current_app.logger.info(f"Lender upload {file.filename}: {result['success']} added")
    return jsonify({
        'success': result['success'],
        'failed': result['failed'],
        'errors': parsed['errors'] + result['errors'],
        'newColumns': parsed['newColumns'],
    })

@admin_bp.route('/lenders/bulk', methods=['POST'])
@admin_required
def bulk_lenders():
    payload = request.get_json(silent=True) or {}
    records = payload.get('lenders')
    if not isinstance(records, list):
        return jsonify({'error': 'Expected a "lenders" array'}), 400
    return jsonify(lender_service.bulk_upload(records))

# --- Universities ---

@admin_bp.route('/universities', methods=['GET', 'POST'])
@admin_required
def universities():
    if request.method == 'POST':
        try:
            university = university_service.add_university({
                'name': (request.form.get('name') or '').strip(),
                'country': (request.form.get('country') or '').strip(),
                'city': (request.form.get('city') or '').strip(),
                'website': (request.form.get('website') or '').strip(),
            })
            flash(f'University {university.name} added.', 'success')
        except ValueError as e:
            flash(str(e), 'error')
        return redirect(url_for('admin.universities'))

    listing = university_service.list_universities(
        page=request.args.get('page', 1), search=request.args.get('q'))
    return render_template('admin/universities.html', listing=listing, search=request.args.get('q', ''))

@admin_bp.route('/universities/<university_id>', methods=['POST'])
@admin_required
def update_university(university_id):
    updates = request.get_json(silent=True)
    if not isinstance(updates, dict):
        return jsonify({'error': 'Invalid JSON body'}), 400
    try:
        university = university_service.update_university(university_id, updates)
    except UniversityNotFoundError:
        return jsonify({'error': 'University not found'}), 404
    return jsonify(university.to_dict())

@admin_bp.route('/universities/<university_id>/delete', methods=['POST'])
@admin_required
def delete_university(university_id):
    try:
        university_service.delete_university(university_id)
        flash('University deleted.', 'success')
    except UniversityNotFoundError:
        abort(404)
    return redirect(url_for('admin.universities'))

@admin_bp.route('/universities/upload', methods=['POST'])
@admin_required
def upload_universities():
    file = request.files.get('file')
    if not file or not file.filename.lower().endswith('.csv'):
        return jsonify({'error': 'Please upload a CSV file'}), 400
    try:
        content = file.read().decode('utf-8-sig', errors='replace')
        result = university_service.import_csv(content, enrich=request.form.get('enrich', 'true') != 'false')
    except ValueError as e:
        return jsonify({'error': str(e)}), 400
    return jsonify(result)

@admin_bp.route('/logout')
def admin_logout():
    """Admin logout route"""
    session.pop('admin_id', None)
    session.pop('admin_logged_in', None)
    flash('You have been logged out from admin panel.', 'success')
    return redirect(url_for('login'))

# API endpoints for admin
@admin_bp.route('/api/stats')
@admin_required
def api_stats():
    """Customer and application counts as JSON"""
    try:
        one_week_ago = datetime.utcnow() - timedelta(days=7)
        stats = {
            'customers': Customer.query.count(),
            'last_week': Customer.query.filter(Customer.created_at >= one_week_ago).count(),
            'lenders': Lender.query.count(),
            'universities': University.query.count(),
            'applications': customer_service.status_counts(),
        }
        return jsonify(stats)

    except Exception as e:
        return jsonify({'error': str(e)}), 500
