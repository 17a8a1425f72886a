# services/customer_service.py

import logging
from datetime import datetime

from models import db, Customer

logger = logging.getLogger(__name__)

APPLICATION_STATUSES = ('draft', 'submitted', 'in_review', 'approved', 'rejected')
DOCUMENT_STATUSES = ('pending', 'approved', 'rejected')

# Top-level keys a caller may write; everything else is ignored
_SECTIONS = {
    'personalInfo': 'personal_info',
    'application': 'application',
    'documents': 'documents',
    'kyc': 'kyc',
    'recommendations': 'recommendations',
}


class CustomerNotFoundError(Exception):
    pass


class CustomerService:
    def get_customer(self, customer_id):
        customer = db.session.get(Customer, customer_id)
        if customer is None:
            raise CustomerNotFoundError(customer_id)
        return customer

    def get_customer_for_user(self, user):
        """Load the customer document linked to a verified user, creating it on first login"""
        if user.customer is not None:
            return user.customer
        customer = Customer(
            user_id=user.id,
            personal_info={'phone': user.mobile_number},
            application={'status': 'draft'},
            documents={'submitted': []},
            kyc={},
            recommendations=[],
        )
        db.session.add(customer)
        db.session.commit()
        logger.info(f"Created customer {customer.id} for user {user.id}")
        return customer

    def list_customers(self, status=None):
        customers = Customer.query.order_by(Customer.created_at.desc()).all()
        if status:
            customers = [c for c in customers if (c.application or {}).get('status', 'draft') == status]
        return customers

    def status_counts(self):
        counts = {status: 0 for status in APPLICATION_STATUSES}
        for customer in Customer.query.all():
            status = (customer.application or {}).get('status', 'draft')
            counts[status] = counts.get(status, 0) + 1
        return counts

    def create_customer(self, data):
        customer = Customer(
            personal_info=data.get('personalInfo') or {},
            application=data.get('application') or {'status': 'draft'},
            documents=data.get('documents') or {'submitted': []},
            kyc=data.get('kyc') or {},
            recommendations=data.get('recommendations') or [],
        )
        db.session.add(customer)
        db.session.commit()
        return customer

    def update_customer(self, customer_id, updates):
        """Replace top-level sections; ``id`` and unknown keys are ignored"""
        customer = self.get_customer(customer_id)
        for key, attribute in _SECTIONS.items():
            if key in updates:
                setattr(customer, attribute, updates[key])
        customer.updated_at = datetime.utcnow()
        db.session.commit()
        return customer

    def update_section(self, customer, key, values):
        """Merge ``values`` into one document section"""
        attribute = _SECTIONS[key]
        merged = dict(getattr(customer, attribute) or {})
        merged.update(values)
        setattr(customer, attribute, merged)
        customer.updated_at = datetime.utcnow()
        db.session.commit()
        return merged

    def set_kyc(self, customer, name, values):
        kyc = dict(customer.kyc or {})
        kyc[name] = values
        customer.kyc = kyc
        customer.updated_at = datetime.utcnow()
        db.session.commit()

    def clear_kyc(self, customer, name):
        kyc = dict(customer.kyc or {})
        if kyc.pop(name, None) is not None:
            customer.kyc = kyc
            db.session.commit()

    def mark_step_completed(self, customer, step_path):
        application = dict(customer.application or {'status': 'draft'})
        application['lastStepCompleted'] = step_path
        application['updatedAt'] = datetime.utcnow().isoformat()
        customer.application = application
        db.session.commit()

    def submit_application(self, customer):
        application = dict(customer.application or {})
        application['status'] = 'submitted'
        application['submittedAt'] = datetime.utcnow().isoformat()
        customer.application = application
        customer.updated_at = datetime.utcnow()
        db.session.commit()

    def add_document(self, customer, doc_type, name, url, size=None, content_type=None):
        documents = dict(customer.documents or {})
        submitted = list(documents.get('submitted') or [])
        submitted.append({
            'type': doc_type,
            'status': 'pending',
            'url': url,
            'name': name,
            'submittedAt': datetime.utcnow().isoformat(),
            'size': size,
            'contentType': content_type,
        })
        documents['submitted'] = submitted
        customer.documents = documents
        db.session.commit()

    def review_document(self, customer_id, index, status, notes=None):
        if status not in DOCUMENT_STATUSES:
            raise ValueError(f"Invalid document status: {status}")
        customer = self.get_customer(customer_id)
        documents = dict(customer.documents or {})
        submitted = [dict(d) for d in documents.get('submitted') or []]
        if not 0 <= index < len(submitted):
            raise IndexError(index)
        submitted[index]['status'] = status
        submitted[index]['reviewedAt'] = datetime.utcnow().isoformat()
        if notes:
            submitted[index]['reviewNotes'] = notes
        documents['submitted'] = submitted
        customer.documents = documents
        db.session.commit()
        return submitted[index]

    def delete_customer(self, customer_id):
        customer = self.get_customer(customer_id)
        db.session.delete(customer)
        db.session.commit()
