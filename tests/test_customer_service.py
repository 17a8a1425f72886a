"""Tests for customer documents."""

import pytest

from models import db, Customer, User
from services import customer_service
from services.customer_service import CustomerNotFoundError


class TestCustomerLifecycle:
    def test_first_login_creates_customer(self, app):
        user = User(mobile_number='+447700900123')
        db.session.add(user)
        db.session.commit()

        customer = customer_service.get_customer_for_user(user)
        assert customer.personal_info == {'phone': '+447700900123'}
        assert customer.to_dict()['application'] == {'status': 'draft'}
        # A second login reuses the same document
        assert customer_service.get_customer_for_user(user).id == customer.id

    def test_missing_sections_get_defaults(self, app):
        customer = Customer()
        db.session.add(customer)
        db.session.commit()
        data = customer.to_dict()
        assert data['personalInfo'] == {}
        assert data['documents'] == {'submitted': []}
        assert data['application'] == {'status': 'draft'}

    def test_unknown_customer(self, app):
        with pytest.raises(CustomerNotFoundError):
            customer_service.get_customer('missing')

    def test_update_never_changes_id(self, app, customer):
        original_id = customer.id
        before = customer.updated_at
        customer_service.update_customer(customer.id, {'id': 'other', 'kyc': {'a': 1}, 'unknown': 'x'})
        updated = customer_service.get_customer(original_id)
        assert updated.kyc == {'a': 1}
        assert updated.updated_at >= before

    def test_update_section_merges(self, app, customer):
        customer_service.update_section(customer, 'personalInfo', {'fullName': 'Asha Rao'})
        assert customer.personal_info == {'phone': '+919876543210', 'fullName': 'Asha Rao'}

    def test_delete(self, app, customer):
        customer_service.delete_customer(customer.id)
        with pytest.raises(CustomerNotFoundError):
            customer_service.get_customer(customer.id)


class TestApplicationStatus:
    def test_submit(self, app, customer):
        customer_service.submit_application(customer)
        assert customer.application['status'] == 'submitted'
        assert 'submittedAt' in customer.application

    def test_list_and_count_by_status(self, app, customer):
        other = customer_service.create_customer({'personalInfo': {'phone': '+15550100'}})
        customer_service.submit_application(other)

        assert [c.id for c in customer_service.list_customers(status='submitted')] == [other.id]
        counts = customer_service.status_counts()
        assert counts['draft'] == 1
        assert counts['submitted'] == 1
        assert counts['approved'] == 0


class TestDocuments:
    def test_added_document_is_pending(self, app, customer):
        customer_service.add_document(customer, 'passport', 'passport.pdf', '/uploads/p.pdf', 1024,
                                      'application/pdf')
        document = customer.documents['submitted'][0]
        assert document['status'] == 'pending'
        assert document['type'] == 'passport'
        assert document['size'] == 1024

    def test_review(self, app, customer):
        customer_service.add_document(customer, 'passport', 'passport.pdf', '/uploads/p.pdf')
        reviewed = customer_service.review_document(customer.id, 0, 'approved', 'Clear scan')
        assert reviewed['status'] == 'approved'
        assert reviewed['reviewNotes'] == 'Clear scan'
        assert customer_service.get_customer(customer.id).documents['submitted'][0]['status'] == 'approved'

    def test_review_rejects_bad_status_and_index(self, app, customer):
        customer_service.add_document(customer, 'passport', 'passport.pdf', '/uploads/p.pdf')
        with pytest.raises(ValueError):
            customer_service.review_document(customer.id, 0, 'maybe')
        with pytest.raises(IndexError):
            customer_service.review_document(customer.id, 3, 'approved')

    def test_kyc_sections(self, app, customer):
        customer_service.set_kyc(customer, 'admissionKyc', {'universityName': 'University of Leeds'})
        assert customer.kyc['admissionKyc']['universityName'] == 'University of Leeds'
        customer_service.clear_kyc(customer, 'admissionKyc')
        assert 'admissionKyc' not in customer.kyc
