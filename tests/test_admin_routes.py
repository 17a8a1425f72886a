"""Tests for the admin blueprint."""

import json
from io import BytesIO

from conftest import gemini_reply
from models import db, Admin, Lender, University
from services import customer_service, lender_service, university_service


class TestAdminGuard:
    def test_redirects_to_login(self, client):
        response = client.get('/admin/dashboard')
        assert response.status_code == 302
        assert response.headers['Location'] == '/login'

    def test_login(self, client, app):
        admin = Admin(username='ops')
        admin.set_password('s3cret')
        db.session.add(admin)
        db.session.commit()

        response = client.post('/login', data={'username': 'ops', 'password': 's3cret'})
        assert response.headers['Location'] == '/admin/dashboard'
        with client.session_transaction() as sess:
            assert sess['admin_id'] == admin.id

    def test_bad_password(self, client, app):
        response = client.post('/login', data={'username': 'ops', 'password': 'nope'})
        assert response.status_code == 200
        assert 'Invalid admin credentials.' in response.get_data(as_text=True)

    def test_logout(self, admin_client):
        admin_client.get('/admin/logout')
        assert admin_client.get('/admin/dashboard').status_code == 302


class TestDashboard:
    def test_counts(self, admin_client, customer):
        lender_service.add_lender({'name': 'Avanse', 'countries': ['IN']})
        html = admin_client.get('/admin/dashboard').get_data(as_text=True)
        assert 'Customers: 1' in html
        assert 'Lenders: 1 (1 active)' in html
        assert customer.id[:8] in html

    def test_stats_api(self, admin_client, customer):
        customer_service.submit_application(customer)
        stats = admin_client.get('/admin/api/stats').get_json()
        assert stats['customers'] == 1
        assert stats['last_week'] == 1
        assert stats['applications']['submitted'] == 1


class TestCustomers:
    def test_detail_and_update(self, admin_client, customer):
        response = admin_client.get(f'/admin/customers/{customer.id}')
        assert response.get_json()['personalInfo']['phone'] == '+919876543210'

        response = admin_client.post(f'/admin/customers/{customer.id}',
                                     json={'application': {'status': 'under_review'}})
        assert response.get_json()['application'] == {'status': 'under_review'}

    def test_unknown_customer(self, admin_client, app):
        assert admin_client.get('/admin/customers/missing').status_code == 404

    def test_applications_filter(self, admin_client, customer):
        other = customer_service.create_customer({'personalInfo': {'phone': '+447700900123'}})
        customer_service.submit_application(other)
        html = admin_client.get('/admin/applications?status=submitted').get_data(as_text=True)
        assert other.id[:8] in html
        assert customer.id[:8] not in html

    def test_unknown_status_shows_all(self, admin_client, customer):
        html = admin_client.get('/admin/applications?status=lost').get_data(as_text=True)
        assert 'Unknown status: lost' in html
        assert customer.id[:8] in html

    def test_document_review(self, admin_client, customer):
        customer_service.add_document(customer, 'passport', 'passport.pdf', '/uploads/p.pdf')
        response = admin_client.post(f'/admin/customers/{customer.id}/documents/0/review',
                                     json={'status': 'rejected', 'notes': 'Blurred'})
        assert response.get_json()['document']['status'] == 'rejected'

        assert admin_client.post(f'/admin/customers/{customer.id}/documents/5/review',
                                 json={'status': 'approved'}).status_code == 404
        assert admin_client.post(f'/admin/customers/{customer.id}/documents/0/review',
                                 json={'status': 'lost'}).status_code == 400

    def test_delete(self, admin_client, customer):
        response = admin_client.post(f'/admin/customers/{customer.id}/delete')
        assert response.headers['Location'] == '/admin/customers'
        assert customer_service.list_customers() == []


class TestLenders:
    def test_add_json(self, admin_client):
        response = admin_client.post('/admin/lenders', json={
            'name': 'Prodigy Finance', 'countries': ['GB', 'US'], 'criteria': {'eligibleCourses': ['MBA']},
        })
        assert response.status_code == 201
        body = response.get_json()
        assert body['name'] == 'Prodigy Finance'
        assert body['criteria']['eligibleCourses'] == ['MBA']

    def test_add_json_invalid(self, admin_client):
        response = admin_client.post('/admin/lenders', json={'name': 'No Countries', 'criteria': {}})
        assert response.status_code == 400
        assert Lender.query.count() == 0

    def test_add_form(self, admin_client):
        response = admin_client.post('/admin/lenders', data={
            'name': 'Avanse', 'countries': 'IN, NP', 'eligibleCourses': 'STEM, MBA', 'collateralRequired': 'on',
        })
        assert response.headers['Location'] == '/admin/lenders'
        lender = Lender.query.one()
        assert lender.data['countries'] == ['IN', 'NP']
        assert lender.data['criteria']['collateralRequired'] is True
        assert 'Avanse' in admin_client.get('/admin/lenders').get_data(as_text=True)

    def test_upload_preview_saves_nothing(self, admin_client):
        content = b'Lender Name,Interest Rate,Repayment Holiday\nAvanse,9.5%,6 months\n'
        response = admin_client.post('/admin/lenders/upload', data={
            'file': (BytesIO(content), 'lenders.csv'), 'preview': '1',
        }, content_type='multipart/form-data')
        body = response.get_json()
        assert body['data'][0]['name'] == 'Avanse'
        assert body['newColumns'] == ['Repayment Holiday']
        assert Lender.query.count() == 0

    def test_upload_saves(self, admin_client):
        content = json.dumps([{'name': 'MPOWER', 'countries': ['US']}, {'name': 'Avanse'}]).encode()
        response = admin_client.post('/admin/lenders/upload', data={
            'file': (BytesIO(content), 'lenders.json'),
        }, content_type='multipart/form-data')
        assert response.get_json()['success'] == 2
        assert Lender.query.count() == 2

    def test_upload_rejects_unknown_type(self, admin_client):
        response = admin_client.post('/admin/lenders/upload', data={
            'file': (BytesIO(b'data'), 'lenders.xlsx'),
        }, content_type='multipart/form-data')
        assert response.status_code == 400
        assert 'Invalid file type' in response.get_json()['error']

    def test_upload_requires_file(self, admin_client):
        assert admin_client.post('/admin/lenders/upload', data={}).status_code == 400

    def test_bulk(self, admin_client):
        response = admin_client.post('/admin/lenders/bulk', json={'lenders': [{'name': 'A'}, 'bad']})
        assert response.get_json() == {'success': 1, 'failed': 1,
                                       'errors': [{'row': 2, 'error': 'Invalid row format'}]}
        assert admin_client.post('/admin/lenders/bulk', json={'lenders': 'A'}).status_code == 400

    def test_delete(self, admin_client):
        lender = lender_service.add_lender({'name': 'Avanse', 'countries': ['IN']})
        admin_client.post(f'/admin/lenders/{lender.id}/delete')
        assert Lender.query.count() == 0
        assert admin_client.post('/admin/lenders/missing/delete').status_code == 404


class TestUniversities:
    def test_paging(self, admin_client):
        university_service.bulk_upload([{'name': f'University {i:02d}', 'country': 'UK'} for i in range(25)])
        html = admin_client.get('/admin/universities?page=2').get_data(as_text=True)
        assert 'Page 2 of 2 (25 total)' in html
        assert 'University 24' in html
        assert 'University 00' not in html

    def test_page_out_of_range_is_clamped(self, admin_client):
        university_service.add_university({'name': 'University of Leeds'})
        html = admin_client.get('/admin/universities?page=9').get_data(as_text=True)
        assert 'Page 1 of 1 (1 total)' in html

    def test_search(self, admin_client):
        university_service.add_university({'name': 'University of Leeds'})
        university_service.add_university({'name': 'McGill University'})
        html = admin_client.get('/admin/universities?q=mcgill').get_data(as_text=True)
        assert 'McGill University' in html
        assert 'University of Leeds' not in html

    def test_add_form(self, admin_client):
        admin_client.post('/admin/universities', data={'name': 'University of Leeds', 'country': 'UK'})
        assert University.query.one().country == 'UK'

    def test_add_without_name(self, admin_client):
        response = admin_client.post('/admin/universities', data={'country': 'UK'}, follow_redirects=True)
        assert 'University name is required' in response.get_data(as_text=True)

    def test_update(self, admin_client):
        university = university_service.add_university({'name': 'Leeds'})
        response = admin_client.post(f'/admin/universities/{university.id}', json={'qsRanking': 82})
        assert response.get_json()['qsRanking'] == 82
        assert admin_client.post('/admin/universities/missing', json={}).status_code == 404

    def test_csv_upload_without_enrichment(self, admin_client):
        content = b'name,country\nUniversity of Leeds,UK\nMcGill University,Canada\n'
        response = admin_client.post('/admin/universities/upload', data={
            'file': (BytesIO(content), 'universities.csv'), 'enrich': 'false',
        }, content_type='multipart/form-data')
        assert response.get_json()['success'] == 2
        assert University.query.filter_by(name='McGill University').one().data['dataSource'] == 'manual'

    def test_csv_upload_requires_name_column(self, admin_client):
        response = admin_client.post('/admin/universities/upload', data={
            'file': (BytesIO(b'title\nLeeds\n'), 'universities.csv'),
        }, content_type='multipart/form-data')
        assert response.status_code == 400

    def test_csv_upload_requires_csv(self, admin_client):
        response = admin_client.post('/admin/universities/upload', data={
            'file': (BytesIO(b'{}'), 'universities.json'),
        }, content_type='multipart/form-data')
        assert response.status_code == 400

    def test_csv_upload_survives_malformed_enrichment(self, admin_client, gemini):
        gemini.generate_content.return_value = gemini_reply({'notablePrograms': [{'name': 'MSc CS'}]})
        content = b'name,country\nUniversity of Oxford,UK\n'
        response = admin_client.post('/admin/universities/upload', data={
            'file': (BytesIO(content), 'universities.csv'),
        }, content_type='multipart/form-data')
        assert response.status_code == 200
        assert response.get_json()['success'] == 1
        assert University.query.one().data['dataSource'] == 'manual'
