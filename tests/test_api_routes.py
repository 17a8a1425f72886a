"""Tests for the JSON API and response headers."""

from services import customer_service


def test_health(client):
    response = client.get('/api/health')
    assert response.status_code == 200
    body = response.get_json()
    assert body['status'] == 'healthy'
    assert body['database'] == 'connected'


def test_api_responses_skip_security_headers(client):
    response = client.get('/api/health')
    assert 'Content-Security-Policy' not in response.headers
    assert 'X-Frame-Options' not in response.headers


def test_pages_get_security_headers(client):
    response = client.get('/')
    assert response.headers['X-Content-Type-Options'] == 'nosniff'
    assert response.headers['X-Frame-Options'] == 'DENY'
    assert response.headers['Referrer-Policy'] == 'strict-origin-when-cross-origin'
    csp = response.headers['Content-Security-Policy']
    assert "object-src 'none'" in csp
    assert 'https://live-mt-server.wati.io' in csp
    assert 'upgrade-insecure-requests' in csp


def test_home_has_no_progress_bar(client):
    html = client.get('/').get_data(as_text=True)
    assert 'progress-bar' not in html


class TestCustomersApi:
    def test_requires_admin(self, client, customer):
        response = client.get('/api/customers')
        assert response.status_code == 401
        assert response.get_json() == {'error': 'Unauthorized'}
        assert client.delete(f'/api/customers/{customer.id}').status_code == 401

    def test_list(self, admin_client, customer):
        response = admin_client.get('/api/customers')
        assert response.headers['Cache-Control'] == 'no-store, max-age=0'
        assert [c['id'] for c in response.get_json()] == [customer.id]

    def test_list_by_status(self, admin_client, customer):
        assert admin_client.get('/api/customers?status=submitted').get_json() == []
        assert len(admin_client.get('/api/customers?status=draft').get_json()) == 1

    def test_get(self, admin_client, customer):
        body = admin_client.get(f'/api/customers/{customer.id}').get_json()
        assert body['id'] == customer.id
        assert body['documents'] == {'submitted': []}

    def test_patch_replaces_sections(self, admin_client, customer):
        response = admin_client.patch(f'/api/customers/{customer.id}',
                                      json={'id': 'other', 'personalInfo': {'fullName': 'Asha Rao'}})
        body = response.get_json()
        assert body['id'] == customer.id
        assert body['personalInfo'] == {'fullName': 'Asha Rao'}
        assert response.headers['Cache-Control'] == 'no-store, max-age=0'

    def test_patch_needs_object(self, admin_client, customer):
        response = admin_client.patch(f'/api/customers/{customer.id}', json=['x'])
        assert response.status_code == 400

    def test_delete(self, admin_client, customer):
        response = admin_client.delete(f'/api/customers/{customer.id}')
        assert response.get_json() == {'success': True}
        assert customer_service.list_customers() == []

    def test_not_found(self, admin_client, app):
        for method in ('get', 'patch', 'delete'):
            response = getattr(admin_client, method)('/api/customers/missing', json={})
            assert response.status_code == 404
            assert response.get_json() == {'error': 'Customer not found'}
