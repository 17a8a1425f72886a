import os
import json
import tempfile
from types import SimpleNamespace
from unittest.mock import MagicMock

# Point config at throwaway resources before the app module is imported
os.environ['DATABASE_URL'] = 'sqlite:///:memory:'
os.environ['SECRET_KEY'] = 'test-secret-key'
os.environ['GEMINI_API_KEY'] = ''
os.environ['GOOGLE_API_KEY'] = ''
os.environ['WATI_AUTH_TOKEN'] = 'test-wati-token'
os.environ['FLASK_DEBUG'] = 'false'
os.environ['UPLOAD_FOLDER'] = tempfile.mkdtemp(prefix='globcred-uploads-')

import pytest

from app import app as flask_app
from models import db, User, Admin
from services import ai_extractor, wati_client, customer_service


def fake_response(status_code=200, payload=None, text=None, content_type='application/json'):
    """Stand-in for a requests.Response from WATI"""
    response = MagicMock()
    response.status_code = status_code
    response.ok = status_code < 400
    response.headers = {'content-type': content_type}
    if payload is not None:
        response.json.return_value = payload
        response.text = json.dumps(payload)
    else:
        response.json.side_effect = ValueError('No JSON object could be decoded')
        response.text = text or ''
    return response


def gemini_reply(payload):
    """A generate_content result whose text is the JSON-encoded payload"""
    return SimpleNamespace(text=json.dumps(payload))


@pytest.fixture
def app():
    flask_app.config.update(TESTING=True)
    with flask_app.app_context():
        db.drop_all()
        db.create_all()
        yield flask_app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def wati_http(monkeypatch):
    """Replace the WATI HTTP session; configure ``post`` per test"""
    http = MagicMock()
    http.post.return_value = fake_response(200, {'result': True})
    monkeypatch.setattr(wati_client, 'http', http)
    return http


@pytest.fixture
def gemini(monkeypatch):
    """Install a mock Gemini model on the shared extractor"""
    model = MagicMock()
    monkeypatch.setattr(ai_extractor, 'model', model)
    return model


@pytest.fixture
def customer(app):
    user = User(mobile_number='+919876543210')
    db.session.add(user)
    db.session.commit()
    return customer_service.get_customer_for_user(user)


@pytest.fixture
def applicant_client(client, customer):
    """A test client whose session belongs to a verified applicant"""
    with client.session_transaction() as sess:
        sess['user_id'] = customer.user_id
        sess['customer_id'] = customer.id
    return client


@pytest.fixture
def admin_client(client, app):
    admin = Admin(username='admin')
    admin.set_password('secret')
    db.session.add(admin)
    db.session.commit()
    with client.session_transaction() as sess:
        sess['admin_id'] = admin.id
        sess['admin_logged_in'] = True
    return client
