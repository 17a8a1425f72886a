"""Tests for OTP generation, delivery and verification."""

from datetime import datetime, timedelta

import pytest
import requests

from conftest import fake_response
from models import db, OTPCode
from services import auth_service

PHONE = '+919876543210'


class TestSendOtp:
    def test_success_stores_otp_and_sends_it(self, app, wati_http):
        result = auth_service.send_otp(PHONE)

        assert result.success is True
        assert result.message == 'OTP sent successfully'
        record = db.session.get(OTPCode, PHONE)
        assert record is not None
        assert len(record.otp) == 4 and record.otp.isdigit()
        assert record.used is False
        assert record.expires_at > datetime.utcnow()
        sent_parameters = wati_http.post.call_args.kwargs['json']['parameters']
        assert record.otp in sent_parameters

    def test_resend_replaces_previous_code(self, app, wati_http, monkeypatch):
        codes = iter(['1111', '2222'])
        monkeypatch.setattr(auth_service, 'generate_otp', lambda: next(codes))
        auth_service.send_otp(PHONE)
        auth_service.send_otp(PHONE)
        assert OTPCode.query.count() == 1
        assert db.session.get(OTPCode, PHONE).otp == '2222'

    def test_server_error_is_retryable(self, app, wati_http):
        wati_http.post.return_value = fake_response(500, {'message': 'Internal error'})
        result = auth_service.send_otp(PHONE)
        assert result.success is False
        assert result.is_retryable is True
        assert result.message == 'Temporary service issue. Please try again in a few minutes.'
        assert result.error['name'] == 'WATIServerError'

    def test_bad_request_is_not_retryable(self, app, wati_http):
        wati_http.post.return_value = fake_response(400, {'message': 'Invalid WhatsApp number'})
        result = auth_service.send_otp(PHONE)
        assert result.success is False
        assert result.is_retryable is False
        assert result.message == 'Invalid WhatsApp number'

    def test_other_api_failure_is_retryable(self, app, wati_http):
        wati_http.post.return_value = fake_response(200, {'result': False})
        result = auth_service.send_otp(PHONE)
        assert result.success is False
        assert result.is_retryable is True
        assert result.error['name'] == 'WATIApiError'

    def test_unparseable_reply_keeps_stored_otp(self, app, wati_http):
        wati_http.post.return_value = fake_response(200, None, text='<html>')
        result = auth_service.send_otp(PHONE)
        assert result.success is False
        assert result.is_retryable is True
        assert result.message == 'Invalid response from OTP service'
        assert result.error['name'] == 'ParseError'
        assert db.session.get(OTPCode, PHONE) is not None

    def test_network_error_discards_stored_otp(self, app, wati_http):
        wati_http.post.side_effect = requests.exceptions.ConnectionError()
        result = auth_service.send_otp(PHONE)
        assert result.success is False
        assert result.message == 'Network error. Please check your internet connection.'
        assert db.session.get(OTPCode, PHONE) is None

    def test_to_dict(self, app, wati_http):
        data = auth_service.send_otp(PHONE).to_dict()
        assert data == {'success': True, 'message': 'OTP sent successfully', 'isRetryable': False}


class TestVerifyOtp:
    @pytest.fixture
    def stored(self, app):
        record = OTPCode(phone_number=PHONE, otp='4321', used=False,
                         expires_at=datetime.utcnow() + timedelta(minutes=5))
        db.session.add(record)
        db.session.commit()
        return record

    def test_correct_code(self, stored):
        result = auth_service.verify_otp(PHONE, '4321')
        assert result.success is True
        assert stored.used is True
        assert stored.verified_at is not None

    def test_code_cannot_be_reused(self, stored):
        auth_service.verify_otp(PHONE, '4321')
        result = auth_service.verify_otp(PHONE, '4321')
        assert result.success is False
        assert result.message == 'OTP has already been used'

    def test_wrong_code(self, stored):
        result = auth_service.verify_otp(PHONE, '0000')
        assert result.message == 'Invalid OTP'
        assert stored.used is False

    def test_expired_code(self, stored):
        stored.expires_at = datetime.utcnow() - timedelta(seconds=1)
        db.session.commit()
        assert auth_service.verify_otp(PHONE, '4321').message == 'OTP has expired'

    def test_unknown_phone(self, app):
        assert auth_service.verify_otp('+10000000000', '1234').message == 'OTP not found or expired'
