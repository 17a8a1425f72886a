# services/auth_service.py

import random
import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Optional

import config
from models import db, OTPCode
from .notification_service import NotificationError

logger = logging.getLogger(__name__)


@dataclass
class OTPResult:
    success: bool
    message: str
    is_retryable: bool = False
    error: Optional[dict] = field(default=None)

    def to_dict(self):
        data = {'success': self.success, 'message': self.message, 'isRetryable': self.is_retryable}
        if self.error:
            data['error'] = self.error
        return data


class AuthService:
    def __init__(self, wati_client):
        self.wati = wati_client

    def generate_otp(self):
        """Generate a 4-digit OTP"""
        return str(random.randint(1000, 9999))

    def _store_otp(self, phone_number, otp):
        record = db.session.get(OTPCode, phone_number)
        if record is None:
            record = OTPCode(phone_number=phone_number)
            db.session.add(record)
        record.otp = otp
        record.used = False
        record.verified_at = None
        record.created_at = datetime.utcnow()
        record.expires_at = datetime.utcnow() + timedelta(seconds=config.OTP_EXPIRY_SECONDS)
        db.session.commit()

    def _discard_otp(self, phone_number):
        try:
            record = db.session.get(OTPCode, phone_number)
            if record is not None:
                db.session.delete(record)
                db.session.commit()
        except Exception as e:
            db.session.rollback()
            logger.error(f"Error cleaning up OTP for {phone_number}: {e}")

    def send_otp(self, phone_number):
        """Store a fresh OTP and deliver it over WhatsApp"""
        otp = self.generate_otp()
        self._store_otp(phone_number, otp)
        logger.info(f"OTP stored for {phone_number}")

        try:
            response, payload = self.wati.send_template_message(
                phone_number,
                config.OTP_TEMPLATE_NAME,
                config.OTP_BROADCAST_NAME,
                [{'name': '1', 'value': otp}],
            )
        except NotificationError as e:
            if e.status is not None:
                # The request went through but the body could not be read
                return OTPResult(False, str(e), True,
                                 {'name': 'ParseError', 'message': 'Could not process the response from the server',
                                  'status': e.status})
            self._discard_otp(phone_number)
            return OTPResult(False, str(e), e.retryable, {'name': 'WATIRequestError', 'message': str(e)})

        if self.wati.is_success(response, payload):
            logger.info(f"OTP sent successfully to {phone_number}")
            return OTPResult(True, payload.get('message') or 'OTP sent successfully', False)

        error_message = (payload.get('message') or payload.get('error') or payload.get('statusText')
                         or f"Failed to send OTP (HTTP {response.status_code})")
        logger.error(f"WATI API error: {error_message}")

        if response.status_code == 500:
            return OTPResult(False, 'Temporary service issue. Please try again in a few minutes.', True,
                             {'name': 'WATIServerError', 'message': error_message, 'status': 500})

        return OTPResult(False, error_message, response.status_code != 400,
                         {'name': 'WATIApiError', 'message': error_message, 'status': response.status_code})

    def verify_otp(self, phone_number, entered_otp):
        """Verify the entered OTP"""
        record = db.session.get(OTPCode, phone_number)
        if record is None:
            return OTPResult(False, 'OTP not found or expired')
        if record.used:
            return OTPResult(False, 'OTP has already been used')
        if record.expires_at < datetime.utcnow():
            return OTPResult(False, 'OTP has expired')
        if record.otp != (entered_otp or '').strip():
            return OTPResult(False, 'Invalid OTP')

        record.used = True
        record.verified_at = datetime.utcnow()
        db.session.commit()
        return OTPResult(True, 'OTP verified successfully')
