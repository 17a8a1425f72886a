# services/notification_service.py

import json
import re
import logging
import requests

import config

logger = logging.getLogger(__name__)


class NotificationError(Exception):
    """WATI could not be reached or returned an unusable answer."""

    def __init__(self, message, status=None, retryable=True):
        super().__init__(message)
        self.status = status
        self.retryable = retryable


def clean_phone_number(phone_number):
    """Strip the formatting WATI rejects: spaces, '+', parentheses and dashes"""
    return re.sub(r'[\s+()\-]', '', phone_number or '')


class WatiClient:
    """Thin wrapper around the WATI WhatsApp template-message API."""

    def __init__(self, endpoint=None, auth_token=None, timeout=None, session=None):
        self.endpoint = (endpoint or config.WATI_API_ENDPOINT).rstrip('/')
        self.auth_token = auth_token if auth_token is not None else config.WATI_AUTH_TOKEN
        self.timeout = timeout or config.WATI_TIMEOUT
        self.http = session or requests.Session()

    def send_template_message(self, phone_number, template_name, broadcast_name, parameters):
        """Send a WhatsApp template message.

        Returns ``(response, payload)`` where payload is the decoded JSON body,
        or ``{'message': <text>}`` for non-JSON replies. Raises
        ``NotificationError`` for transport failures and unparseable JSON.
        """
        url = f"{self.endpoint}/api/v1/sendTemplateMessage/{clean_phone_number(phone_number)}"
        body = {
            'template_name': template_name,
            'broadcast_name': broadcast_name,
            'parameters': json.dumps(parameters),
        }
        headers = {
            'Authorization': f'Bearer {self.auth_token}',
            'Content-Type': 'application/json',
        }

        try:
            response = self.http.post(url, params={'SourceType': 'ZOHO'}, json=body,
                                      headers=headers, timeout=self.timeout)
        except requests.exceptions.Timeout:
            logger.error(f"WATI request timed out for template {template_name}")
            raise NotificationError('Request timed out. Please check your connection and try again.')
        except requests.exceptions.ConnectionError:
            logger.error(f"WATI connection error for template {template_name}")
            raise NotificationError('Network error. Please check your internet connection.')
        except requests.exceptions.RequestException as e:
            logger.error(f"WATI request failed: {str(e)}")
            raise NotificationError('Failed to send OTP. Please try again later.')

        logger.info(f"WATI API response status: {response.status_code}")

        content_type = response.headers.get('content-type', '')
        if 'application/json' in content_type:
            try:
                payload = response.json()
            except ValueError:
                logger.error("WATI returned malformed JSON")
                raise NotificationError('Invalid response from OTP service', status=response.status_code)
        else:
            payload = {'message': response.text}

        return response, payload

    @staticmethod
    def is_success(response, payload):
        if not response.ok or not isinstance(payload, dict):
            return False
        return bool(
            payload.get('result')
            or payload.get('success')
            or payload.get('sent')
            or payload.get('status') == 'success'
        )
