import os
from dotenv import load_dotenv

load_dotenv()

BASE_DIR = os.path.abspath(os.path.dirname(__file__))
SQLALCHEMY_DATABASE_URI = os.getenv('DATABASE_URL', f'sqlite:///{os.path.join(BASE_DIR, "globcred.db")}')
SQLALCHEMY_TRACK_MODIFICATIONS = False
SECRET_KEY = os.getenv('SECRET_KEY', 'a-very-secret-key-that-should-be-changed')
UPLOAD_FOLDER = os.getenv('UPLOAD_FOLDER', os.path.join(BASE_DIR, 'uploads'))
MAX_UPLOAD_SIZE = 10 * 1024 * 1024
DEBUG = os.getenv('FLASK_DEBUG', 'false').lower() in ('true', '1')

# --- Gemini ---
GEMINI_API_KEY = os.getenv('GEMINI_API_KEY', os.getenv('GOOGLE_API_KEY', ''))
GEMINI_MODEL = os.getenv('GEMINI_MODEL', 'gemini-2.0-flash')
AI_INPUT_CHAR_LIMIT = 10000

# --- WATI (WhatsApp OTP delivery) ---
WATI_API_ENDPOINT = os.getenv('WATI_API_ENDPOINT', 'https://live-mt-server.wati.io/448542')
WATI_AUTH_TOKEN = os.getenv('WATI_AUTH_TOKEN', '')
WATI_TIMEOUT = float(os.getenv('WATI_TIMEOUT', '15'))
OTP_TEMPLATE_NAME = 'loanappotp'
OTP_BROADCAST_NAME = 'zoho_auto_loanappotp'
OTP_EXPIRY_SECONDS = int(os.getenv('OTP_EXPIRY_SECONDS', '300'))

# --- Admin bootstrap ---
ADMIN_USERNAME = os.getenv('ADMIN_USERNAME', 'admin')
ADMIN_PASSWORD = os.getenv('ADMIN_PASSWORD', 'admin123')
