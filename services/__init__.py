# services/__init__.py

# Import classes
from .notification_service import WatiClient
from .auth_service import AuthService
from .storage_service import StorageService
from .customer_service import CustomerService
from .lender_service import LenderService
from .lender_import_service import LenderImportService
from .university_service import UniversityService
from .ai_extraction_engine import GeminiExtractor

# Create instances
wati_client = WatiClient()
auth_service = AuthService(wati_client)
storage_service = StorageService()
customer_service = CustomerService()
ai_extractor = GeminiExtractor()
lender_service = LenderService()
lender_import_service = LenderImportService(ai_extractor)
university_service = UniversityService(ai_extractor)

# Export instances
__all__ = [
    'wati_client',
    'auth_service',
    'storage_service',
    'customer_service',
    'ai_extractor',
    'lender_service',
    'lender_import_service',
    'university_service',
]
