# Services module
from app.services.auth_service import AuthService
from app.services.audit_service import AuditService
from app.services.user_service import UserService

# Freight Services
from app.services.booking_service import BookingService
from app.services.rate_contract_service import RateContractService
from app.services.rate_resolver import RateResolver
from app.services.tariff_calculator import TariffCalculator
from app.services.document_sequence_service import DocumentSequenceService

__all__ = [
    "AuthService",
    "AuditService",
    "UserService",
    # Freight
    "BookingService",
    "RateContractService",
    "RateResolver",
    "TariffCalculator",
    "DocumentSequenceService",
]
