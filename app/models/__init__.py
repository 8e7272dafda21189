# Models module
from app.models.organization import Organization, Branch
from app.models.user import User, UserRole, RoleLevel
from app.models.customer import Customer, CustomerType, Article
from app.models.rate_contract import (
    RateContract, RateSlab, ContractStatus, ContractType, ChargeBasis,
)
from app.models.booking import (
    Booking, BookingArticle, BookingStatus, WorkflowContext,
    PaymentType, Urgency, RateType, RateSource,
)
from app.models.document_sequence import DocumentSequence
from app.models.audit_log import AuditLog

__all__ = [
    "Organization",
    "Branch",
    "User",
    "UserRole",
    "RoleLevel",
    "Customer",
    "CustomerType",
    "Article",
    "RateContract",
    "RateSlab",
    "ContractStatus",
    "ContractType",
    "ChargeBasis",
    "Booking",
    "BookingArticle",
    "BookingStatus",
    "WorkflowContext",
    "PaymentType",
    "Urgency",
    "RateType",
    "RateSource",
    "DocumentSequence",
    "AuditLog",
]
