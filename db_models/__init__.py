# Import every model so Base.metadata knows about all tables.
from db_models.user import User, UserRole  # noqa: F401
from db_models.business import Business, Transaction  # noqa: F401
from db_models.verification_cycle import VerificationCycle  # noqa: F401
from db_models.preparation_job import PreparationJob  # noqa: F401
from db_models.verification_database import VerificationDatabase, VerificationRecord  # noqa: F401
from db_models.payment_invoice import PaymentInvoice, CustomerRewardBatch  # noqa: F401
from db_models.payment_batch import PaymentBatch  # noqa: F401
from db_models.payment_side_effect import PaymentSideEffect  # noqa: F401
from db_models.security import AuditLog, IntrusionEvent  # noqa: F401
