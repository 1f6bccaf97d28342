from .registration import RegistrationCoordinator
from .verification import VerificationCoordinator

__all__ = [
    "RegistrationCoordinator",
    "VerificationCoordinator",
]
