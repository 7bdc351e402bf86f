from .manager import RegistrationManager
from .types import RSVPResult

__all__ = ["RSVPResult", "RegistrationManager"]
