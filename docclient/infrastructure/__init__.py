"""Infrastructure layer exports."""

from .credentials import Credential, CredentialStore, decode_credential
from .quota import TrialQuotaTracker
from .remote import DocumentServiceClient

__all__ = [
    "Credential",
    "CredentialStore",
    "DocumentServiceClient",
    "TrialQuotaTracker",
    "decode_credential",
]
