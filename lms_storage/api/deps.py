from functools import lru_cache

from lms_storage.core.config import get_settings
from lms_storage.services.signing_service import CredentialSigner


@lru_cache
def get_signer() -> CredentialSigner:
    return CredentialSigner(get_settings())
