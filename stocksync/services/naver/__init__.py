from .auth import NaverCredentialCache, sign_client_secret
from .client import NaverCommerceClient

__all__ = ["NaverCredentialCache", "NaverCommerceClient", "sign_client_secret"]
