"""
Errors surfaced by the discovery, link and ad services.

Oracle errors are not here: they live with the oracle client and are always
absorbed by the fallback path before reaching a caller.
"""

from typing import Optional


class AffilAIError(Exception):
    """Base error. Carries the product/platform it concerns and the policy that fired."""

    def __init__(
        self,
        message: str,
        product_id: Optional[int] = None,
        platform: Optional[str] = None,
        policy: Optional[str] = None,
    ):
        super().__init__(message)
        self.message = message
        self.product_id = product_id
        self.platform = platform
        self.policy = policy

    def to_dict(self) -> dict:
        return {
            "error": type(self).__name__,
            "message": self.message,
            "product_id": self.product_id,
            "platform": self.platform,
            "policy": self.policy,
        }


class CredentialMissing(AffilAIError):
    """No usable affiliate credential for the platform a program needs."""


class NoPlatformIdentifier(AffilAIError):
    """Product has no identifier for the requested platform."""


class ConcurrentGenerationInProgress(AffilAIError):
    """Another generation for the same (product, platform) is running. Retryable."""


class PersistenceFailure(AffilAIError):
    """The catalog store rejected or failed a read/write."""


class ProductNotFound(AffilAIError):
    pass


class LinkNotFound(AffilAIError):
    pass


class InvalidAdType(AffilAIError):
    pass
