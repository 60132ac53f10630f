"""
Domain errors shared by services and API routes.

Each error carries a machine-readable code and the HTTP status the API
answers with; routes translate them with `to_http_exception`.
"""

from fastapi import HTTPException


class FanovaError(Exception):
    """Base class for domain errors"""

    code = "INTERNAL_ERROR"
    status_code = 500

    def __init__(self, message: str, code: str | None = None, status_code: int | None = None):
        super().__init__(message)
        self.message = message
        if code:
            self.code = code
        if status_code:
            self.status_code = status_code

    def to_dict(self) -> dict:
        return {"error": self.message, "code": self.code}


class InsufficientCreditsError(FanovaError):
    code = "INSUFFICIENT_CREDITS"
    status_code = 402


class FreeLimitReachedError(FanovaError):
    code = "FREE_LIMIT_REACHED"
    status_code = 402


class NsfwNotAllowedError(FanovaError):
    code = "NSFW_NOT_ALLOWED"
    status_code = 403


class AccountLockedError(FanovaError):
    code = "ACCOUNT_LOCKED"
    status_code = 403


class GenerationError(FanovaError):
    code = "GENERATION_FAILED"
    status_code = 500


class ProviderUnavailableError(GenerationError):
    """Image provider overloaded or rate-limited; the next provider may succeed"""


class ReferenceImageRejectedError(GenerationError):
    """Image provider refused the reference image; the next provider may accept it"""


class UpstreamRateLimitError(FanovaError):
    code = "RATE_LIMITED"
    status_code = 429


class UpstreamQuotaError(FanovaError):
    code = "QUOTA_EXCEEDED"
    status_code = 402


class ConfigurationError(FanovaError):
    code = "SERVICE_UNAVAILABLE"
    status_code = 503


class InvalidReferralCodeError(FanovaError):
    code = "INVALID_REFERRAL_CODE"
    status_code = 404


class SelfReferralError(FanovaError):
    code = "SELF_REFERRAL"
    status_code = 400


def to_http_exception(error: FanovaError) -> HTTPException:
    """Convert a domain error into the JSON error body the API returns"""
    return HTTPException(status_code=error.status_code, detail=error.to_dict())
