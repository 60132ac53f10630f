"""Services for external API integrations"""
from .credit_service import CreditService
from .referral_service import ReferralService
from .generation_service import GenerationService

__all__ = ['CreditService', 'ReferralService', 'GenerationService']
