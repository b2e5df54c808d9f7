# Importing every model here lets string-based relationships resolve no matter
# which model module a caller imports first.
from smartlink.models.user import User
from smartlink.models.site import Site
from smartlink.models.ad_slot import AdSlot, ad_slot_campaign
from smartlink.models.campaign import Campaign
from smartlink.models.creative import Creative
from smartlink.models.withdrawal import Withdrawal, WithdrawalStatus
from smartlink.models.transaction_log import TransactionLog, TransactionStatus, TransactionType
from smartlink.models.referral_earning import ReferralEarning
from smartlink.models.analytics_event import AnalyticsEvent, AnalyticsEventType, RelatedType

__all__ = [
    "AdSlot",
    "AnalyticsEvent",
    "AnalyticsEventType",
    "Campaign",
    "Creative",
    "ReferralEarning",
    "RelatedType",
    "Site",
    "TransactionLog",
    "TransactionStatus",
    "TransactionType",
    "User",
    "Withdrawal",
    "WithdrawalStatus",
    "ad_slot_campaign",
]
