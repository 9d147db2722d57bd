"""Ledger query client, challenge protocol and memo services."""

from .call_builder import CallBuilder, CollectionPage, Relation
from .challenge import build_challenge, verify_challenge, verify_signed_by
from .horizon import HorizonServer
from .memos import MemoLedger
from .stream import Subscription, SubscriptionState

__all__ = [
    "CallBuilder",
    "CollectionPage",
    "Relation",
    "HorizonServer",
    "MemoLedger",
    "Subscription",
    "SubscriptionState",
    "build_challenge",
    "verify_challenge",
    "verify_signed_by",
]
