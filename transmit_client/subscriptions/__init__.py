"""Subscriptions package for channel interest tracking and dispatch."""
from .registry import SubscriptionRegistry, ControlPlane
from .subscription import Subscription, MessageHandler

__all__ = [
    "SubscriptionRegistry",
    "ControlPlane",
    "Subscription",
    "MessageHandler",
]
