"""Ordered, rate-limited delivery to Discord."""

from .pipeline import DeliveryPipeline, QueueItem, RateLimiter

__all__ = ["DeliveryPipeline", "QueueItem", "RateLimiter"]
