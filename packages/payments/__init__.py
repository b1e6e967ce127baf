"""
Payments package - one contract for customers, payment methods,
subscriptions, charges and webhooks across payment processors.

This package integrates with:
- Stripe: Payment processing via the official SDK
- Fake: Deterministic in-memory processor for tests and demos

Reads are served through a read-through cache; writes go to the processor
and refresh the cache afterwards.
"""
