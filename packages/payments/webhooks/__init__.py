"""Webhook ingestion for payment processors."""

from packages.payments.webhooks.ingestion import ingest_webhook

__all__ = ["ingest_webhook"]
