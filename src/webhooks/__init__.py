"""Webhooks package for evidence store change notifications."""

from src.webhooks.evidence_change_webhook import (
    handle_evidence_change_webhook,
    verify_evidence_signature,
    reevaluate_change
)

__all__ = [
    'handle_evidence_change_webhook',
    'verify_evidence_signature',
    'reevaluate_change'
]
