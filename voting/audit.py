"""
Audit trail helpers
===================

Audit writes are best-effort: a failure is logged and never propagates
to the caller. Client addresses are anonymised before they are stored.
"""

import logging

from django.db import transaction # pyright: ignore[reportMissingModuleSource]

from .models import AuditLog

logger = logging.getLogger(__name__)


def anonymize_ip(ip):
    """
    Reduce an IP address to a non-identifying prefix.

    - A comma separated list (X-Forwarded-For) is reduced to its first entry
    - IPv4: the last octet is zeroed (``203.0.113.42`` -> ``203.0.113.0``)
    - IPv6: the zone id is dropped and only the first four hextets are kept
      (``2001:db8:85a3:8d3:1319:8a2e:370:7348`` -> ``2001:db8:85a3:8d3::``)

    Returns None for empty or unrecognised input. Never raises.
    """
    try:
        if not ip:
            return None
        candidate = str(ip).split(',')[0].strip()
        if not candidate:
            return None

        if ':' in candidate:
            address = candidate.split('%')[0]
            parts = [p for p in address.split(':') if p]
            prefix = (parts + ['0', '0', '0', '0'])[:4]
            return ':'.join(prefix) + '::'

        octets = candidate.split('.')
        if len(octets) == 4:
            return '.'.join(octets[:3] + ['0'])

        return None
    except Exception:
        return None


def record_audit(action, entity_type, entity_id=None, metadata=None, user=None, ip=None):
    """Write an AuditLog row; returns it, or None when the write failed."""
    try:
        with transaction.atomic():
            return AuditLog.objects.create(
                user=user if user is not None and user.is_authenticated else None,
                action=action,
                entity_type=entity_type,
                entity_id=str(entity_id) if entity_id is not None else None,
                metadata=metadata,
                ip_address=anonymize_ip(ip),
            )
    except Exception as e:
        logger.error(f"Audit log write failed for {action} {entity_type}:{entity_id}: {e}")
        return None


def audit_request(request, action, entity_type, entity_id=None, metadata=None):
    """``record_audit`` with the acting user and client address taken from ``request``."""
    if request is None:
        return record_audit(action, entity_type, entity_id, metadata)
    return record_audit(
        action,
        entity_type,
        entity_id,
        metadata,
        user=getattr(request, 'user', None),
        ip=getattr(request, 'client_ip', None),
    )
