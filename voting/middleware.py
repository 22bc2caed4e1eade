"""
Request/response middleware for VoxPopuly
=========================================

- ClientAddressMiddleware: resolves the caller's IP (behind proxies) and
  stores it on ``request.client_ip`` for audit entries
- SecurityHeadersMiddleware: Permissions-Policy on every response and
  ``no-store`` caching for the JSON API, whose payloads carry personal
  data and PINs

HSTS, nosniff, Referrer-Policy and X-Frame-Options come from Django's own
middleware (see the SECURITY SETTINGS block in settings).
"""

import logging

from django.conf import settings # pyright: ignore[reportMissingModuleSource]
from django.utils.deprecation import MiddlewareMixin # pyright: ignore[reportMissingModuleSource]

logger = logging.getLogger(__name__)

PERMISSIONS_POLICY = 'geolocation=(), microphone=(), camera=(), payment=()'


def get_client_ip(request):
    """
    Best guess at the client address.

    X-Forwarded-For (first hop) wins over X-Real-IP, which wins over
    REMOTE_ADDR. Returns None when none of them is present.
    """
    forwarded = request.META.get('HTTP_X_FORWARDED_FOR', '')
    first_hop = forwarded.split(',')[0].strip()
    if first_hop:
        return first_hop

    real_ip = request.META.get('HTTP_X_REAL_IP', '').strip()
    if real_ip:
        return real_ip

    return request.META.get('REMOTE_ADDR') or None


def _is_asset_path(path):
    return path.startswith(settings.STATIC_URL) or path.startswith(settings.MEDIA_URL)


class ClientAddressMiddleware(MiddlewareMixin):
    """Attach the caller's IP address to the request as ``client_ip``."""

    def process_request(self, request):
        request.client_ip = None
        if _is_asset_path(request.path):
            return None
        request.client_ip = get_client_ip(request)
        logger.debug(f"{request.method} {request.path} from {request.client_ip}")
        return None


class SecurityHeadersMiddleware(MiddlewareMixin):

    def process_response(self, request, response):
        response.setdefault('Permissions-Policy', PERMISSIONS_POLICY)
        if request.path.startswith('/api/'):
            response['Cache-Control'] = 'no-store'
        return response
