"""
JSON API plumbing
=================

Every endpoint under /api/ answers with the same envelope:

    {"success": true, "data": ..., "message": "..."}
    {"success": false, "error": "..."}

``api_view`` wraps a view function with:
- HTTP method restriction (``require_http_methods``)
- Session authentication and optional role check
- Conversion of ``ApiError`` subclasses to their status code
- A top-level catch that logs unexpected errors and answers 500
"""

from functools import wraps
import json
import logging

from django.core.serializers.json import DjangoJSONEncoder # pyright: ignore[reportMissingModuleSource]
from django.http import JsonResponse # pyright: ignore[reportMissingModuleSource]
from django.views.decorators.http import require_http_methods # pyright: ignore[reportMissingModuleSource]

from .exceptions import ApiError, Forbidden, NotAuthenticated, ValidationFailed
from .models import Profile

logger = logging.getLogger(__name__)


def success(data=None, message=None, status=200):
    payload = {'success': True}
    if data is not None:
        payload['data'] = data
    if message:
        payload['message'] = message
    return JsonResponse(payload, status=status, encoder=DjangoJSONEncoder)


def failure(error, status):
    return JsonResponse({'success': False, 'error': error}, status=status)


def parse_json_body(request):
    """
    Decode the request body as a JSON object.

    An empty body is treated as ``{}``. Anything that is not a JSON object
    raises ValidationFailed.
    """
    if not request.body:
        return {}
    try:
        body = json.loads(request.body)
    except (ValueError, UnicodeDecodeError):
        raise ValidationFailed('Request body must be valid JSON')
    if not isinstance(body, dict):
        raise ValidationFailed('Request body must be a JSON object')
    return body


def get_profile(user):
    if not user.is_authenticated:
        return None
    return Profile.objects.filter(user=user).first()


def require_role(profile, *roles):
    """Raise Forbidden unless ``profile`` holds one of ``roles``."""
    if profile is None or profile.role not in roles:
        raise Forbidden()
    return profile


def api_view(methods, roles=None, public=False):
    """
    Decorator for JSON endpoints.

    Args:
        methods: Allowed HTTP methods
        roles: Roles allowed to call the endpoint (None = any signed-in user)
        public: Skip authentication entirely

    The resolved Profile (or None) is stored on ``request.profile``.
    """
    def decorator(view_func):
        @require_http_methods(methods)
        @wraps(view_func)
        def wrapper(request, *args, **kwargs):
            try:
                request.profile = None
                if not public:
                    if not request.user.is_authenticated:
                        raise NotAuthenticated()
                    request.profile = get_profile(request.user)
                    if roles:
                        require_role(request.profile, *roles)
                return view_func(request, *args, **kwargs)
            except ApiError as e:
                if e.status_code >= 500:
                    logger.error(f"{request.method} {request.path} failed: {e.message}")
                return failure(e.message, e.status_code)
            except Exception:
                logger.exception(f"Unhandled error on {request.method} {request.path}")
                return failure('Internal server error', 500)
        return wrapper
    return decorator
