"""
JSON Endpoint Helpers
=====================
Shared plumbing for the REST-style boundary: authentication, method
checks, JSON body parsing and the mapping of engine errors to HTTP codes.

NotFound → 404, ValidationError → 400, InvalidTransition → 409,
ConflictError → 409, PermissionDenied → 403. Error bodies look like
``{"error": "<code>", "detail": "<message>"}``.
"""

import json
import logging
from functools import wraps

from django.http import JsonResponse
from django.views.decorators.csrf import csrf_exempt

from .exceptions import WorkflowError, ValidationError

logger = logging.getLogger(__name__)


def error_response(code, detail, status):
    return JsonResponse({'error': code, 'detail': detail}, status=status)


def parse_body(request):
    """Decode the JSON object sent with the request (empty body → {})."""
    if not request.body:
        return {}
    try:
        payload = json.loads(request.body)
    except (ValueError, UnicodeDecodeError):
        raise ValidationError("Request body is not valid JSON")
    if not isinstance(payload, dict):
        raise ValidationError("Request body must be a JSON object")
    return payload


def json_endpoint(*methods, status=200):
    """
    Decorate a view that takes ``(request, payload, **kwargs)`` and returns
    a JSON-serializable object.

    Usage:
        @json_endpoint('PATCH')
        def approve(request, payload, pk):
            ...
            return serialize(document)
    """
    allowed = {m.upper() for m in methods}

    def decorator(view):
        @csrf_exempt
        @wraps(view)
        def wrapper(request, *args, **kwargs):
            if request.method not in allowed:
                return error_response(
                    'method_not_allowed', f"{request.method} is not allowed here", 405
                )
            if not request.user.is_authenticated:
                return error_response('unauthenticated', "Authentication required", 401)
            try:
                payload = parse_body(request) if request.method != 'GET' else {}
                result = view(request, payload, *args, **kwargs)
            except WorkflowError as exc:
                logger.warning(
                    "%s %s rejected: %s (%s)", request.method, request.path, exc.message, exc.code
                )
                return error_response(exc.code, exc.message, exc.status_code)
            return JsonResponse(result, status=status, safe=isinstance(result, dict))
        return wrapper
    return decorator


def require(payload, field):
    """Fetch a required field from a JSON body."""
    value = payload.get(field)
    if value is None or value == '':
        raise ValidationError(f"'{field}' is required", field=field)
    return value


def isoformat(value):
    return value.isoformat() if value else None
