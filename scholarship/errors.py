"""Error taxonomy shared by the API views.

Every error carries the HTTP status it maps to. ``api_view`` turns raised
errors into the JSON envelope the browser client expects::

    {"success": false, "message": "...", ...payload}
"""
import functools
import json
import logging

from django.conf import settings
from django.http import JsonResponse

logger = logging.getLogger(__name__)


class IntakeError(Exception):
    status_code = 500
    default_message = "Internal server error"

    def __init__(self, message=None, *, payload=None, detail=None):
        self.message = message or self.default_message
        # Always rendered into the response body.
        self.payload = payload or {}
        # Rendered as "error" only when DEBUG is on.
        self.detail = detail
        super().__init__(self.message)

    def as_response(self) -> JsonResponse:
        body = {"success": False, "message": self.message, **self.payload}
        if self.detail is not None and settings.DEBUG:
            body["error"] = self.detail
        return JsonResponse(body, status=self.status_code)


class ValidationError(IntakeError):
    status_code = 400
    default_message = "Validation failed"

    def __init__(self, errors, message=None, *, fields=None):
        self.errors = list(errors)
        payload = {"errors": self.errors}
        if fields:
            payload["fields"] = fields
        super().__init__(message, payload=payload)


class ConflictError(IntakeError):
    status_code = 409
    default_message = "Conflicting record exists"


class NotFoundError(IntakeError):
    status_code = 404
    default_message = "Not found"


class InternalError(IntakeError):
    status_code = 500


def api_view(fn=None, *, failure_message=None):
    """Render ``IntakeError`` as JSON; log anything else as ``InternalError``.

    ``failure_message`` replaces the generic 500 message for unexpected errors.
    """

    def decorate(view):
        @functools.wraps(view)
        def wrapper(request, *args, **kwargs):
            try:
                return view(request, *args, **kwargs)
            except IntakeError as e:
                if e.status_code >= 500:
                    logger.error("%s %s failed: %s", request.method, request.path, e.message)
                return e.as_response()
            except Exception as e:
                logger.exception("Unhandled error on %s %s", request.method, request.path)
                return InternalError(failure_message, detail=str(e)).as_response()

        return wrapper

    if fn is not None:
        return decorate(fn)
    return decorate


def json_body(request, *, allow_form=True) -> dict:
    """Parse a JSON (or form-encoded) request body; invalid JSON is a 400.

    With ``allow_form=False`` anything other than ``application/json`` is a 400.
    """
    if request.content_type != "application/json" and not allow_form:
        raise ValidationError(["Content-Type must be application/json"], "Invalid JSON body")
    if request.content_type == "application/json":
        try:
            body = json.loads(request.body.decode("utf-8") or "{}")
        except (ValueError, UnicodeDecodeError):
            raise ValidationError(["Request body is not valid JSON"], "Invalid JSON body")
        if not isinstance(body, dict):
            raise ValidationError(["Request body must be a JSON object"], "Invalid JSON body")
        return body
    return request.POST.dict()
