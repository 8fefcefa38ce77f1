"""Gateway middleware: request correlation and API payload limits.

``RequestIdMiddleware`` gives every request an identifier, reusing the
client's ``X-Request-ID`` header when it is sane and generating a UUIDv4
otherwise. The id is stored on ``request.request_id`` and in
``REQUEST_ID_CTX`` so log filters and the outbound HTTP adapters can read it
without it being threaded through call signatures. The response echoes it
back in ``X-Request-ID``.

``ApiSizeLimitMiddleware`` rejects oversized bodies on ``/api/`` routes
before any view parses them.
"""

import contextvars
import os
import re
import uuid

from django.http import JsonResponse

REQUEST_ID_CTX = contextvars.ContextVar("request_id", default="-")
MAX_API_BYTES = int(os.getenv("API_MAX_BYTES", str(1 * 1024 * 1024)))

_RID_RE = re.compile(r"^[A-Za-z0-9._:-]{1,128}$")


class RequestIdMiddleware:
    """Assign a correlation id per request and reset it afterwards."""

    HEADER = "HTTP_X_REQUEST_ID"
    RESPONSE_HEADER = "X-Request-ID"

    def __init__(self, get_response):
        self.get_response = get_response

    def __call__(self, request):
        rid = request.META.get(self.HEADER, "")
        if not _RID_RE.match(rid):
            rid = str(uuid.uuid4())
        request.request_id = rid
        token = REQUEST_ID_CTX.set(rid)
        try:
            response = self.get_response(request)
        finally:
            REQUEST_ID_CTX.reset(token)
        response[self.RESPONSE_HEADER] = rid
        return response


class ApiSizeLimitMiddleware:
    """Return 413 for API requests whose declared body exceeds ``MAX_API_BYTES``."""

    def __init__(self, get_response):
        self.get_response = get_response

    def __call__(self, request):
        if request.path.startswith("/api/"):
            clen = request.META.get("CONTENT_LENGTH")
            if clen and clen.isdigit() and int(clen) > MAX_API_BYTES:
                return JsonResponse({"detail": "PAYLOAD_TOO_LARGE"}, status=413)
        return self.get_response(request)
