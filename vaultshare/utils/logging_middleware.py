"""
Per-request bookkeeping: a request id on every response and one access-log line per request.

Share links carry the file id in the URL and the id is the only thing guarding
the file, so download paths are masked before they are logged.
"""

import logging
import re
import time
import uuid

from flask import Response, g, has_request_context, request

from .logging_config import log_access_event

logger = logging.getLogger(__name__)

REQUEST_ID_HEADER = 'X-Request-ID'
_REQUEST_ID_PATTERN = re.compile(r'^[A-Za-z0-9_.:\-]{1,64}$')
_DOWNLOAD_PATH = re.compile(r'(/download/)[^/]+')


def get_client_ip() -> str:
    forwarded_for = request.headers.get('X-Forwarded-For')
    if forwarded_for:
        return forwarded_for.split(',')[0].strip()
    return request.headers.get('X-Real-IP') or request.remote_addr or 'unknown'


def current_request_id() -> str:
    """The id of the request being served, or a fresh one outside a request."""
    if has_request_context() and g.get('request_id'):
        return g.request_id
    return uuid.uuid4().hex


def mask_path(path: str) -> str:
    return _DOWNLOAD_PATH.sub(r'\1:id', path)


def _caller() -> dict:
    user = g.get('current_user')
    if user is not None:
        return {'user_id': user.id}
    device = g.get('device')
    if device is not None:
        return {'user_id': device.user_id, 'device_id': device.device_id}
    return {}


class RequestLoggingMiddleware:
    def __init__(self, app=None):
        if app is not None:
            self.init_app(app)

    def init_app(self, app):
        app.before_request(self.start_request)
        app.after_request(self.finish_request)
        app.teardown_request(self.report_failure)

    @staticmethod
    def start_request():
        # Client-supplied ids are echoed back only if they are safe to put in a header and a log line
        incoming = request.headers.get(REQUEST_ID_HEADER, '')
        g.request_id = incoming if _REQUEST_ID_PATTERN.match(incoming) else uuid.uuid4().hex
        g.client_ip = get_client_ip()
        g.started_at = time.perf_counter()

    @staticmethod
    def finish_request(response: Response) -> Response:
        started_at = g.get('started_at')
        if started_at is None:
            return response

        log_access_event(
            method=request.method,
            path=mask_path(request.path),
            status_code=response.status_code,
            duration_ms=(time.perf_counter() - started_at) * 1000,
            request_id=g.request_id,
            ip_address=g.client_ip,
            bytes_out=response.calculate_content_length(),
            **_caller(),
        )
        response.headers[REQUEST_ID_HEADER] = g.request_id
        return response

    @staticmethod
    def report_failure(exception=None):
        if exception is not None:
            logger.error(f"Request {g.get('request_id', 'unknown')} to {mask_path(request.path)} "
                         f"aborted: {exception}")
