"""Registry proxy errors.

Every error is terminal for the inbound request and maps to one HTTP status.
Token acquisition failures are not errors, see TokenAbsent.
"""


class ProxyError(Exception):
    status_code: int = 500

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code


class MalformedRequest(ProxyError):
    status_code = 400


class PolicyDenied(ProxyError):
    status_code = 400


class UpstreamTransportFailure(ProxyError):
    status_code = 500

    def __init__(self, host: str, detail: str):
        super().__init__(f"Error fetching from {host}: {detail}\n")
        self.host = host
        self.detail = detail


class RedirectLimitExceeded(ProxyError):
    status_code = 508

    def __init__(self, location: str):
        super().__init__("Too many redirects")
        self.location = location
