from typing import Optional


class BridgeError(Exception):
    """Base error; ``detail`` is the short plain-text body sent to the caller."""

    status_code = 500

    def __init__(self, error: str, detail: str, status_code: Optional[int] = None):
        super().__init__(detail)
        self.error = error
        self.detail = detail
        if status_code is not None:
            self.status_code = status_code


class ConfigError(BridgeError):
    def __init__(self, detail: str):
        super().__init__("config_invalid", detail)


class AuthError(BridgeError):
    status_code = 401

    def __init__(self, detail: str = "Invalid signature", error: str = "signature_invalid"):
        super().__init__(error, detail)


class FormatError(BridgeError):
    status_code = 400

    def __init__(self, detail: str, error: str = "format_invalid"):
        super().__init__(error, detail)


class ForwardError(BridgeError):
    def __init__(self, detail: str, status: Optional[int] = None, body: str = ""):
        super().__init__("forward_failed", detail)
        self.status = status
        self.body = body


class InternalError(BridgeError):
    def __init__(self, detail: str = "Internal Server Error"):
        super().__init__("internal_error", detail)
