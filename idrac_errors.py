# =========================================
# file: idrac_errors.py
# =========================================
from __future__ import annotations
import sys
import requests
from requests import exceptions as rx

class ExitCode:
    OK = 0
    USAGE = 2          # argparse uses 2
    CONFIG = 3         # unreadable config
    AUTH = 4           # 401/403
    NETWORK = 5        # DNS/connection/TLS
    DEVICE = 6         # unexpected Redfish status
    TIMEOUT = 9        # request timeout
    UNEXPECTED = 10    # unhandled
    UNSUPPORTED = 11   # controller generation lacks the feature

class IdracError(Exception):
    pass

class TransportError(IdracError):
    def __init__(self, message: str, cause: BaseException | None = None):
        super().__init__(message)
        self.cause = cause

class UnsupportedVersionError(IdracError):
    def __init__(self, message: str, model: str | None = None):
        super().__init__(message)
        self.model = model

class ConfigError(IdracError):
    pass

class InvalidInvocationError(IdracError):
    pass

def exit_with(code: int, msg: str | None = None) -> None:
    if msg:
        print(msg, file=sys.stderr)
    sys.exit(code)

def code_for_status(status: int | None) -> int:
    if status in (401, 403): return ExitCode.AUTH
    return ExitCode.DEVICE

def map_request_error(exc) -> int:
    if isinstance(exc, TransportError) and exc.cause is not None:
        return map_request_error(exc.cause)
    if isinstance(exc, TransportError):
        return ExitCode.NETWORK
    if isinstance(exc, UnsupportedVersionError):
        return ExitCode.UNSUPPORTED
    if isinstance(exc, ConfigError):
        return ExitCode.CONFIG
    if isinstance(exc, InvalidInvocationError):
        return ExitCode.USAGE
    if isinstance(exc, rx.Timeout):
        return ExitCode.TIMEOUT
    if isinstance(exc, rx.SSLError):
        return ExitCode.NETWORK
    if isinstance(exc, rx.HTTPError):
        try:
            return code_for_status(exc.response.status_code)  # type: ignore[union-attr]
        except AttributeError:
            return ExitCode.DEVICE
    if isinstance(exc, requests.exceptions.RequestException):
        return ExitCode.NETWORK
    return ExitCode.UNEXPECTED
