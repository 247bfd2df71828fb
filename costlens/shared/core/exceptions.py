from typing import Optional, Dict, Any


class CostLensException(Exception):
    """Base exception for all CostLens errors."""
    def __init__(
        self,
        message: str,
        code: str = "internal_error",
        details: Optional[Dict[str, Any]] = None
    ):
        super().__init__(message)
        self.message = message
        self.code = code
        self.details = details or {}


class NoDataError(CostLensException):
    """Raised when there is no cost history to analyze for the requested window."""
    def __init__(self, message: str, code: str = "no_data", details: Optional[Dict[str, Any]] = None):
        super().__init__(message, code=code, details=details)


class ValidationError(CostLensException):
    """Raised when configuration or input is malformed."""
    def __init__(self, message: str, code: str = "validation_error", details: Optional[Dict[str, Any]] = None):
        super().__init__(message, code=code, details=details)


class DeliveryError(CostLensException):
    """Raised when a single notification channel fails to deliver."""
    def __init__(
        self,
        message: str,
        channel: str = "unknown",
        code: str = "delivery_error",
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message, code=code, details=details)
        self.channel = channel


class PersistenceError(CostLensException):
    """Raised when a store write fails."""
    def __init__(self, message: str, code: str = "persistence_error", details: Optional[Dict[str, Any]] = None):
        super().__init__(message, code=code, details=details)
