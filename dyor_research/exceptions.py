"""
Custom exceptions for the research system
"""
from typing import Optional


class ResearchSystemError(Exception):
    """Base exception for research system"""
    pass


class ConfigurationError(ResearchSystemError):
    """Configuration related errors"""
    pass


class APIError(ResearchSystemError):
    """API related errors"""
    def __init__(self, message: str, provider: str = None, status_code: int = None):
        super().__init__(message)
        self.provider = provider
        self.status_code = status_code


class OverloadError(APIError):
    """Upstream signalled rate limiting or overload"""
    pass


class CostLimitError(ResearchSystemError):
    """Cost limit exceeded"""
    def __init__(self, message: str, current_cost: float, limit: float):
        super().__init__(message)
        self.current_cost = current_cost
        self.limit = limit


class DeadlineExceeded(ResearchSystemError, TimeoutError):
    """An outbound call ran past its deadline"""
    def __init__(self, target: str, timeout: float):
        super().__init__(f"Call to {target} exceeded {timeout:.1f}s deadline")
        self.target = target
        self.timeout = timeout


class CircuitOpenError(ResearchSystemError):
    """Circuit breaker is open"""
    def __init__(self, target: str, retry_in: Optional[float] = None):
        super().__init__(f"Circuit breaker for {target} is OPEN")
        self.target = target
        self.retry_in = retry_in


class ThrottledTimeout(ResearchSystemError):
    """No throttle slot became available within the allowed wait"""
    def __init__(self, target: str, waited: float):
        super().__init__(f"Throttle for {target} did not admit call within {waited:.1f}s")
        self.target = target
        self.waited = waited


class LLMResponseError(ResearchSystemError):
    """Language model returned output that could not be parsed"""
    def __init__(self, message: str, raw: str = ""):
        super().__init__(message)
        self.raw = raw
