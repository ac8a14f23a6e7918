"""
Error types shared by the Ollama client, the stress test and the proxy
"""

from typing import Optional


class OllamaError(Exception):
    """Base class for dashboard errors"""


class TransportError(OllamaError):
    """Non-2xx response or network failure talking to the Ollama server"""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class CompletionTimeout(OllamaError):
    """The configured request deadline was exceeded"""

    def __init__(self, timeout_ms: int, message: str = "Request timeout"):
        super().__init__(f"{message} after {timeout_ms} ms")
        self.timeout_ms = timeout_ms


class ConfigurationError(OllamaError, ValueError):
    """Invalid or missing configuration, rejected before any request is sent"""
