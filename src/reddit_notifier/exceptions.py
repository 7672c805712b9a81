"""
Custom exceptions for the Reddit Notifier.

This module defines custom exception classes for better error handling
and debugging across the application.
"""

from typing import Any


class RedditNotifierError(Exception):
    """Base exception for Reddit Notifier errors."""

    def __init__(
        self,
        message: str,
        code: str | None = None,
        context: dict[str, Any] | None = None,
    ):
        super().__init__(message)
        self.code = code or "REDDIT_NOTIFIER_ERROR"
        self.context = context or {}


class TransientFetchError(RedditNotifierError):
    """Exception for network errors, timeouts and 5xx responses from Reddit."""

    def __init__(
        self,
        message: str,
        topic: str | None = None,
        status_code: int | None = None,
        context: dict[str, Any] | None = None,
    ):
        super().__init__(message, "TRANSIENT_FETCH_ERROR", context)
        self.topic = topic
        self.status_code = status_code


class MalformedResponseError(RedditNotifierError):
    """Exception for Reddit responses that cannot be parsed as a listing."""

    def __init__(
        self,
        message: str,
        topic: str | None = None,
        context: dict[str, Any] | None = None,
    ):
        super().__init__(message, "MALFORMED_RESPONSE_ERROR", context)
        self.topic = topic


class StorageConnectError(RedditNotifierError):
    """Exception raised when the database cannot be reached at startup."""

    def __init__(
        self,
        message: str,
        attempts: int | None = None,
        context: dict[str, Any] | None = None,
    ):
        super().__init__(message, "STORAGE_CONNECT_ERROR", context)
        self.attempts = attempts


class StorageQueryError(RedditNotifierError):
    """Exception for failed queries during steady-state operation."""

    def __init__(self, message: str, context: dict[str, Any] | None = None):
        super().__init__(message, "STORAGE_QUERY_ERROR", context)


class DeliveryError(RedditNotifierError):
    """Exception for failed notification deliveries."""

    def __init__(
        self,
        message: str,
        transient: bool,
        endpoint_id: int | None = None,
        status_code: int | None = None,
        context: dict[str, Any] | None = None,
    ):
        super().__init__(message, "DELIVERY_ERROR", context)
        self.transient = transient
        self.endpoint_id = endpoint_id
        self.status_code = status_code

    @property
    def permanent(self) -> bool:
        """Whether retrying the delivery cannot succeed."""
        return not self.transient


class ConfigurationError(RedditNotifierError):
    """Exception for configuration related errors."""

    def __init__(self, message: str, context: dict[str, Any] | None = None):
        super().__init__(message, "CONFIGURATION_ERROR", context)
