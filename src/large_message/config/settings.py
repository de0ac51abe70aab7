"""
Module: settings.py
Description: Client configuration using pydantic-settings.

One settings model covers every behavioural switch of the client (size
threshold, offload and cleanup flags, retry policy, reserved attribute
spelling, duplicate detection, dead-lettering, blob TTL) together with
the AWS wiring used by the boto3 adapters. Values come from environment
variables prefixed with LARGE_MESSAGE_ and from an optional .env file.
"""

import re
from typing import Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from large_message.config.constants import (
    DEFAULT_MESSAGE_SIZE_THRESHOLD,
    DEFAULT_TEXT_CONTENT_TYPE,
    LEGACY_RESERVED_ATTRIBUTE_NAME,
    MAX_ALLOWED_PROPERTIES,
    RESERVED_ATTRIBUTE_NAME,
)
from large_message.utils.retry import RetryPolicy

MAX_BLOB_KEY_PREFIX_LENGTH = 988
_BLOB_KEY_PREFIX_PATTERN = re.compile(r"^[a-zA-Z0-9._/-]*$")


class LargeMessageSettings(BaseSettings):
    """Large message client settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="LARGE_MESSAGE_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    log_level: str = Field(default="INFO", description="Logging level")

    # Offload settings
    message_size_threshold: int = Field(
        default=DEFAULT_MESSAGE_SIZE_THRESHOLD,
        ge=0,
        description="Bodies larger than this many bytes are offloaded"
    )
    always_through_blob: bool = Field(
        default=False,
        description="Offload every body regardless of size"
    )
    payload_support_enabled: bool = Field(
        default=True,
        description="Master switch for offloading and resolving payloads"
    )
    blob_key_prefix: str = Field(default="", description="Prefix for generated blob names")
    default_content_type: str = Field(
        default=DEFAULT_TEXT_CONTENT_TYPE,
        description="Content type recorded for text payloads"
    )
    blob_storage_class: Optional[str] = Field(
        default=None,
        description="S3 storage class for offloaded payloads (e.g. STANDARD_IA)"
    )
    blob_ttl_days: int = Field(
        default=0,
        ge=0,
        description="Days until an offloaded payload expires; 0 disables TTL metadata"
    )
    ttl_cleanup_interval_minutes: int = Field(
        default=0,
        ge=0,
        description="Interval of the periodic TTL sweep; 0 disables it"
    )

    # Property settings
    max_allowed_properties: int = Field(
        default=MAX_ALLOWED_PROPERTIES,
        ge=0,
        description="Maximum number of user application properties"
    )
    use_legacy_reserved_attribute_name: bool = Field(
        default=True,
        description="Emit the legacy size attribute name instead of the modern one"
    )
    enable_duplicate_detection_id: bool = Field(
        default=False,
        description="Set the message id to a content hash of the original body"
    )

    # Receive settings
    cleanup_blob_on_delete: bool = Field(
        default=True,
        description="Delete the referenced blob when a message's payload is deleted"
    )
    ignore_payload_not_found: bool = Field(
        default=False,
        description="Resolve missing payloads to an empty body instead of failing"
    )
    receive_wait_seconds: int = Field(
        default=10,
        ge=0,
        le=20,
        description="Long-poll wait for receive calls"
    )
    dead_letter_on_failure: bool = Field(
        default=True,
        description="Dead-letter messages whose processing handler fails"
    )
    dead_letter_reason: str = Field(
        default="ProcessingFailure",
        description="Reason recorded on dead-lettered messages"
    )

    # Retry settings
    retry_max_attempts: int = Field(default=3, ge=1, description="Attempts per operation")
    retry_backoff_seconds: float = Field(default=1.0, ge=0, description="First retry delay")
    retry_backoff_multiplier: float = Field(default=2.0, ge=1, description="Backoff growth factor")
    retry_max_backoff_seconds: float = Field(default=30.0, ge=0, description="Retry delay cap")

    tracing_enabled: bool = Field(default=False, description="Use the logging tracer")

    # AWS wiring
    aws_region: str = Field(default="us-east-1", description="AWS region")
    queue_url: Optional[str] = Field(default=None, description="SQS queue URL")
    dead_letter_queue_url: Optional[str] = Field(default=None, description="SQS dead-letter queue URL")
    bucket_name: Optional[str] = Field(default=None, description="S3 bucket for offloaded payloads")

    @field_validator('blob_key_prefix')
    @classmethod
    def validate_blob_key_prefix(cls, v: Optional[str]) -> str:
        """Validate blob key prefix length and characters."""
        if v is None:
            return ""
        if len(v) > MAX_BLOB_KEY_PREFIX_LENGTH:
            raise ValueError(
                f"Blob key prefix exceeds maximum length of {MAX_BLOB_KEY_PREFIX_LENGTH} "
                f"characters: {len(v)}"
            )
        if not _BLOB_KEY_PREFIX_PATTERN.match(v):
            raise ValueError(
                "Blob key prefix contains invalid characters. Only alphanumeric, dots, "
                f"underscores, slashes, and hyphens are allowed: {v}"
            )
        return v

    @field_validator('log_level')
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log level is a valid logging level."""
        valid_levels = ['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL']
        if v.upper() not in valid_levels:
            raise ValueError(f"log_level must be one of: {', '.join(valid_levels)}")
        return v.upper()

    @property
    def reserved_attribute_name(self) -> str:
        """Size-marker property name emitted on offload."""
        if self.use_legacy_reserved_attribute_name:
            return LEGACY_RESERVED_ATTRIBUTE_NAME
        return RESERVED_ATTRIBUTE_NAME

    def retry_policy(self) -> RetryPolicy:
        """Build the RetryPolicy described by the retry settings."""
        return RetryPolicy(
            max_attempts=self.retry_max_attempts,
            base_delay=self.retry_backoff_seconds,
            multiplier=self.retry_backoff_multiplier,
            max_delay=self.retry_max_backoff_seconds,
        )


# Global settings instance
settings = LargeMessageSettings()
