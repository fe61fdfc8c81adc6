"""Core modules for pagesave."""

from pagesave.core.auth import Credential, CredentialStore
from pagesave.core.blobs import BlobStore
from pagesave.core.config import CONFIG_DIR, CONFIG_FILE, Config
from pagesave.core.envelope import EnvelopeDecodeError, EnvelopeParser, parse, serialize
from pagesave.core.exceptions import (
    AuthenticationError,
    CompanionError,
    ConfigurationError,
    ConnectionError,
    DestinationError,
    InvalidTokenError,
    NetworkError,
    NotarizationError,
    PageSaveError,
    ReassemblyError,
    TaskInProgressError,
    UnknownTokenError,
    UploadCancelledError,
    UploadError,
    ValidationError,
)
from pagesave.core.logging import LogContext, get_audit_logger, get_logger, setup_logging
from pagesave.core.output import (
    OutputFormat,
    console,
    print_error,
    print_json,
    print_key_value,
    print_success,
    print_warning,
)
from pagesave.core.validation import (
    encode_sharp_character,
    sanitize_filename,
    validate_conflict_action,
    validate_server_url,
)

__all__ = [
    # Exceptions
    "PageSaveError",
    "AuthenticationError",
    "CompanionError",
    "ConfigurationError",
    "ConnectionError",
    "DestinationError",
    "InvalidTokenError",
    "NetworkError",
    "NotarizationError",
    "ReassemblyError",
    "TaskInProgressError",
    "UnknownTokenError",
    "UploadCancelledError",
    "UploadError",
    "ValidationError",
    # Validation
    "encode_sharp_character",
    "sanitize_filename",
    "validate_conflict_action",
    "validate_server_url",
    # Config
    "Config",
    "CONFIG_DIR",
    "CONFIG_FILE",
    # Credentials
    "Credential",
    "CredentialStore",
    # Envelope / blobs
    "BlobStore",
    "EnvelopeDecodeError",
    "EnvelopeParser",
    "parse",
    "serialize",
    # Output
    "OutputFormat",
    "print_key_value",
    "print_json",
    "print_error",
    "print_warning",
    "print_success",
    "console",
    # Logging
    "get_logger",
    "get_audit_logger",
    "setup_logging",
    "LogContext",
]
