"""
Failure classification for Gemini-backed generation.

Every failure that crosses the pipeline boundary is classified exactly once
into a FailureKind and a user-presentable message. Internal logic looks at
the classification, never at raw provider error shapes.
"""
import enum
import json
from typing import Any, Optional

import structlog
from pydantic import BaseModel, ConfigDict

logger = structlog.get_logger()


# =============================================================================
# MARKERS AND MESSAGES
# =============================================================================

QUOTA_MARKERS = ("429", "quota", "exhausted", "rate_limit", "resource_exhausted")
OVERLOAD_MARKERS = ("503", "overloaded", "unavailable")
AUTH_MARKERS = ("api_key", "invalid", "unauthorized")

# Broader than the transient message category: quota errors are retried too.
RETRY_MARKERS = (
    "429", "503", "quota", "exhausted", "deadline", "network", "resource_exhausted",
) + OVERLOAD_MARKERS

QUOTA_MESSAGE = (
    "Stratis Synthesis Limit Reached: Your current API quota has been exceeded. "
    "Please check your billing status at ai.google.dev/gemini-api/docs/billing "
    "or wait for the cooldown period to expire."
)
OVERLOAD_MESSAGE = (
    "The synthesis engine is momentarily overloaded. "
    "We are attempting to re-establish a stable connection."
)
AUTH_MESSAGE = "Access denied. Please verify your system credentials or API key configuration."
GENERIC_MESSAGE = (
    "An unexpected variance occurred during synthesis. "
    "Our systems are investigating the discrepancy."
)


class FailureKind(str, enum.Enum):
    """Tagged category of a classified failure."""
    QUOTA = "quota"
    TRANSIENT = "transient"
    AUTH = "auth"
    MALFORMED = "malformed"
    UNKNOWN = "unknown"


class ClassifiedFailure(BaseModel):
    """
    Result of classifying a failure.

    transient is the messaging verdict (overload-style failures only);
    retryable is the retry verdict, which also covers quota, deadline and
    network failures.
    """
    model_config = ConfigDict(frozen=True)

    kind: FailureKind
    message: str
    retryable: bool
    transient: bool


# =============================================================================
# EXCEPTIONS
# =============================================================================

class GenerationError(Exception):
    """Base error for the generation package."""

    failure: Optional[ClassifiedFailure] = None


class InvalidRequestError(GenerationError):
    """A request was rejected before any external call was made."""


class MalformedResponseError(GenerationError):
    """An AI response did not match the expected schema."""


class RunFailedError(GenerationError):
    """Terminal failure of a call or run, carrying its classification."""

    def __init__(self, failure: ClassifiedFailure):
        self.failure = failure
        super().__init__(failure.message)


# =============================================================================
# CLASSIFICATION
# =============================================================================

def _nested_message(value: Any) -> Optional[str]:
    """Return value.message or value.error.message for dicts and objects."""
    if isinstance(value, dict):
        if isinstance(value.get("message"), str) and value["message"]:
            return value["message"]
        error = value.get("error")
        if isinstance(error, dict) and isinstance(error.get("message"), str) and error["message"]:
            return error["message"]
        return None

    message = getattr(value, "message", None)
    if isinstance(message, str) and message:
        return message
    error = getattr(value, "error", None)
    nested = getattr(error, "message", None) if error is not None else None
    if isinstance(nested, str) and nested:
        return nested
    return None


def failure_text(failure: Any) -> str:
    """
    Normalise an arbitrary failure value to human text.

    Order: raw string, exception text, .message, .error.message,
    JSON round-trip, str().
    """
    if failure is None:
        return ""
    if isinstance(failure, str):
        return failure
    if isinstance(failure, BaseException):
        text = str(failure)
        if text:
            return text
        return _nested_message(failure) or type(failure).__name__

    nested = _nested_message(failure)
    if nested:
        return nested

    try:
        stringified = json.dumps(failure, default=str)
        parsed = json.loads(stringified)
        if isinstance(parsed, dict):
            return _nested_message(parsed) or stringified
        return stringified
    except (TypeError, ValueError):
        return str(failure)


def _unwrap_json_message(message: str) -> str:
    """If the message is itself a JSON error object, return its inner message."""
    stripped = message.strip()
    if stripped.startswith("{") and stripped.endswith("}"):
        try:
            parsed = json.loads(stripped)
        except ValueError:
            return message
        if isinstance(parsed, dict):
            return _nested_message(parsed) or message
    return message


def _contains_any(text: str, markers) -> bool:
    return any(marker in text for marker in markers)


def _has_no_message(failure: Any) -> bool:
    """True for an exception whose only describable text is its type name."""
    return isinstance(failure, BaseException) and not str(failure) and not _nested_message(failure)


def classify_failure(failure: Any) -> ClassifiedFailure:
    """
    Classify a failure into a FailureKind with a stable user-facing message.

    Deterministic for a given input; the only side effect is a debug log.
    """
    existing = getattr(failure, "failure", None)
    if isinstance(failure, GenerationError) and isinstance(existing, ClassifiedFailure):
        return existing

    if isinstance(failure, MalformedResponseError):
        result = ClassifiedFailure(
            kind=FailureKind.MALFORMED,
            message=str(failure) or GENERIC_MESSAGE,
            retryable=False,
            transient=False,
        )
        logger.debug("failure_classified", kind=result.kind.value, retryable=False)
        return result

    text = failure_text(failure)
    lowered = text.lower()
    retryable = _contains_any(lowered, RETRY_MARKERS)

    if _contains_any(lowered, QUOTA_MARKERS):
        kind, message = FailureKind.QUOTA, QUOTA_MESSAGE
    elif _contains_any(lowered, OVERLOAD_MARKERS):
        kind, message = FailureKind.TRANSIENT, OVERLOAD_MESSAGE
    elif _contains_any(lowered, AUTH_MARKERS):
        kind, message = FailureKind.AUTH, AUTH_MESSAGE
        retryable = False
    else:
        kind = FailureKind.UNKNOWN
        message = _unwrap_json_message(text) or GENERIC_MESSAGE
        if _has_no_message(failure):
            message = GENERIC_MESSAGE

    result = ClassifiedFailure(
        kind=kind,
        message=message,
        retryable=retryable,
        transient=kind == FailureKind.TRANSIENT,
    )
    logger.debug(
        "failure_classified",
        kind=kind.value,
        retryable=retryable,
        raw_preview=text[:200],
    )
    return result


def is_retry_eligible(failure: Any) -> bool:
    """Whether a failure is worth retrying after a backoff."""
    if isinstance(failure, GenerationError):
        # Already-terminal failures (exhausted retries, bad input) are final.
        return False
    return classify_failure(failure).retryable


def format_failure_message(failure: Any) -> str:
    """User-presentable message for a failure."""
    return classify_failure(failure).message
