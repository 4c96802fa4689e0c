#!/usr/bin/env python3
"""
Assessor Error Classification Module

Exceptions raised by assessor backends, and a classifier that turns any
assessor failure into a reason for the log line written when the scheduler
falls back to heuristics.

Failure Categories:
    - TIMEOUT: The model did not answer within the configured timeout
    - RATE_LIMITED: Usage cap or 429 from the API
    - AUTH_FAILED: Missing or invalid credentials
    - NETWORK_ERROR: Connection problems
    - OVERLOADED: API overloaded or 5xx
    - MALFORMED_RESPONSE: The answer was not the expected JSON object
    - CLI_ERROR: The claude CLI exited with an error
    - UNKNOWN: Anything else

Usage:
    from session_monitor.errors import classify_failure

    reason, explanation = classify_failure(exc)
    logger.warning(f"Assessor failed ({reason.value}): {explanation}")
"""

import re
import subprocess
from enum import Enum
from typing import Tuple


class AssessorError(Exception):
    """Base class for assessor failures."""


class AssessorResponseError(AssessorError):
    """The assessor answered, but not with a well-formed verdict."""


class AssessorUnavailableError(AssessorError):
    """The assessor backend could not be reached or run."""


class AssessorFailure(Enum):
    """Why an external assessment was replaced by the heuristic fallback."""
    TIMEOUT = "timeout"
    RATE_LIMITED = "rate_limited"
    AUTH_FAILED = "auth_failed"
    NETWORK_ERROR = "network_error"
    OVERLOADED = "overloaded"
    MALFORMED_RESPONSE = "malformed_response"
    CLI_ERROR = "cli_error"
    UNKNOWN = "unknown"


def classify_failure(error: BaseException) -> Tuple[AssessorFailure, str]:
    """
    Classify an assessor exception.

    Args:
        error: The exception raised by the assessor backend

    Returns:
        Tuple of (AssessorFailure, human_readable_explanation)

    Examples:
        >>> classify_failure(AssessorResponseError("not JSON"))
        (<AssessorFailure.MALFORMED_RESPONSE: 'malformed_response'>, 'Assessor reply was not a valid verdict: not JSON')
    """
    message = str(error)
    combined = f"{type(error).__name__} {message}".lower()

    if isinstance(error, AssessorResponseError):
        return (
            AssessorFailure.MALFORMED_RESPONSE,
            f"Assessor reply was not a valid verdict: {message[:100]}"
        )

    if isinstance(error, subprocess.TimeoutExpired) or "timeout" in combined or "timed out" in combined:
        return (
            AssessorFailure.TIMEOUT,
            "Assessor did not respond within the timeout"
        )

    rate_limit_patterns = [
        "ratelimit",
        "rate_limit",
        "rate limit",
        "hit your limit",
        "too many requests",
        "429",
    ]
    if any(pattern in combined for pattern in rate_limit_patterns):
        reset_match = re.search(r"resets?\s+(?:at\s+)?(\d+[ap]m|\d+:\d+)", combined)
        reset_time = reset_match.group(1) if reset_match else "later"
        return (
            AssessorFailure.RATE_LIMITED,
            f"API rate limit reached. Resets at {reset_time}"
        )

    auth_failure_patterns = [
        ("authentication", ""),
        ("permissiondenied", ""),
        ("unauthorized", ""),
        ("401", ""),
        ("api key", ""),
        ("api_key", ""),
        ("auth", "fail"),
    ]
    for pattern1, pattern2 in auth_failure_patterns:
        if pattern1 in combined and (not pattern2 or pattern2 in combined):
            return (
                AssessorFailure.AUTH_FAILED,
                "Authentication failed. Set ANTHROPIC_API_KEY or use the cli backend"
            )

    if "overloaded" in combined or re.search(r"(error|status|code)[:\s]*5\d\d", combined) \
            or "internalservererror" in combined:
        return (
            AssessorFailure.OVERLOADED,
            "Anthropic API overloaded or returned a server error"
        )

    if "connection" in combined or "network" in combined:
        return (
            AssessorFailure.NETWORK_ERROR,
            f"Network error reaching the assessor: {message[:100]}"
        )

    if isinstance(error, AssessorUnavailableError) or isinstance(error, (OSError, subprocess.SubprocessError)):
        return (
            AssessorFailure.CLI_ERROR,
            f"Assessor backend unavailable: {message[:100]}"
        )

    return (
        AssessorFailure.UNKNOWN,
        f"{type(error).__name__}: {message[:100]}"
    )
