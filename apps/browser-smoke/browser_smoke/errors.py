"""Error taxonomy for remote browser smoke runs."""

from __future__ import annotations

from enum import Enum
from typing import ClassVar, Optional


class FailureCategory(str, Enum):
    """Failure classes used to pick remediation hints."""

    CONNECTION = "connection"
    CONFIGURATION = "configuration"
    SESSION = "session"
    SELECTOR = "selector"
    TIMEOUT = "timeout"
    ASSERTION = "assertion"
    ARTIFACT = "artifact"
    BROWSER = "browser"
    UNEXPECTED = "unexpected"


class HarnessError(Exception):
    """Base class for every error raised by the harness.

    ``fatal`` is ``None`` when the step severity decides, ``True`` when the
    error always aborts and ``False`` when it never does.
    """

    category: ClassVar[FailureCategory] = FailureCategory.UNEXPECTED
    fatal: ClassVar[Optional[bool]] = None


class ConfigurationError(HarnessError, ValueError):
    category = FailureCategory.CONFIGURATION
    fatal = True


class RemoteConnectionError(HarnessError, ConnectionError):
    """Endpoint unreachable, connection refused or handshake timed out."""

    category = FailureCategory.CONNECTION
    fatal = True

    def __init__(self, endpoint: str, reason: str) -> None:
        self.endpoint = endpoint
        self.reason = reason
        super().__init__(f"Could not connect to remote browser at {endpoint}: {reason}")


class SessionClosedError(HarnessError):
    category = FailureCategory.SESSION
    fatal = True


class ElementNotFound(HarnessError):
    category = FailureCategory.SELECTOR

    def __init__(self, target: str, timeout_ms: float) -> None:
        self.target = target
        self.timeout_ms = timeout_ms
        super().__init__(f"No element matched {target} within {timeout_ms:.0f}ms")


class AmbiguousSelector(HarnessError):
    category = FailureCategory.SELECTOR

    def __init__(self, target: str, count: int) -> None:
        self.target = target
        self.count = count
        super().__init__(f"{target} matched {count} elements, expected exactly one")


class NavigationTimeout(HarnessError, TimeoutError):
    category = FailureCategory.TIMEOUT

    def __init__(self, url: str, timeout_ms: float) -> None:
        self.url = url
        self.timeout_ms = timeout_ms
        super().__init__(f"Navigation to {url} did not finish within {timeout_ms:.0f}ms")


class WaitTimeout(HarnessError, TimeoutError):
    category = FailureCategory.TIMEOUT

    def __init__(self, target: str, timeout_ms: float, state: str = "visible") -> None:
        self.target = target
        self.timeout_ms = timeout_ms
        self.state = state
        super().__init__(f"{target} did not become {state} within {timeout_ms:.0f}ms")


class AssertionFailed(HarnessError, AssertionError):
    category = FailureCategory.ASSERTION

    def __init__(self, subject: str, expected: str, actual: str) -> None:
        self.subject = subject
        self.expected = expected
        self.actual = actual
        super().__init__(f"{subject}: expected {expected}, got {actual}")


class ExpectTimeout(AssertionFailed, TimeoutError):
    """The expected element never showed up before the expect timeout.

    Still an assertion failure for severity purposes, but categorized as a
    timeout so it is not confused with a value that was present and wrong.
    """

    category = FailureCategory.TIMEOUT


class ArtifactError(HarnessError):
    category = FailureCategory.ARTIFACT
    fatal = False


class BrowserActionError(HarnessError):
    """Any other error reported by the remote browser for a page action."""

    category = FailureCategory.BROWSER


class EnvironmentalSkip(Exception):
    """Known external condition (e.g. rate limiting) that ends a scenario as skipped."""

    def __init__(self, reason: str) -> None:
        self.reason = reason
        super().__init__(reason)


def categorize(error: BaseException) -> FailureCategory:
    if isinstance(error, HarnessError):
        return error.category
    return FailureCategory.UNEXPECTED
