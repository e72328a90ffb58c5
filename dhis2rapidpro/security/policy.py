"""Route access policy.

Maps request paths to the authentication scheme and CSRF treatment that
apply to them. The rule chain is built once from the settings and every
request is classified against it in order; the first matching rule wins.

Rules:
    webhook     /dhis2rapidpro/webhook              TOKEN    CSRF off
    management  /management/**, sync/scan/reminders,
                /login, /logout                     SESSION  CSRF on (with exemptions)
    default     /**                                 NONE     CSRF on
"""

import re
from dataclasses import dataclass, field
from enum import Enum

from dhis2rapidpro.config import Settings

WEBHOOK_PATH = "/dhis2rapidpro/webhook"
SYNC_PATH = "/dhis2rapidpro/sync"
SCAN_PATH = "/dhis2rapidpro/scan"
REMINDERS_PATH = "/dhis2rapidpro/reminders"
LOGIN_PATH = "/login"
LOGOUT_PATH = "/logout"
ADMIN_CONSOLE_PATTERN = "/management/h2-console/**"

MANAGEMENT_PATTERNS = (
    "/management/**",
    SYNC_PATH,
    SCAN_PATH,
    REMINDERS_PATH,
    LOGIN_PATH,
    LOGOUT_PATH,
)

# Invoked by schedulers and automation, not browsers
MANAGEMENT_CSRF_EXEMPT_PATTERNS = (
    ADMIN_CONSOLE_PATTERN,
    SYNC_PATH,
    SCAN_PATH,
    REMINDERS_PATH,
)

# Reachable without a principal so that one can be established or dropped
AUTHENTICATION_ENTRY_PATHS = frozenset({LOGIN_PATH, LOGOUT_PATH})


class AuthScheme(Enum):
    """Authentication scheme applied to a group of paths."""

    SESSION = "session"  # Session cookie or HTTP basic
    TOKEN = "token"  # Generated webhook token
    NONE = "none"  # Unauthenticated


def compile_ant_pattern(pattern: str) -> re.Pattern[str]:
    """Compile an ant-style path pattern to a regular expression.

    ``?`` matches one character within a segment, ``*`` any characters
    within a segment and ``**`` any number of segments, including none.

    Args:
        pattern: Pattern such as "/management/**".

    Returns:
        Compiled regex matching whole paths.
    """
    regex: list[str] = []
    i = 0
    while i < len(pattern):
        if pattern.startswith("/**", i):
            regex.append("(?:/.*)?")
            i += 3
        elif pattern.startswith("**", i):
            regex.append(".*")
            i += 2
        elif pattern[i] == "*":
            regex.append("[^/]*")
            i += 1
        elif pattern[i] == "?":
            regex.append("[^/]")
            i += 1
        else:
            regex.append(re.escape(pattern[i]))
            i += 1
    return re.compile("".join(regex))


@dataclass(frozen=True)
class PathMatcher:
    """Matches paths against a set of ant-style patterns."""

    patterns: tuple[str, ...]
    _compiled: tuple[re.Pattern[str], ...] = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        object.__setattr__(
            self, "_compiled", tuple(compile_ant_pattern(p) for p in self.patterns)
        )

    def matches(self, path: str) -> bool:
        """Check whether any pattern matches the whole path."""
        return any(regex.fullmatch(path) for regex in self._compiled)


@dataclass(frozen=True)
class RouteRule:
    """One entry of the access policy.

    Attributes:
        name: Rule name used in logs.
        matcher: Paths the rule applies to.
        scheme: Authentication scheme for those paths.
        csrf_enabled: Whether CSRF protection applies at all.
        csrf_exempt: Paths within the rule that skip CSRF protection.
    """

    name: str
    matcher: PathMatcher
    scheme: AuthScheme
    csrf_enabled: bool
    csrf_exempt: PathMatcher = field(default_factory=lambda: PathMatcher(()))


@dataclass(frozen=True)
class RouteDecision:
    """Outcome of classifying one request path.

    Attributes:
        rule: Name of the matching rule.
        scheme: Authentication scheme to enforce.
        csrf_required: Whether unsafe methods must carry a CSRF token.
        authentication_entry: Whether the path establishes or drops a
            principal (login/logout) instead of requiring one.
    """

    rule: str
    scheme: AuthScheme
    csrf_required: bool
    authentication_entry: bool = False


class AccessPolicy:
    """Ordered chain of route rules; the first match wins."""

    def __init__(self, rules: list[RouteRule] | tuple[RouteRule, ...]) -> None:
        """Initialize the policy.

        Args:
            rules: Rules in evaluation order. The last rule should match
                every path.
        """
        self.rules = tuple(rules)

    def classify(self, path: str) -> RouteDecision:
        """Classify a request path.

        Args:
            path: Request path (no query string).

        Returns:
            Decision of the first matching rule. Paths no rule matches are
            unauthenticated with CSRF protection enabled.
        """
        for rule in self.rules:
            if rule.matcher.matches(path):
                return RouteDecision(
                    rule=rule.name,
                    scheme=rule.scheme,
                    csrf_required=rule.csrf_enabled and not rule.csrf_exempt.matches(path),
                    authentication_entry=(
                        rule.scheme is AuthScheme.SESSION and path in AUTHENTICATION_ENTRY_PATHS
                    ),
                )
        return RouteDecision(rule="unmatched", scheme=AuthScheme.NONE, csrf_required=True)


def build_access_policy(settings: Settings) -> AccessPolicy:
    """Build the access policy from the settings.

    A disabled scheme downgrades its rule to NONE but keeps the rule's CSRF
    treatment, so the webhook never needs a CSRF token and the scheduler
    triggers stay exempt.

    Args:
        settings: Application settings.

    Returns:
        The ordered access policy.
    """
    webhook_rule = RouteRule(
        name="webhook",
        matcher=PathMatcher((WEBHOOK_PATH,)),
        scheme=AuthScheme.TOKEN if settings.webhook_token_auth_enabled else AuthScheme.NONE,
        csrf_enabled=False,
    )
    management_rule = RouteRule(
        name="management",
        matcher=PathMatcher(MANAGEMENT_PATTERNS),
        scheme=AuthScheme.SESSION if settings.management_auth_enabled else AuthScheme.NONE,
        csrf_enabled=True,
        csrf_exempt=PathMatcher(MANAGEMENT_CSRF_EXEMPT_PATTERNS),
    )
    default_rule = RouteRule(
        name="default",
        matcher=PathMatcher(("/**",)),
        scheme=AuthScheme.NONE,
        csrf_enabled=True,
    )
    return AccessPolicy([webhook_rule, management_rule, default_rule])
