import enum
import os
from dataclasses import dataclass


class Environment(enum.Enum):
    DEV = "Dev"
    TEST = "Test"
    PROD = "Prod"

    @classmethod
    def parse(cls, value):
        """Accept an Environment or a case-insensitive name. Empty means Prod."""
        if isinstance(value, cls):
            return value
        if not value:
            return cls.PROD
        for member in cls:
            if member.value.lower() == str(value).strip().lower():
                return member
        raise ValueError(f"unknown environment: {value!r} (expected Dev, Test or Prod)")


@dataclass(frozen=True)
class ReportingConfig:
    dsn: str
    environment: Environment = Environment.PROD
    debug: bool = False

    def __post_init__(self):
        if not self.dsn or not isinstance(self.dsn, str):
            raise ValueError("dsn is required")
        object.__setattr__(self, "environment", Environment.parse(self.environment))
        object.__setattr__(self, "debug", bool(self.debug))


_TRUTHY = frozenset({"1", "true", "yes", "on"})


def config_from_env(environ=None):
    """Build a ReportingConfig from ERRORGATE_* variables, or None if no DSN is set."""
    environ = os.environ if environ is None else environ
    dsn = environ.get("ERRORGATE_DSN", "").strip()
    if not dsn:
        return None
    return ReportingConfig(
        dsn=dsn,
        environment=environ.get("ERRORGATE_ENVIRONMENT", ""),
        debug=environ.get("ERRORGATE_DEBUG", "").strip().lower() in _TRUTHY,
    )
