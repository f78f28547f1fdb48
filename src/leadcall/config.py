"""Environment configuration.

``validate_config`` checks required variables before the server accepts
requests, so a missing key fails loudly at startup rather than on the
first call. ``load_settings`` turns the environment into an immutable
``Settings`` value that is passed to whatever needs it.
"""

import logging
import os
import sys
from dataclasses import dataclass

from leadcall.provider import DEFAULT_BASE_URL, DEFAULT_DECLINED_END_REASONS

logger = logging.getLogger(__name__)

REQUIRED_VARS = [
    "VAPI_API_KEY",
    "VAPI_ASSISTANT_ID",
    "VAPI_PHONE_NUMBER_ID",
    "OPERATOR_PASSWORD",
]

OPTIONAL_VARS = [
    "VAPI_BASE_URL",
    "LEADS_DB_PATH",
    "DECLINED_END_REASONS",
    "PROVIDER_TIMEOUT_S",
    "LOG_LEVEL",
]


@dataclass(frozen=True)
class Settings:
    vapi_api_key: str
    vapi_assistant_id: str
    vapi_phone_number_id: str
    operator_password: str
    vapi_base_url: str = DEFAULT_BASE_URL
    db_path: str = "leads.db"
    declined_end_reasons: frozenset = DEFAULT_DECLINED_END_REASONS
    provider_timeout: float = 15.0
    log_level: str = "INFO"


def _parse_list(value: str | None, default: frozenset) -> frozenset:
    if value is None:
        return default
    return frozenset(item.strip() for item in value.split(",") if item.strip())


def load_settings() -> Settings:
    return Settings(
        vapi_api_key=os.getenv("VAPI_API_KEY", ""),
        vapi_assistant_id=os.getenv("VAPI_ASSISTANT_ID", ""),
        vapi_phone_number_id=os.getenv("VAPI_PHONE_NUMBER_ID", ""),
        operator_password=os.getenv("OPERATOR_PASSWORD", ""),
        vapi_base_url=os.getenv("VAPI_BASE_URL") or DEFAULT_BASE_URL,
        db_path=os.getenv("LEADS_DB_PATH") or "leads.db",
        declined_end_reasons=_parse_list(
            os.getenv("DECLINED_END_REASONS"), DEFAULT_DECLINED_END_REASONS
        ),
        provider_timeout=float(os.getenv("PROVIDER_TIMEOUT_S") or 15.0),
        log_level=(os.getenv("LOG_LEVEL") or "INFO").upper(),
    )


def validate_config() -> None:
    """Validate environment variables at startup.

    Exits the process with a clear error if any required variable is missing
    or empty.  Logs warnings for missing optional variables.
    """
    missing = [var for var in REQUIRED_VARS if not os.getenv(var)]

    if missing:
        print(
            f"\nFATAL: Missing required environment variables:\n"
            f"  {', '.join(missing)}\n"
            f"\nSet them in .env or the deployment environment.\n",
            file=sys.stderr,
        )
        sys.exit(1)

    for var in OPTIONAL_VARS:
        if not os.getenv(var):
            logger.warning("Optional env var %s is not set", var)
