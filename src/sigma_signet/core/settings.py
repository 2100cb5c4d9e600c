"""IdP settings record and the service that reads, replaces and debug-logs it."""

from __future__ import annotations

from contextvars import ContextVar
from dataclasses import asdict, dataclass, field
from typing import TYPE_CHECKING, Any
from urllib.parse import urlparse

import structlog

if TYPE_CHECKING:
    from sigma_signet.core.interfaces import ConfigStore

logger = structlog.get_logger()

REQUIRED_FIELDS = ("idp_url", "client_id", "client_secret", "redirect_uri")

REQUIRED_FIELD_LABELS = {
    "idp_url": "Identity Provider URL",
    "client_id": "Client ID",
    "client_secret": "Client Secret",
    "redirect_uri": "Redirect URI",
}

# Field names whose values never reach a log line.
SENSITIVE_FIELDS = frozenset(
    {
        "client_secret",
        "secret",
        "access_token",
        "refresh_token",
        "id_token",
        "auth_token",
        "code",
        "password",
        "state",
    }
)

REDACTED = "[redacted]"


def redact(fields: dict[str, Any]) -> dict[str, Any]:
    """Mask sensitive values in a mapping of log fields.

    Nested mappings are redacted recursively.

    Args:
        fields: Keyword fields destined for a log line.

    Returns:
        A copy with sensitive values replaced by a marker.
    """
    cleaned: dict[str, Any] = {}
    for key, value in fields.items():
        if key.lower() in SENSITIVE_FIELDS and value:
            cleaned[key] = REDACTED
        elif isinstance(value, dict):
            cleaned[key] = redact(value)
        else:
            cleaned[key] = value
    return cleaned


def _as_bool(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in {"1", "true", "yes", "on"}
    return bool(value)


def _as_text(value: Any) -> str:
    if value is None:
        return ""
    return str(value).strip()


@dataclass(frozen=True)
class SigmaSettings:
    """The IdP settings record.

    Always replaced as a whole; never partially written.
    """

    idp_url: str = ""
    client_id: str = ""
    client_secret: str = field(default="", repr=False)
    redirect_uri: str = ""
    ip_auth_enabled: bool = False
    debug_enabled: bool = False

    @classmethod
    def from_record(cls, record: dict[str, Any] | None) -> SigmaSettings:
        """Build settings from a stored or submitted record, sanitizing values.

        Unknown keys are ignored and missing keys fall back to defaults.
        """
        record = record or {}
        return cls(
            idp_url=_as_text(record.get("idp_url")),
            client_id=_as_text(record.get("client_id")),
            client_secret=_as_text(record.get("client_secret")),
            redirect_uri=_as_text(record.get("redirect_uri")),
            ip_auth_enabled=_as_bool(record.get("ip_auth_enabled", False)),
            debug_enabled=_as_bool(record.get("debug_enabled", False)),
        )

    def to_record(self) -> dict[str, Any]:
        """Return the full record for persistence."""
        return asdict(self)

    def is_configured(self) -> bool:
        """True iff every required field is non-empty."""
        return all(getattr(self, name) for name in REQUIRED_FIELDS)

    def missing_fields(self) -> list[str]:
        """Human-readable warnings for each empty required field."""
        return [
            f"{REQUIRED_FIELD_LABELS[name]} is required."
            for name in REQUIRED_FIELDS
            if not getattr(self, name)
        ]

    @property
    def idp_base_url(self) -> str:
        """IdP URL without a trailing slash."""
        return self.idp_url.rstrip("/")

    @property
    def callback_path(self) -> str | None:
        """Path component of the redirect URI, or None when unset."""
        if not self.redirect_uri:
            return None
        return urlparse(self.redirect_uri).path or "/"


class SettingsService:
    """Typed access to the IdP settings record held in a config store.

    The record is loaded with :meth:`reload` (once per request) and
    replaced only through :meth:`update`. A reload binds its snapshot to
    the calling context, so one request keeps the record it started with
    while another request saves a new one.
    """

    def __init__(self, store: ConfigStore, initial: SigmaSettings | None = None) -> None:
        """Initialize the service.

        Args:
            store: Persistent config store holding the settings record.
            initial: Snapshot to serve before the first reload.
        """
        self._store = store
        self._latest = initial or SigmaSettings()
        self._request_snapshot: ContextVar[SigmaSettings | None] = ContextVar(
            "sigma_settings_snapshot", default=None
        )

    @property
    def current(self) -> SigmaSettings:
        """The snapshot bound to this context, else the most recently loaded one."""
        snapshot = self._request_snapshot.get()
        return snapshot if snapshot is not None else self._latest

    async def reload(self) -> SigmaSettings:
        """Re-read the settings record from the store."""
        record = await self._store.load_config()
        snapshot = SigmaSettings.from_record(record)
        self._latest = snapshot
        self._request_snapshot.set(snapshot)
        return snapshot

    def get(self, key: str, default: Any = None) -> Any:
        """Get a single setting by name."""
        value = getattr(self.current, key, None)
        if value is None or value == "":
            return default
        return value

    def is_configured(self) -> bool:
        """True iff idp_url, client_id, client_secret and redirect_uri are set."""
        return self.current.is_configured()

    async def update(self, settings: SigmaSettings) -> bool:
        """Atomically replace the whole settings record.

        Returns:
            True if the store accepted the new record.
        """
        saved = await self._store.save_config(settings.to_record())
        if saved:
            self._latest = settings
            self._request_snapshot.set(settings)
            logger.info(
                "sigma_settings_updated",
                configured=settings.is_configured(),
                ip_auth_enabled=settings.ip_auth_enabled,
                debug_enabled=settings.debug_enabled,
            )
        else:
            logger.error("sigma_settings_update_failed")
        return saved

    def debug_log(self, event: str, **fields: Any) -> None:
        """Log a debug event when debug logging is enabled.

        Sensitive fields are always redacted.
        """
        if not self.current.debug_enabled:
            return
        logger.debug(event, sigma_debug=True, **redact(fields))
