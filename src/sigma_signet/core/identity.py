"""Map SIGMA identity claims onto local accounts."""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING, Any
from uuid import UUID

import structlog
from pydantic import BaseModel, Field

from sigma_signet.core.auth.password import generate_password_hash
from sigma_signet.core.exceptions import AccountExistsError

if TYPE_CHECKING:
    from sigma_signet.core.claims import Profile, UserInfo
    from sigma_signet.core.interfaces import AccountRepository
    from sigma_signet.core.settings import SettingsService

logger = structlog.get_logger()

USERNAME_PREFIX = "profile_"
SYNTHETIC_EMAIL_DOMAIN = "sigma.local"
DEFAULT_ROLE = "subscriber"
PREFERRED_IDENTIFIER_TYPE = "USER_PASS"
UNKNOWN = "unknown"


class AuthenticationType(str, Enum):
    """How SIGMA authenticated the session."""

    NAMED = "named"
    ANONYMOUS = "anonymous"
    UNKNOWN = "unknown"

    @classmethod
    def parse(cls, value: str | None) -> AuthenticationType:
        """Parse a claim value, defaulting to UNKNOWN."""
        try:
            return cls((value or "").lower())
        except ValueError:
            return cls.UNKNOWN


class AccountMetadata(BaseModel):
    """SIGMA facts stored with a local account, refreshed on every login."""

    sigma_profile_id: str
    sigma_auth_type: str
    sigma_identifier_type: str
    sigma_userinfo: dict[str, Any] = Field(default_factory=dict)


class NewAccount(BaseModel):
    """Fields for creating a local account."""

    username: str
    email: str
    display_name: str
    first_name: str = ""
    last_name: str = ""
    role: str = DEFAULT_ROLE
    password_hash: str
    metadata: AccountMetadata


class LocalAccount(BaseModel):
    """Local account domain model."""

    id: UUID
    username: str
    email: str
    display_name: str
    first_name: str = ""
    last_name: str = ""
    role: str = DEFAULT_ROLE
    metadata: AccountMetadata
    created_at: datetime
    updated_at: datetime | None = None


def username_for(profile_id: int | str) -> str:
    """Deterministic local username for a SIGMA profile id."""
    return f"{USERNAME_PREFIX}{profile_id}"


def split_name(full_name: str | None) -> tuple[str, str]:
    """Split a display name into first word and remainder."""
    parts = (full_name or "").split()
    if not parts:
        return "", ""
    return parts[0], " ".join(parts[1:])


def resolve_identifier_type(user_info: UserInfo) -> str:
    """Pick the identifier type recorded for this login.

    USER_PASS wins over any other type (such as IP_RANGE) when several
    organization profiles qualify; otherwise the first present type is used.
    """
    types = [
        profile.identifier_type
        for profile in user_info.organization_profiles
        if profile.identifier_type
    ]
    if PREFERRED_IDENTIFIER_TYPE in types:
        return PREFERRED_IDENTIFIER_TYPE.lower()
    if types:
        return types[0].lower()
    return UNKNOWN


class IdentityMapper:
    """Find-or-create the local account for a SIGMA profile.

    Idempotent: the username is a pure function of the profile id, so the
    same profile always lands on the same account and repeated calls only
    converge its metadata to the latest claims.
    """

    def __init__(
        self,
        accounts: AccountRepository,
        settings: SettingsService,
        email_domain: str = SYNTHETIC_EMAIL_DOMAIN,
        default_role: str = DEFAULT_ROLE,
    ) -> None:
        """Initialize the mapper.

        Args:
            accounts: Local account store.
            settings: Settings service, used for debug logging.
            email_domain: Non-routable domain for synthetic addresses.
            default_role: Role given to newly created accounts.
        """
        self._accounts = accounts
        self._settings = settings
        self._email_domain = email_domain
        self._default_role = default_role

    def select_profile(self, user_info: UserInfo) -> tuple[AuthenticationType, Profile | None]:
        """Choose the profile that identifies this login."""
        auth_type = AuthenticationType.parse(user_info.authentication_type)
        if auth_type is AuthenticationType.NAMED:
            return auth_type, user_info.individual_profile
        if auth_type is AuthenticationType.ANONYMOUS:
            profiles = user_info.organization_profiles
            return auth_type, profiles[0] if profiles else None
        return auth_type, None

    async def resolve(self, user_info: UserInfo) -> LocalAccount | None:
        """Resolve claims to a local account, creating or refreshing it.

        Returns:
            The account, or None if no usable profile could be extracted.
        """
        auth_type, profile = self.select_profile(user_info)
        if profile is None or profile.profile_id is None:
            logger.warning(
                "sigma_identity_unresolved",
                auth_type=user_info.authentication_type or UNKNOWN,
                has_profile=profile is not None,
            )
            return None

        profile_id = str(profile.profile_id)
        username = username_for(profile_id)
        metadata = AccountMetadata(
            sigma_profile_id=profile_id,
            sigma_auth_type=auth_type.value,
            sigma_identifier_type=resolve_identifier_type(user_info),
            sigma_userinfo=user_info.raw,
        )

        existing = await self._accounts.find_by_username(username)
        if existing is not None:
            return await self._refresh(existing, profile, metadata)

        try:
            account = await self._create(username, profile_id, profile, metadata)
        except AccountExistsError:
            # Another request created it first; converge onto that account.
            existing = await self._accounts.find_by_username(username)
            if existing is None:
                logger.error("sigma_account_conflict_unresolved", username=username)
                return None
            return await self._refresh(existing, profile, metadata)

        logger.info(
            "sigma_account_created",
            account_id=str(account.id),
            username=username,
            auth_type=auth_type.value,
        )
        return account

    async def _create(
        self,
        username: str,
        profile_id: str,
        profile: Profile,
        metadata: AccountMetadata,
    ) -> LocalAccount:
        display_name = profile.profile_name or username
        first_name, last_name = split_name(profile.profile_name)
        return await self._accounts.create_account(
            NewAccount(
                username=username,
                email=f"{profile_id}@{self._email_domain}",
                display_name=display_name,
                first_name=first_name,
                last_name=last_name,
                role=self._default_role,
                password_hash=generate_password_hash(),
                metadata=metadata,
            )
        )

    async def _refresh(
        self,
        account: LocalAccount,
        profile: Profile,
        metadata: AccountMetadata,
    ) -> LocalAccount:
        name_changed = bool(profile.profile_name) and account.display_name != profile.profile_name
        if name_changed:
            first_name, last_name = split_name(profile.profile_name)
            updated = await self._accounts.update_account(
                account.id,
                display_name=profile.profile_name,
                first_name=first_name,
                last_name=last_name,
                metadata=metadata,
            )
        else:
            updated = await self._accounts.update_account(account.id, metadata=metadata)

        self._settings.debug_log(
            "sigma_account_refreshed",
            account_id=str(account.id),
            name_changed=name_changed,
            auth_type=metadata.sigma_auth_type,
            identifier_type=metadata.sigma_identifier_type,
        )
        return updated or account
