"""Typed view over the claims returned by the SIGMA userinfo endpoint.

The payload is untrusted external input. Every level is optional, lists
tolerate ``null`` and non-object entries, and both the camelCase keys
SIGMA documents and the snake_case keys older deployments emit are
accepted.
"""

from __future__ import annotations

from collections.abc import Iterator
from typing import Any

import structlog
from pydantic import AliasChoices, BaseModel, ConfigDict, Field, PrivateAttr, ValidationError
from pydantic import field_validator

logger = structlog.get_logger()


def _alias(camel: str, snake: str) -> AliasChoices:
    return AliasChoices(camel, snake)


def _object_list(value: Any) -> list[Any]:
    """Keep only mapping entries of a list; anything else becomes empty."""
    if not isinstance(value, list):
        return []
    return [item for item in value if isinstance(item, dict)]


class _Claims(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True, frozen=True)


class Profile(_Claims):
    """An individual or organization profile."""

    profile_id: int | str | None = Field(
        default=None, validation_alias=_alias("profileId", "profile_id")
    )
    profile_name: str | None = Field(
        default=None, validation_alias=_alias("profileName", "profile_name")
    )
    identifier_type: str | None = Field(
        default=None, validation_alias=_alias("identifierType", "identifier_type")
    )

    @field_validator("profile_id", mode="before")
    @classmethod
    def _id(cls, value: Any) -> Any:
        if isinstance(value, bool) or not isinstance(value, int | str):
            return None
        if isinstance(value, str):
            # Blank ids would all map to the same local account
            return value.strip() or None
        return value

    @field_validator("profile_name", "identifier_type", mode="before")
    @classmethod
    def _text(cls, value: Any) -> Any:
        return value if isinstance(value, str) else None


class AuthenticatedProfiles(_Claims):
    """Profiles the IdP authenticated for this session."""

    individual_profile: Profile | None = Field(
        default=None, validation_alias=_alias("individualProfile", "individual_profile")
    )
    organization_profiles: list[Profile] = Field(
        default_factory=list,
        validation_alias=_alias("organizationProfiles", "organization_profiles"),
    )

    @field_validator("individual_profile", mode="before")
    @classmethod
    def _mapping_or_none(cls, value: Any) -> Any:
        return value if isinstance(value, dict) else None

    @field_validator("organization_profiles", mode="before")
    @classmethod
    def _profiles(cls, value: Any) -> list[Any]:
        return _object_list(value)


class ContentIdentifier(_Claims):
    """A single content identifier inside a bundle."""

    content_identifier: str | None = Field(
        default=None, validation_alias=_alias("contentIdentifier", "content_identifier")
    )

    @field_validator("content_identifier", mode="before")
    @classmethod
    def _text_or_none(cls, value: Any) -> Any:
        return value if isinstance(value, str) else None


class ContentBundle(_Claims):
    """A bundle of content granted by a license agreement."""

    content_identifiers: list[ContentIdentifier] = Field(
        default_factory=list,
        validation_alias=_alias("contentIdentifiers", "content_identifiers"),
    )

    @field_validator("content_identifiers", mode="before")
    @classmethod
    def _identifiers(cls, value: Any) -> list[Any]:
        return _object_list(value)


class LicenseAgreement(_Claims):
    """License agreement body."""

    content_bundles: list[ContentBundle] = Field(
        default_factory=list,
        validation_alias=_alias("contentBundles", "content_bundles"),
    )

    @field_validator("content_bundles", mode="before")
    @classmethod
    def _bundles(cls, value: Any) -> list[Any]:
        return _object_list(value)


class LicenseAgreementEntry(_Claims):
    """Wrapper object around a license agreement."""

    license_agreement: LicenseAgreement | None = Field(
        default=None, validation_alias=_alias("licenseAgreement", "license_agreement")
    )

    @field_validator("license_agreement", mode="before")
    @classmethod
    def _mapping_or_none(cls, value: Any) -> Any:
        return value if isinstance(value, dict) else None


class UserInfo(_Claims):
    """Claims returned by the userinfo endpoint."""

    authentication_type: str | None = Field(
        default=None, validation_alias=_alias("authenticationType", "authentication_type")
    )
    authenticated_profiles: AuthenticatedProfiles | None = Field(
        default=None,
        validation_alias=_alias("authenticatedProfiles", "authenticated_profiles"),
    )
    license_agreements: list[LicenseAgreementEntry] = Field(
        default_factory=list,
        validation_alias=_alias("licenseAgreements", "license_agreements"),
    )

    _raw: dict[str, Any] = PrivateAttr(default_factory=dict)

    @field_validator("authentication_type", mode="before")
    @classmethod
    def _text_or_none(cls, value: Any) -> Any:
        return value if isinstance(value, str) else None

    @field_validator("authenticated_profiles", mode="before")
    @classmethod
    def _mapping_or_none(cls, value: Any) -> Any:
        return value if isinstance(value, dict) else None

    @field_validator("license_agreements", mode="before")
    @classmethod
    def _agreements(cls, value: Any) -> list[Any]:
        return _object_list(value)

    @classmethod
    def from_claims(cls, claims: Any) -> UserInfo | None:
        """Parse a decoded userinfo payload.

        Returns:
            The parsed claims, or None if the payload is not a JSON object
            or a present field has an unusable type.
        """
        if not isinstance(claims, dict):
            logger.warning("userinfo_not_an_object", payload_type=type(claims).__name__)
            return None
        try:
            info = cls.model_validate(claims)
        except ValidationError as e:
            logger.warning("userinfo_malformed", error_count=e.error_count())
            return None
        info._raw = dict(claims)
        return info

    @property
    def raw(self) -> dict[str, Any]:
        """The unparsed claims payload."""
        return dict(self._raw)

    @property
    def individual_profile(self) -> Profile | None:
        """The named user's profile, if any."""
        if self.authenticated_profiles is None:
            return None
        return self.authenticated_profiles.individual_profile

    @property
    def organization_profiles(self) -> list[Profile]:
        """Organization profiles, possibly empty."""
        if self.authenticated_profiles is None:
            return []
        return list(self.authenticated_profiles.organization_profiles)

    def content_identifiers(self) -> Iterator[str]:
        """Yield every content identifier granted across all license agreements."""
        for entry in self.license_agreements:
            if entry.license_agreement is None:
                continue
            for bundle in entry.license_agreement.content_bundles:
                for identifier in bundle.content_identifiers:
                    if identifier.content_identifier is not None:
                        yield identifier.content_identifier
