"""Entitlement check: does the user hold a license to the site's content bundle."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from sigma_signet.core.claims import UserInfo
    from sigma_signet.core.settings import SettingsService

TARGET_CONTENT_IDENTIFIER = "WSB"


class EntitlementAuthorizer:
    """Grants access when any license agreement carries the target content identifier.

    Missing agreements, bundles or identifiers mean no access.
    """

    def __init__(
        self,
        settings: SettingsService,
        content_identifier: str = TARGET_CONTENT_IDENTIFIER,
    ) -> None:
        """Initialize the authorizer.

        Args:
            settings: Settings service, used for debug logging.
            content_identifier: Identifier that must appear in a content bundle.
        """
        self._settings = settings
        self._content_identifier = content_identifier

    def is_authorized(self, user_info: UserInfo) -> bool:
        """Return True if the claims grant access to the target content."""
        authorized = any(
            identifier == self._content_identifier
            for identifier in user_info.content_identifiers()
        )
        self._settings.debug_log(
            "sigma_authorization_checked",
            content_identifier=self._content_identifier,
            granted=authorized,
            agreement_count=len(user_info.license_agreements),
        )
        return authorized
