"""Core sign-in domain: settings, claims, entitlements, identity and the flow controller."""

from sigma_signet.core.claims import UserInfo
from sigma_signet.core.entitlements import EntitlementAuthorizer
from sigma_signet.core.flow import (
    AuthFlowController,
    FlowError,
    FlowErrorKind,
    FlowOutcome,
    FlowState,
    InboundRequest,
)
from sigma_signet.core.identity import IdentityMapper, LocalAccount
from sigma_signet.core.settings import SettingsService, SigmaSettings
from sigma_signet.core.state import AuthStateManager, FlashMessages, SilentAuthMarker

__all__ = [
    "AuthFlowController",
    "AuthStateManager",
    "EntitlementAuthorizer",
    "FlashMessages",
    "FlowError",
    "FlowErrorKind",
    "FlowOutcome",
    "FlowState",
    "IdentityMapper",
    "InboundRequest",
    "LocalAccount",
    "SettingsService",
    "SigmaSettings",
    "SilentAuthMarker",
    "UserInfo",
]
