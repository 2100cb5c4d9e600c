"""Sign-in flow controller.

Each inbound request is classified into at most one terminal action:

    login initiation -> silent (IP) auth -> callback -> logout -> passthrough

Every check either returns an outcome or falls through to the next one.
The controller never touches the host framework: it reads an immutable
:class:`InboundRequest` and returns a :class:`FlowOutcome` describing the
redirect, error page and session changes for the host to apply.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import TYPE_CHECKING, Protocol
from urllib.parse import urlencode

import structlog

from sigma_signet.core.exceptions import StoreError

if TYPE_CHECKING:
    from sigma_signet.adapters.sigma.exchange import TokenResponse
    from sigma_signet.core.claims import UserInfo
    from sigma_signet.core.entitlements import EntitlementAuthorizer
    from sigma_signet.core.identity import IdentityMapper, LocalAccount
    from sigma_signet.core.settings import SettingsService
    from sigma_signet.core.state import AuthStateManager, FlashMessages, SilentAuthMarker

logger = structlog.get_logger()

LOGIN_PARAM = "sigma_login"
LOGOUT_PARAM = "sigma_logout"
WELCOME_PARAM = "sigma_welcome"
LOGIN_REQUIRED_ERROR = "login_required"

ACCESS_DENIED_MESSAGE = (
    "Your SIGMA account does not include access to this site. "
    "Please contact your librarian or administrator."
)


class UrlBuilder(Protocol):
    """Authorization URL builder used by the controller."""

    def is_ready(self) -> bool: ...

    async def build_login_url(
        self, ip_address: str, referrer_url: str | None = None, state: str | None = None
    ) -> str | None: ...

    async def build_silent_url(
        self, ip_address: str, referrer_url: str | None = None
    ) -> str | None: ...

    async def build_logout_url(self, ip_address: str) -> str | None: ...


class Exchanger(Protocol):
    """Token and userinfo client used by the controller."""

    async def exchange_code(self, code: str) -> TokenResponse | None: ...

    async def fetch_user_info(self, access_token: str) -> UserInfo | None: ...


class FlowState(str, Enum):
    """Which branch of the flow handled the request."""

    SILENT_AUTH_ATTEMPT = "silent_auth_attempt"
    LOGIN_INITIATED = "login_initiated"
    CALLBACK_RECEIVED = "callback_received"
    LOGOUT_INITIATED = "logout_initiated"
    PASSTHROUGH = "passthrough"


class FlowErrorKind(str, Enum):
    """Terminal failure categories, each with its own user-facing message."""

    CONFIGURATION = "configuration"
    IDP = "idp"
    STATE = "state"
    IDENTITY = "identity"
    INVALID_CALLBACK = "invalid_callback"


ERROR_MESSAGES = {
    FlowErrorKind.CONFIGURATION: "Sign-in is not configured on this site.",
    FlowErrorKind.IDP: "Authentication failed. Please try again.",
    FlowErrorKind.STATE: "Invalid or expired login state. Please retry login.",
    FlowErrorKind.IDENTITY: "We could not match your account. Please contact support.",
    FlowErrorKind.INVALID_CALLBACK: "Invalid callback request.",
}

ERROR_STATUS_CODES = {
    FlowErrorKind.CONFIGURATION: 503,
    FlowErrorKind.IDP: 502,
    FlowErrorKind.STATE: 400,
    FlowErrorKind.IDENTITY: 403,
    FlowErrorKind.INVALID_CALLBACK: 400,
}


@dataclass(frozen=True)
class FlowError:
    """A terminal error shown to the end user."""

    kind: FlowErrorKind

    @property
    def message(self) -> str:
        return ERROR_MESSAGES[self.kind]

    @property
    def status_code(self) -> int:
        return ERROR_STATUS_CODES[self.kind]


@dataclass(frozen=True)
class InboundRequest:
    """The parts of an HTTP request the controller needs."""

    path: str
    query: Mapping[str, str]
    client_ip: str
    session_id: str
    is_authenticated: bool = False
    referrer: str | None = None

    @classmethod
    def create(
        cls,
        path: str,
        query: Mapping[str, str],
        client_ip: str,
        session_id: str,
        is_authenticated: bool = False,
        referrer: str | None = None,
    ) -> InboundRequest:
        """Build a request with a read-only copy of the query parameters."""
        return cls(
            path=path,
            query=MappingProxyType(dict(query)),
            client_ip=client_ip,
            session_id=session_id,
            is_authenticated=is_authenticated,
            referrer=referrer,
        )

    def param(self, name: str) -> str | None:
        """A stripped query parameter, or None when absent."""
        value = self.query.get(name)
        return value.strip() if value is not None else None


@dataclass(frozen=True)
class FlowOutcome:
    """What the host should do with the request."""

    state: FlowState
    redirect_url: str | None = None
    error: FlowError | None = None
    establish_session: LocalAccount | None = field(default=None, repr=False)
    end_session: bool = False

    @property
    def is_passthrough(self) -> bool:
        return self.redirect_url is None and self.error is None


PASSTHROUGH = FlowOutcome(state=FlowState.PASSTHROUGH)


class AuthFlowController:
    """Routes requests through the SIGMA sign-in state machine."""

    def __init__(
        self,
        settings: SettingsService,
        url_builder: UrlBuilder,
        exchanger: Exchanger,
        authorizer: EntitlementAuthorizer,
        identity_mapper: IdentityMapper,
        states: AuthStateManager,
        silent_auth_marker: SilentAuthMarker,
        flashes: FlashMessages,
        home_url: str = "/",
    ) -> None:
        """Initialize the controller with its collaborators.

        Args:
            settings: Settings service, reloaded at the start of each request.
            url_builder: Authorization URL builder.
            exchanger: Code exchange and userinfo client.
            authorizer: Entitlement check.
            identity_mapper: Claims to local account mapper.
            states: CSRF state issuer and verifier.
            silent_auth_marker: Per-session silent-auth attempt flag.
            flashes: One-shot message store.
            home_url: Where finished flows land.
        """
        self._settings = settings
        self._url_builder = url_builder
        self._exchanger = exchanger
        self._authorizer = authorizer
        self._identity_mapper = identity_mapper
        self._states = states
        self._silent_auth_marker = silent_auth_marker
        self._flashes = flashes
        self._home_url = home_url

    @property
    def home_url(self) -> str:
        return self._home_url

    @property
    def welcome_url(self) -> str:
        separator = "&" if "?" in self._home_url else "?"
        return f"{self._home_url}{separator}{urlencode({WELCOME_PARAM: '1'})}"

    async def handle(self, request: InboundRequest) -> FlowOutcome:
        """Classify the request and run at most one terminal action.

        A store failure ends a sign-in step with an IdP error page. Silent
        auth is opportunistic, so its store failures fall through instead.
        """
        try:
            await self._settings.reload()
        except StoreError as e:
            logger.error("sigma_settings_reload_failed", error=str(e))

        steps = (
            (FlowState.LOGIN_INITIATED, self._handle_login),
            (FlowState.SILENT_AUTH_ATTEMPT, self._handle_silent_auth),
            (FlowState.CALLBACK_RECEIVED, self._handle_callback),
            (FlowState.LOGOUT_INITIATED, self._handle_logout),
        )
        for state, step in steps:
            try:
                outcome = await step(request)
            except StoreError as e:
                logger.error("sigma_store_unavailable", flow_state=state.value, error=str(e))
                if state is FlowState.SILENT_AUTH_ATTEMPT:
                    continue
                return self._error(state, FlowErrorKind.IDP)
            if outcome is not None:
                return outcome
        return PASSTHROUGH

    async def _handle_login(self, request: InboundRequest) -> FlowOutcome | None:
        if LOGIN_PARAM not in request.query:
            return None

        if not self._url_builder.is_ready():
            logger.error("sigma_login_not_configured")
            return self._error(FlowState.LOGIN_INITIATED, FlowErrorKind.CONFIGURATION)

        state = await self._states.issue(request.session_id)
        url = await self._url_builder.build_login_url(request.client_ip, request.referrer, state)
        if not url:
            logger.error("sigma_login_url_failed")
            return self._error(FlowState.LOGIN_INITIATED, FlowErrorKind.IDP)

        self._settings.debug_log("sigma_login_redirect", client_ip=request.client_ip)
        return FlowOutcome(state=FlowState.LOGIN_INITIATED, redirect_url=url)

    async def _handle_silent_auth(self, request: InboundRequest) -> FlowOutcome | None:
        settings = self._settings.current
        if not settings.ip_auth_enabled or request.is_authenticated:
            return None
        if request.path == settings.callback_path or LOGOUT_PARAM in request.query:
            return None
        if not self._url_builder.is_ready():
            return None
        if await self._silent_auth_marker.has_attempted(request.session_id):
            return None

        # Marked before redirecting so a failed attempt cannot loop.
        await self._silent_auth_marker.mark_attempted(request.session_id)

        url = await self._url_builder.build_silent_url(request.client_ip, request.referrer)
        if not url:
            return None

        self._settings.debug_log("sigma_silent_auth_redirect", client_ip=request.client_ip)
        return FlowOutcome(state=FlowState.SILENT_AUTH_ATTEMPT, redirect_url=url)

    async def _handle_callback(self, request: InboundRequest) -> FlowOutcome | None:
        callback_path = self._settings.current.callback_path
        if callback_path is None or request.path != callback_path:
            return None

        self._settings.debug_log("sigma_callback_received")

        error = request.param("error")
        if error is not None:
            if error == LOGIN_REQUIRED_ERROR:
                self._settings.debug_log("sigma_callback_login_required")
                return FlowOutcome(state=FlowState.CALLBACK_RECEIVED, redirect_url=self._home_url)
            logger.warning("sigma_callback_idp_error", error_code=error[:100])
            return self._error(FlowState.CALLBACK_RECEIVED, FlowErrorKind.IDP)

        code = request.param("code")
        if code:
            return await self._complete_sign_in(request, code)

        logger.warning("sigma_callback_invalid")
        return self._error(FlowState.CALLBACK_RECEIVED, FlowErrorKind.INVALID_CALLBACK)

    async def _complete_sign_in(self, request: InboundRequest, code: str) -> FlowOutcome:
        state = request.param("state")
        if state is not None and not await self._states.consume(state, request.session_id):
            return self._error(FlowState.CALLBACK_RECEIVED, FlowErrorKind.STATE)

        tokens = await self._exchanger.exchange_code(code)
        if tokens is None:
            return self._error(FlowState.CALLBACK_RECEIVED, FlowErrorKind.IDP)

        user_info = await self._exchanger.fetch_user_info(tokens.access_token)
        if user_info is None:
            return self._error(FlowState.CALLBACK_RECEIVED, FlowErrorKind.IDP)

        if not self._authorizer.is_authorized(user_info):
            logger.info(
                "sigma_access_denied",
                authentication_type=user_info.authentication_type,
            )
            await self._flashes.set(request.session_id, ACCESS_DENIED_MESSAGE)
            return FlowOutcome(state=FlowState.CALLBACK_RECEIVED, redirect_url=self._home_url)

        account = await self._identity_mapper.resolve(user_info)
        if account is None:
            return self._error(FlowState.CALLBACK_RECEIVED, FlowErrorKind.IDENTITY)

        logger.info("sigma_sign_in_completed", account_id=str(account.id))
        return FlowOutcome(
            state=FlowState.CALLBACK_RECEIVED,
            redirect_url=self.welcome_url,
            establish_session=account,
        )

    async def _handle_logout(self, request: InboundRequest) -> FlowOutcome | None:
        if LOGOUT_PARAM not in request.query:
            return None

        redirect_url = self._home_url
        if self._url_builder.is_ready():
            logout_url = await self._url_builder.build_logout_url(request.client_ip)
            if logout_url:
                redirect_url = logout_url

        self._settings.debug_log("sigma_logout", propagated=redirect_url != self._home_url)
        return FlowOutcome(
            state=FlowState.LOGOUT_INITIATED,
            redirect_url=redirect_url,
            end_session=True,
        )

    def _error(self, state: FlowState, kind: FlowErrorKind) -> FlowOutcome:
        return FlowOutcome(state=state, error=FlowError(kind))
