"""
Authenticated Amazon web session.

Holds the cookie jar for a signed-in account and drives the sign-in flow:

    NO_SESSION -> LOGGING_IN -> ACTIVE
                             -> FAILED (second factor, captcha, bad
                                        credentials, missing credentials)

FAILED is sticky until ``reset()`` is called; an operator has to fix the
account or the configuration first.
"""

import asyncio
import time
from typing import Callable, Optional
from urllib.parse import urljoin

import aiohttp
from bs4 import BeautifulSoup
from loguru import logger

from tracker.config import TrackerConfig
from tracker.exceptions import (
    ConfigurationError,
    TrackerError,
    UpstreamAuthError,
    UpstreamFetchError,
    UpstreamParseError,
)
from tracker.models import SessionStatus

MFA_MARKERS = (
    'id="auth-mfa-form"',
    'name="otpCode"',
    "Two-Step Verification",
)

CAPTCHA_MARKERS = (
    'id="captchacharacters"',
    'id="auth-captcha-image"',
    "/errors/validateCaptcha",
    "Enter the characters you see",
)

USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)


def is_signin_page(html: str) -> bool:
    soup = BeautifulSoup(html, "html.parser")
    return soup.find("form", attrs={"name": "signIn"}) is not None


def parse_signin_form(html: str, page_url: str) -> tuple[str, dict[str, str]]:
    """
    Extract the sign-in form's action URL and hidden fields.

    Raises:
        UpstreamParseError: the page carries no sign-in form
    """
    soup = BeautifulSoup(html, "html.parser")
    form = soup.find("form", attrs={"name": "signIn"})
    if form is None:
        raise UpstreamParseError("Amazon sign-in form not found.")

    fields = {}
    for field in form.find_all("input", attrs={"type": "hidden"}):
        name = field.get("name")
        if name:
            fields[name] = field.get("value", "")

    action = urljoin(page_url, form.get("action") or page_url)
    return action, fields


class AmazonSession:
    """
    Process-wide authenticated session shared by concurrent fetches.

    Logins are serialized so concurrent fetches trigger at most one sign-in.
    An ACTIVE session is trusted for ``session_ttl`` seconds; a tracking page
    that comes back as a sign-in page invalidates it early.
    """

    SIGNIN_PATH = (
        "/ap/signin?openid.pape.max_auth_age=0"
        "&openid.return_to=https%3A%2F%2Fwww.amazon.com%2F"
        "&openid.assoc_handle=usflex&openid.mode=checkid_setup"
        "&openid.ns=http%3A%2F%2Fspecs.openid.net%2Fauth%2F2.0"
    )
    VERIFY_PATH = "/gp/css/order-history"

    def __init__(
        self,
        username: str,
        password: str,
        base_url: str = "https://www.amazon.com",
        session_ttl: float = 3600,
        timeout: float = 30,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.username = username
        self.password = password
        self.base_url = base_url.rstrip("/")
        self.session_ttl = session_ttl
        self.timeout = timeout
        self._clock = clock

        self.status = SessionStatus.NO_SESSION
        self._activated_at: Optional[float] = None
        self._failure: Optional[TrackerError] = None
        self._login_lock = asyncio.Lock()
        self._http: Optional[aiohttp.ClientSession] = None

        # Statistics
        self.login_attempts = 0

    @classmethod
    def from_config(cls, config: TrackerConfig) -> "AmazonSession":
        return cls(
            username=config.amazon_username,
            password=config.amazon_password,
            base_url=config.amazon_base_url,
            session_ttl=config.amazon_session_ttl,
            timeout=config.request_timeout,
        )

    @property
    def is_active(self) -> bool:
        if self.status != SessionStatus.ACTIVE or self._activated_at is None:
            return False
        return self._clock() - self._activated_at < self.session_ttl

    @property
    def failure(self) -> Optional[TrackerError]:
        return self._failure

    async def _ensure_http(self):
        """Ensure HTTP session (and its cookie jar) is created."""
        if self._http is None or self._http.closed:
            self._http = aiohttp.ClientSession(
                cookie_jar=aiohttp.CookieJar(),
                timeout=aiohttp.ClientTimeout(total=self.timeout),
                headers={
                    "User-Agent": USER_AGENT,
                    "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
                    "Accept-Language": "en-US,en;q=0.5",
                },
            )

    async def close(self):
        """Close HTTP session."""
        if self._http:
            await self._http.close()
            self._http = None

    async def _request(
        self,
        method: str,
        url: str,
        data: Optional[dict[str, str]] = None,
    ) -> str:
        """Perform a request and return the body text."""
        await self._ensure_http()

        try:
            async with self._http.request(method, url, data=data) as response:
                # Undecodable bytes must not escape as UnicodeDecodeError
                body = await response.text(errors="replace")
                if response.status >= 400:
                    raise UpstreamFetchError(
                        f"Amazon returned HTTP {response.status} for {url}",
                        url=url,
                        status=response.status,
                    )
                return body
        except aiohttp.ClientError as e:
            raise UpstreamFetchError(f"Could not reach Amazon: {e}", url=url) from e
        except asyncio.TimeoutError as e:
            raise UpstreamFetchError(f"Request to Amazon timed out: {url}", url=url) from e

    def _fail(self, error: TrackerError) -> TrackerError:
        """Move to the terminal FAILED state and remember why."""
        self.status = SessionStatus.FAILED
        self._activated_at = None
        self._failure = error
        logger.error(f"Amazon session failed: {error}")
        return error

    def _replay_failure(self) -> TrackerError:
        """A fresh exception of the recorded failure kind."""
        failure = self._failure
        if isinstance(failure, UpstreamAuthError):
            error = UpstreamAuthError(f"Amazon sign-in previously failed: {failure}")
            error.requires_manual_action = failure.requires_manual_action
            return error
        return ConfigurationError(str(failure))

    def _check_challenges(self, html: str):
        """Raise for a second-factor or bot-verification challenge."""
        if any(marker in html for marker in MFA_MARKERS):
            raise self._fail(UpstreamAuthError(
                "Amazon requested a two-step verification code.",
                requires_manual_action=True,
            ))
        if any(marker in html for marker in CAPTCHA_MARKERS):
            raise self._fail(UpstreamAuthError(
                "Amazon presented a bot-verification (captcha) challenge.",
                requires_manual_action=True,
            ))

    async def ensure_active(self):
        """Sign in unless an ACTIVE session is available."""
        if self.status == SessionStatus.FAILED:
            raise self._replay_failure()
        if self.is_active:
            return

        async with self._login_lock:
            # Another task may have signed in (or failed) while we waited
            if self.status == SessionStatus.FAILED:
                raise self._replay_failure()
            if self.is_active:
                return
            await self._login()

    async def _login(self):
        self.status = SessionStatus.LOGGING_IN
        self.login_attempts += 1

        if not (self.username and self.password):
            raise self._fail(ConfigurationError("Server is not configured for Amazon tracking."))

        logger.info("Signing in to Amazon")
        signin_url = f"{self.base_url}{self.SIGNIN_PATH}"

        try:
            # Step 1: sign-in page
            page = await self._request("GET", signin_url)
            self._check_challenges(page)
            action, fields = parse_signin_form(page, signin_url)

            # Step 2: identity
            fields["email"] = self.username
            page = await self._request("POST", action, data=fields)
            self._check_challenges(page)
            action, fields = parse_signin_form(page, action)

            # Step 3: secret
            fields["email"] = self.username
            fields["password"] = self.password
            page = await self._request("POST", action, data=fields)
            self._check_challenges(page)
            if is_signin_page(page):
                raise self._fail(UpstreamAuthError("Amazon rejected the configured credentials."))

            # Step 4: verify access to an authenticated page
            page = await self._request("GET", f"{self.base_url}{self.VERIFY_PATH}")
            self._check_challenges(page)
            if is_signin_page(page):
                raise self._fail(UpstreamAuthError("Amazon sign-in could not be verified."))

        except (UpstreamFetchError, UpstreamParseError):
            # Transport and layout problems are not terminal
            self.status = SessionStatus.NO_SESSION
            raise

        self.status = SessionStatus.ACTIVE
        self._activated_at = self._clock()
        logger.info("Amazon session active")

    def invalidate(self):
        """Drop an ACTIVE session so the next fetch signs in again."""
        if self.status == SessionStatus.ACTIVE:
            self.status = SessionStatus.NO_SESSION
        self._activated_at = None
        if self._http is not None:
            self._http.cookie_jar.clear()

    def reset(self):
        """Clear a FAILED state once an operator has resolved it."""
        logger.info("Amazon session reset")
        self._failure = None
        self.status = SessionStatus.NO_SESSION
        self.invalidate()

    async def get_page(self, url: str) -> str:
        """Fetch an authenticated page, signing in first if needed."""
        await self.ensure_active()

        page = await self._request("GET", url)
        self._check_challenges(page)

        if is_signin_page(page):
            self.invalidate()
            raise UpstreamAuthError("Amazon session expired; retry to sign in again.")

        return page
