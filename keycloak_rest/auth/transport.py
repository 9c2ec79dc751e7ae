"""
HTTP transport shared by the Keycloak client and admin API.

Wraps a synchronous httpx client configured from KeycloakSettings
(proxy, SSL verification, timeout, Host header override) and decides
whether HTTP error responses raise or are handed back to the caller.
"""

import logging
from typing import Optional, Dict, Any

import httpx

from keycloak_rest.config import KeycloakSettings

logger = logging.getLogger(__name__)

FORM_CONTENT_TYPE = "application/x-www-form-urlencoded"


def decode_response(response: httpx.Response) -> Any:
    """Decode a response body as JSON, falling back to text; empty bodies become True."""
    if not response.content:
        return True
    try:
        return response.json()
    except ValueError:
        return response.text


class KeycloakTransport:
    """Synchronous HTTP transport for Keycloak requests."""

    def __init__(
        self,
        settings: KeycloakSettings,
        http_client: Optional[httpx.Client] = None,
    ):
        """
        Initialize transport.

        Args:
            settings: Keycloak settings (proxy, host header, error policy)
            http_client: Preconfigured httpx client; built from settings when omitted
        """
        self.settings = settings
        self._http_client = http_client

    def client_kwargs(self) -> Dict[str, Any]:
        """Keyword arguments used to build the underlying httpx.Client."""
        kwargs: Dict[str, Any] = {
            "verify": self.settings.verify_ssl,
            "timeout": self.settings.timeout,
        }
        if self.settings.proxy:
            kwargs["proxy"] = self.settings.proxy
        return kwargs

    @property
    def http_client(self) -> httpx.Client:
        if self._http_client is None:
            self._http_client = httpx.Client(**self.client_kwargs())
        return self._http_client

    def close(self) -> None:
        if self._http_client is not None:
            self._http_client.close()
            self._http_client = None

    def request(
        self,
        method: str,
        url: str,
        *,
        params: Optional[Dict[str, Any]] = None,
        data: Optional[Dict[str, Any]] = None,
        json: Any = None,
        headers: Optional[Dict[str, str]] = None,
        auth: Optional[httpx.Auth] = None,
    ) -> Any:
        """
        Perform a request and decode the response.

        Returns:
            Decoded response body (JSON, text, or True for an empty body).
            When generate_request_exception is disabled, the decoded error
            body of a non-2xx response is returned instead of raising.

        Raises:
            httpx.HTTPStatusError: On non-2xx responses if generate_request_exception is set
            httpx.RequestError: On connection failures
        """
        request_headers = dict(headers or {})
        if self.settings.custom_host_header:
            request_headers["Host"] = self.settings.custom_host_header

        if params:
            params = {k: v for k, v in params.items() if v is not None}

        response = self.http_client.request(
            method,
            url,
            params=params or None,
            data=data,
            json=json,
            headers=request_headers,
            auth=auth,
        )

        try:
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            logger.error(
                f"Keycloak request failed: {method} {url} -> {e.response.status_code} - {e.response.text}"
            )
            if self.settings.generate_request_exception:
                raise
            return decode_response(e.response)

        return decode_response(response)

    def post_form(
        self,
        url: str,
        data: Dict[str, Any],
        auth: Optional[httpx.Auth] = None,
    ) -> Any:
        """POST a form-encoded payload."""
        return self.request(
            "POST",
            url,
            data=data,
            headers={"Content-Type": FORM_CONTENT_TYPE},
            auth=auth,
        )
