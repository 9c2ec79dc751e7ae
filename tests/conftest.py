"""
Pytest configuration and fixtures for testing.
"""

import json
import pytest
import httpx
import jwt
from typing import Any, Dict, Generator, List, Optional, Tuple
from urllib.parse import parse_qsl

from keycloak_rest import config as config_module
from keycloak_rest.config import KeycloakSettings
from keycloak_rest.auth.keycloak_client import KeycloakClient

AUTH_SERVER_URL = "https://test.org/auth"
REALM = "realm_test"
TOKEN_ENDPOINT = "https://test.org/auth/token_endpoint"
AUTHORIZATION_ENDPOINT = "https://test.org/auth/authorization_endpoint"
INTROSPECTION_ENDPOINT = "https://test.org/auth/introspection_endpoint"
USERINFO_ENDPOINT = "https://test.org/auth/userinfo_endpoint"
END_SESSION_ENDPOINT = "https://test.org/auth/end_session_endpoint"
JWKS_URI = "https://test.org/auth/certs"
DISCOVERY_URL = f"{AUTH_SERVER_URL}/realms/{REALM}/.well-known/openid-configuration"
ADMIN_URL = f"{AUTH_SERVER_URL}/admin/realms/{REALM}/"

OPENID_CONFIGURATION = {
    "token_endpoint": TOKEN_ENDPOINT,
    "authorization_endpoint": AUTHORIZATION_ENDPOINT,
    "introspection_endpoint": INTROSPECTION_ENDPOINT,
    "userinfo_endpoint": USERINFO_ENDPOINT,
    "end_session_endpoint": END_SESSION_ENDPOINT,
    "jwks_uri": JWKS_URI,
}


class FakeKeycloak:
    """Route table answering httpx requests through MockTransport."""

    def __init__(self):
        self.routes: Dict[Tuple[str, str], Tuple[int, Dict[str, Any]]] = {}
        self.requests: List[httpx.Request] = []
        self.add("GET", DISCOVERY_URL, json=OPENID_CONFIGURATION)

    def add(
        self,
        method: str,
        url: str,
        json: Any = None,
        status_code: int = 200,
        text: Optional[str] = None,
    ) -> None:
        if json is not None:
            kwargs: Dict[str, Any] = {"json": json}
        elif text is not None:
            kwargs = {"text": text}
        else:
            kwargs = {}
        self.routes[(method, url)] = (status_code, kwargs)

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        key = (request.method, str(request.url).split("?")[0])
        if key not in self.routes:
            return httpx.Response(404, json={"error": "unknown route", "url": str(request.url)})
        status_code, kwargs = self.routes[key]
        return httpx.Response(status_code, **kwargs)

    def calls(self, method: str, url: str) -> List[httpx.Request]:
        return [
            r for r in self.requests
            if r.method == method and str(r.url).split("?")[0] == url
        ]

    def last(self, method: str, url: str) -> httpx.Request:
        calls = self.calls(method, url)
        assert calls, f"no {method} request to {url}"
        return calls[-1]

    def http_client(self) -> httpx.Client:
        return httpx.Client(transport=httpx.MockTransport(self.handler))


def form(request: httpx.Request) -> Dict[str, str]:
    """Decode a form-encoded request body."""
    return dict(parse_qsl(request.content.decode()))


def json_body(request: httpx.Request) -> Any:
    return json.loads(request.content)


def make_token(**claims: Any) -> str:
    """JWT carrying the given claims, signed with a throwaway HMAC key."""
    return jwt.encode(claims, "test-signing-secret-with-enough-bytes", algorithm="HS256")


@pytest.fixture(autouse=True)
def clean_env(monkeypatch, tmp_path) -> Generator:
    """
    Isolate each test from the environment and the working directory.

    Keycloak variables are cleared, the process-wide settings are reset and
    tests run inside a temporary directory so default installation files
    are never picked up by accident.
    """
    env_vars_to_clear = [
        "KEYCLOAK_REALM",
        "KEYCLOAK_AUTH_SERVER_URL",
        "KEYCLOAK_SERVER_URL",
        "KEYCLOAK_PROXY",
        "KEYCLOAK_GENERATE_REQUEST_EXCEPTION",
        "KEYCLOAK_CUSTOM_HOST_HEADER",
        "KEYCLOAK_VALIDATE_TOKEN_WHEN_CALL_HAS_ROLE",
        "KEYCLOAK_INSTALLATION_FILE",
        "KEYCLOAK_VERIFY_SSL",
        "KEYCLOAK_TIMEOUT",
        "SERVER_NAME",
        "ENVIRONMENT",
        "DEBUG",
        "PORT",
        "HOST",
        "TRANSPORT",
        "LOG_LEVEL",
        "LOG_FORMAT",
        "LOG_FILE",
    ]
    for var in env_vars_to_clear:
        monkeypatch.delenv(var, raising=False)

    monkeypatch.setattr(config_module, "_settings", None)
    monkeypatch.setattr(config_module, "_config", None)
    monkeypatch.chdir(tmp_path)

    yield


@pytest.fixture
def settings() -> KeycloakSettings:
    """Explicit realm settings, no installation file."""
    return KeycloakSettings(realm=REALM, auth_server_url=AUTH_SERVER_URL)


@pytest.fixture
def installation_data() -> Dict[str, Any]:
    return {
        "realm": REALM,
        "auth-server-url": AUTH_SERVER_URL + "/",
        "ssl-required": "external",
        "resource": "installed-client",
        "credentials": {"secret": "installed-secret"},
        "confidential-port": 0,
    }


@pytest.fixture
def installation_file(tmp_path, installation_data) -> str:
    path = tmp_path / "installation.json"
    path.write_text(json.dumps(installation_data))
    return str(path)


@pytest.fixture
def fake() -> FakeKeycloak:
    return FakeKeycloak()


@pytest.fixture
def client(settings, fake) -> Generator:
    keycloak = KeycloakClient(settings, http_client=fake.http_client())
    yield keycloak
    keycloak.close()


@pytest.fixture
def installed_client(installation_file, fake) -> Generator:
    keycloak = KeycloakClient(
        KeycloakSettings(installation_file=installation_file),
        http_client=fake.http_client(),
    )
    yield keycloak
    keycloak.close()
