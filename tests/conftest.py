import datetime as dt
import logging
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional

import pytest
import requests
from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import rsa
from cryptography.x509.oid import NameOID
from requests.structures import CaseInsensitiveDict

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT / "src") not in sys.path:
    sys.path.insert(0, str(ROOT / "src"))

from sensu_chef_handler.config import HandlerConfig


class FakeResponse:
    def __init__(self, status_code: int = 200, reason: str = "OK", text: str = "{}") -> None:
        self.status_code = status_code
        self.reason = reason
        self.text = text
        self.closed = False

    @property
    def ok(self) -> bool:
        return self.status_code < 400

    def close(self) -> None:
        self.closed = True


class FakeSession:
    """Stands in for requests.Session; replays scripted responses or exceptions."""

    def __init__(self, *responses: Any) -> None:
        self._responses: List[Any] = list(responses)
        self.headers: CaseInsensitiveDict = CaseInsensitiveDict()
        self.calls: List[Dict[str, Any]] = []
        self.prepared: List[requests.PreparedRequest] = []
        self.mounted: Dict[str, Any] = {}
        self.closed = False

    def _next(self) -> Any:
        if not self._responses:
            raise AssertionError("unexpected HTTP call")
        outcome = self._responses.pop(0)
        if isinstance(outcome, BaseException):
            raise outcome
        return outcome

    def get(self, url: str, **kwargs: Any) -> Any:
        self.calls.append({"method": "GET", "url": url, **kwargs})
        prepared = requests.Request("GET", url, headers=kwargs.get("headers")).prepare()
        auth = kwargs.get("auth")
        if auth is not None:
            prepared = auth(prepared)
        self.prepared.append(prepared)
        return self._next()

    def delete(self, url: str, **kwargs: Any) -> Any:
        self.calls.append({"method": "DELETE", "url": url, **kwargs})
        return self._next()

    def mount(self, prefix: str, adapter: Any) -> None:
        self.mounted[prefix] = adapter

    def close(self) -> None:
        self.closed = True

    def methods(self) -> List[str]:
        return [call["method"] for call in self.calls]


@pytest.fixture(autouse=True)
def _reset_package_logger():
    yield
    package_logger = logging.getLogger("sensu_chef_handler")
    for handler in list(package_logger.handlers):
        package_logger.removeHandler(handler)
    package_logger.setLevel(logging.NOTSET)
    package_logger.propagate = True


@pytest.fixture(scope="session")
def rsa_key() -> rsa.RSAPrivateKey:
    return rsa.generate_private_key(public_exponent=65537, key_size=2048)


@pytest.fixture
def client_key_path(tmp_path, rsa_key) -> Path:
    path = tmp_path / "client.pem"
    path.write_bytes(
        rsa_key.private_bytes(
            encoding=serialization.Encoding.PEM,
            format=serialization.PrivateFormat.TraditionalOpenSSL,
            encryption_algorithm=serialization.NoEncryption(),
        )
    )
    return path


@pytest.fixture(scope="session")
def ca_certificate(rsa_key) -> x509.Certificate:
    name = x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, "sensu-ca")])
    now = dt.datetime.now(dt.timezone.utc)
    return (
        x509.CertificateBuilder()
        .subject_name(name)
        .issuer_name(name)
        .public_key(rsa_key.public_key())
        .serial_number(x509.random_serial_number())
        .not_valid_before(now - dt.timedelta(days=1))
        .not_valid_after(now + dt.timedelta(days=30))
        .add_extension(x509.BasicConstraints(ca=True, path_length=None), critical=True)
        .sign(rsa_key, hashes.SHA256())
    )


@pytest.fixture
def make_config(client_key_path):
    def _make(**overrides: Any) -> HandlerConfig:
        values: Dict[str, Any] = {
            "endpoint": "https://chef.example.com/organizations/ops",
            "client_name": "sensu-handler",
            "client_key_path": str(client_key_path),
            "sensu_api_url": "https://sensu.example.com:8080",
            "sensu_api_key": "secret-key",
        }
        values.update(overrides)
        return HandlerConfig(**values)

    return _make


def event_payload(
    check: str = "keepalive",
    entity: str = "web-01",
    namespace: Optional[str] = "default",
    check_annotations: Optional[Dict[str, str]] = None,
    entity_annotations: Optional[Dict[str, str]] = None,
) -> Dict[str, Any]:
    entity_meta: Dict[str, Any] = {"name": entity, "annotations": entity_annotations or {}}
    if namespace is not None:
        entity_meta["namespace"] = namespace
    return {
        "timestamp": 1700000000,
        "entity": {"entity_class": "agent", "metadata": entity_meta},
        "check": {
            "status": 2,
            "metadata": {"name": check, "annotations": check_annotations or {}},
        },
    }
