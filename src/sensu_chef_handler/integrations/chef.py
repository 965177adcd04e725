"""Chef Server API integration: signed requests and node lookups."""

from __future__ import annotations

import base64
import hashlib
import logging
import re
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, Dict, Optional, Union
from urllib.parse import quote, urlsplit

import requests
from cryptography.exceptions import UnsupportedAlgorithm
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import padding, rsa
from requests.auth import AuthBase

from ..config import HandlerConfig
from ..models import NodeLookup

logger = logging.getLogger("sensu_chef_handler.chef")

CHEF_VERSION = "14.0.0"
SERVER_API_VERSION = "1"
_AUTH_LINE_WIDTH = 60


def load_private_key(pem: bytes) -> rsa.RSAPrivateKey:
    """Parse a Chef client key (unencrypted PEM, PKCS#1 or PKCS#8)."""

    try:
        key = serialization.load_pem_private_key(pem, password=None)
    except (TypeError, UnsupportedAlgorithm) as exc:
        raise ValueError(str(exc)) from exc
    if not isinstance(key, rsa.RSAPrivateKey):
        raise ValueError("client key is not an RSA private key")
    return key


def _b64_digest(algorithm: str, data: bytes) -> str:
    return base64.b64encode(hashlib.new(algorithm, data).digest()).decode("ascii")


def _canonical_path(url: str) -> str:
    path = re.sub(r"/+", "/", urlsplit(url).path or "/")
    if len(path) > 1 and path.endswith("/"):
        path = path[:-1]
    return path


def _max_signable_bytes(key: rsa.RSAPrivateKey) -> int:
    return (key.key_size + 7) // 8 - 11


def _canonical_v10(
    method: str, hashed_path: str, content_hash: str, timestamp: str, user_id: str
) -> str:
    return "\n".join(
        [
            f"Method:{method}",
            f"Hashed Path:{hashed_path}",
            f"X-Ops-Content-Hash:{content_hash}",
            f"X-Ops-Timestamp:{timestamp}",
            f"X-Ops-UserId:{user_id}",
        ]
    )


def _private_encrypt(key: rsa.RSAPrivateKey, data: bytes) -> bytes:
    """RSA private-key encryption with PKCS#1 v1.5 type 1 padding.

    Version 1.0 of the Chef protocol signs the canonical request itself rather
    than a digest of it, which the signing API of ``cryptography`` cannot do.
    """

    numbers = key.private_numbers()
    modulus = numbers.public_numbers.n
    size = (modulus.bit_length() + 7) // 8
    if len(data) > _max_signable_bytes(key):
        raise ValueError("canonical request too long for the client key")
    padded = b"\x00\x01" + b"\xff" * (size - 3 - len(data)) + b"\x00" + data
    signed = pow(int.from_bytes(padded, "big"), numbers.d, modulus)
    return signed.to_bytes(size, "big")


class ChefAuth(AuthBase):
    """Adds mixlib-authentication headers to outgoing Chef Server requests."""

    def __init__(
        self,
        client_name: str,
        private_key: rsa.RSAPrivateKey,
        *,
        version: str = "1.0",
        server_api_version: str = SERVER_API_VERSION,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        if version not in ("1.0", "1.3"):
            raise ValueError(f"unsupported Chef authentication version {version!r}")
        if version == "1.0":
            # Longest canonical request this client can produce: hashes are fixed width.
            longest = _canonical_v10(
                "DELETE", "=" * 28, "=" * 28, "1970-01-01T00:00:00Z", client_name
            )
            if len(longest.encode("utf-8")) > _max_signable_bytes(private_key):
                raise ValueError(
                    f"a {private_key.key_size}-bit client key is too small to sign "
                    f"version 1.0 requests for client {client_name!r}"
                )
        self._client_name = client_name
        self._key = private_key
        self._version = version
        self._server_api_version = server_api_version
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    def __call__(self, request: requests.PreparedRequest) -> requests.PreparedRequest:
        body: Union[str, bytes, None] = request.body
        if body is None:
            body = b""
        elif isinstance(body, str):
            body = body.encode("utf-8")

        timestamp = self._clock().astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")
        method = (request.method or "GET").upper()
        path = _canonical_path(request.url or "")

        headers: Dict[str, str] = {
            "X-Ops-Timestamp": timestamp,
            "X-Ops-UserId": self._client_name,
        }
        if self._version == "1.3":
            content_hash = _b64_digest("sha256", body)
            canonical = "\n".join(
                [
                    f"Method:{method}",
                    f"Path:{path}",
                    f"X-Ops-Content-Hash:{content_hash}",
                    "X-Ops-Sign:version=1.3",
                    f"X-Ops-Timestamp:{timestamp}",
                    f"X-Ops-UserId:{self._client_name}",
                    f"X-Ops-Server-API-Version:{self._server_api_version}",
                ]
            )
            signature = self._key.sign(
                canonical.encode("utf-8"), padding.PKCS1v15(), hashes.SHA256()
            )
            headers["X-Ops-Sign"] = "algorithm=sha256;version=1.3"
            headers["X-Ops-Server-API-Version"] = self._server_api_version
        else:
            content_hash = _b64_digest("sha1", body)
            canonical = _canonical_v10(
                method,
                _b64_digest("sha1", path.encode("utf-8")),
                content_hash,
                timestamp,
                self._client_name,
            )
            signature = _private_encrypt(self._key, canonical.encode("utf-8"))
            headers["X-Ops-Sign"] = "algorithm=sha1;version=1.0"
        headers["X-Ops-Content-Hash"] = content_hash

        encoded = base64.b64encode(signature).decode("ascii")
        for index, start in enumerate(range(0, len(encoded), _AUTH_LINE_WIDTH), start=1):
            headers[f"X-Ops-Authorization-{index}"] = encoded[start : start + _AUTH_LINE_WIDTH]

        request.headers.update(headers)
        return request


class ChefClient:
    """Answers whether a node is still registered on the Chef Server."""

    def __init__(
        self,
        config: HandlerConfig,
        session: Optional[requests.Session] = None,
        *,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self._config = config
        self._session = session or requests.Session()
        self._clock = clock

    def close(self) -> None:
        self._session.close()

    def node_url(self, node_name: str) -> str:
        return f"{self._config.endpoint.rstrip('/')}/nodes/{quote(node_name, safe='')}"

    def lookup_node(self, node_name: str) -> NodeLookup:
        key_path = self._config.client_key_path
        try:
            key_bytes = Path(key_path).read_bytes()
        except OSError as exc:
            return NodeLookup.indeterminate(
                node_name, f"couldn't read client key from {key_path}: {exc}"
            )

        try:
            auth = ChefAuth(
                self._config.client_name,
                load_private_key(key_bytes),
                version=self._config.auth_version,
                clock=self._clock,
            )
        except ValueError as exc:
            return NodeLookup.indeterminate(node_name, f"error setting up chef client: {exc}")

        url = self.node_url(node_name)
        logger.debug("Querying Chef node %s", url)
        try:
            response = self._session.get(
                url,
                auth=auth,
                headers={"Accept": "application/json", "X-Chef-Version": CHEF_VERSION},
                verify=self._config.ssl_verify,
                timeout=self._config.timeout,
            )
        except (requests.RequestException, OSError, ValueError) as exc:
            # Signing and TLS setup errors surface here too; they stay inconclusive.
            return NodeLookup.indeterminate(
                node_name, f"error when retrieving node from chef api: {exc}"
            )

        try:
            if response.status_code == 404:
                return NodeLookup.absent(node_name)
            if not response.ok:
                return NodeLookup.indeterminate(
                    node_name,
                    "error when retrieving node from chef api: "
                    f"{response.status_code} {response.reason}",
                )
            return NodeLookup.exists(node_name)
        finally:
            response.close()
