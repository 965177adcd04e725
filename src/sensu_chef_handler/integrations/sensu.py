"""Sensu backend API integration."""

from __future__ import annotations

import logging
import ssl
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Optional
from urllib.parse import quote

import requests
from cryptography import x509
from cryptography.hazmat.primitives.serialization import Encoding
from requests.adapters import HTTPAdapter

from ..config import HandlerConfig
from ..errors import ConfigurationError, EntityRemovalError, SensuAPIError
from ..models import EntityRef, HandlerOutcome

logger = logging.getLogger("sensu_chef_handler.sensu")

# Resource kinds of the core/v2 API group and their URL collection names.
_CORE_V2_COLLECTIONS = {
    "Asset": "assets",
    "CheckConfig": "checks",
    "Entity": "entities",
    "Event": "events",
    "Filter": "filters",
    "Handler": "handlers",
    "Hook": "hooks",
    "Mutator": "mutators",
    "Silenced": "silenced",
}


@dataclass(frozen=True)
class ResourceRequest:
    """Identifies a namespaced resource on the Sensu API."""

    api_group: str
    kind: str
    namespace: str
    name: str

    def __post_init__(self) -> None:
        if self.api_group != "core/v2":
            raise ValueError(f"unsupported API group {self.api_group!r}")
        if self.kind not in _CORE_V2_COLLECTIONS:
            raise ValueError(f"unknown {self.api_group} resource kind {self.kind!r}")
        if not self.namespace or not self.name:
            raise ValueError("resource namespace and name must not be empty")

    @property
    def path(self) -> str:
        return (
            f"/api/{self.api_group}/namespaces/{quote(self.namespace, safe='')}"
            f"/{_CORE_V2_COLLECTIONS[self.kind]}/{quote(self.name, safe='')}"
        )


def load_ca_certificate(path: str) -> x509.Certificate:
    """Read a CA certificate in DER or PEM form."""

    try:
        data = Path(path).read_bytes()
    except OSError as exc:
        raise ConfigurationError(f"unable to load sensu-ca-cert: {exc}") from exc
    try:
        if b"-----BEGIN" in data:
            return x509.load_pem_x509_certificate(data)
        return x509.load_der_x509_certificate(data)
    except ValueError as exc:
        raise ConfigurationError(f"invalid sensu-ca-cert: {exc}") from exc


class _TrustedCAAdapter(HTTPAdapter):
    """Transport adapter verifying TLS peers against a single CA certificate."""

    def __init__(self, ssl_context: ssl.SSLContext, **kwargs: Any) -> None:
        self._ssl_context = ssl_context
        super().__init__(**kwargs)

    def init_poolmanager(self, *args: Any, **kwargs: Any) -> None:
        kwargs["ssl_context"] = self._ssl_context
        super().init_poolmanager(*args, **kwargs)

    def proxy_manager_for(self, *args: Any, **kwargs: Any) -> Any:
        kwargs["ssl_context"] = self._ssl_context
        return super().proxy_manager_for(*args, **kwargs)


class SensuClient:
    """Deletes resources through the Sensu core/v2 API using an API key."""

    def __init__(
        self,
        config: HandlerConfig,
        session: Optional[requests.Session] = None,
    ) -> None:
        self._config = config
        self._base_url = config.sensu_api_url.rstrip("/")
        self._session = session or requests.Session()
        self._session.headers["Authorization"] = f"Key {config.sensu_api_key}"
        if config.sensu_ca_cert:
            certificate = load_ca_certificate(config.sensu_ca_cert)
            context = ssl.create_default_context(
                cadata=certificate.public_bytes(Encoding.PEM).decode("ascii")
            )
            self._session.mount("https://", _TrustedCAAdapter(context))

    def close(self) -> None:
        self._session.close()

    def delete_resource(self, request: ResourceRequest) -> None:
        url = f"{self._base_url}{request.path}"
        logger.debug("DELETE %s", url)
        try:
            response = self._session.delete(url, timeout=self._config.timeout)
        except requests.RequestException as exc:
            raise EntityRemovalError(f"sensu api request failed: {exc}") from exc

        try:
            if not response.ok:
                raise SensuAPIError(
                    f"sensu api returned HTTP {response.status_code} for DELETE {request.path}",
                    status_code=response.status_code,
                    body=response.text,
                )
        finally:
            response.close()

    def remove_entity(self, entity: EntityRef) -> HandlerOutcome:
        """Delete an entity; a client-side error means it is already gone."""

        request = ResourceRequest("core/v2", "Entity", entity.namespace, entity.name)
        try:
            self.delete_resource(request)
        except SensuAPIError as exc:
            if exc.status_code < 500:
                logger.info(
                    "entity already deleted (%s/%s), HTTP %s",
                    entity.namespace,
                    entity.name,
                    exc.status_code,
                )
                return HandlerOutcome.ENTITY_ALREADY_ABSENT
            raise
        logger.info("removed sensu entity %s/%s", entity.namespace, entity.name)
        return HandlerOutcome.ENTITY_REMOVED
