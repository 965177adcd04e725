import logging

import pytest
import requests
from cryptography.hazmat.primitives.serialization import Encoding

from conftest import FakeResponse, FakeSession
from sensu_chef_handler.errors import ConfigurationError, EntityRemovalError, SensuAPIError
from sensu_chef_handler.integrations.sensu import (
    ResourceRequest,
    SensuClient,
    _TrustedCAAdapter,
    load_ca_certificate,
)
from sensu_chef_handler.models import EntityRef, HandlerOutcome

ENTITY = EntityRef(name="web-01", namespace="prod")
ENTITY_URL = "https://sensu.example.com:8080/api/core/v2/namespaces/prod/entities/web-01"


def test_resource_request_path_for_entity():
    request = ResourceRequest("core/v2", "Entity", "prod", "web 01")

    assert request.path == "/api/core/v2/namespaces/prod/entities/web%2001"


@pytest.mark.parametrize(
    "args",
    [
        ("core/v3", "Entity", "prod", "web-01"),
        ("core/v2", "Gadget", "prod", "web-01"),
        ("core/v2", "Entity", "", "web-01"),
    ],
)
def test_resource_request_rejects_unknown_resources(args):
    with pytest.raises(ValueError):
        ResourceRequest(*args)


def test_delete_uses_api_key_header(make_config):
    session = FakeSession(FakeResponse(204, "No Content"))
    client = SensuClient(make_config(), session)

    outcome = client.remove_entity(ENTITY)

    assert outcome is HandlerOutcome.ENTITY_REMOVED
    assert session.headers["Authorization"] == "Key secret-key"
    assert session.calls == [{"method": "DELETE", "url": ENTITY_URL, "timeout": 10.0}]


@pytest.mark.parametrize("status", [400, 403, 404])
def test_client_errors_mean_entity_already_deleted(make_config, caplog, status):
    caplog.set_level(logging.INFO, logger="sensu_chef_handler.sensu")
    client = SensuClient(make_config(), FakeSession(FakeResponse(status, "Nope")))

    outcome = client.remove_entity(ENTITY)

    assert outcome is HandlerOutcome.ENTITY_ALREADY_ABSENT
    assert "entity already deleted (prod/web-01)" in caplog.text


def test_server_errors_propagate(make_config):
    client = SensuClient(make_config(), FakeSession(FakeResponse(500, "Internal Server Error")))

    with pytest.raises(SensuAPIError) as excinfo:
        client.remove_entity(ENTITY)

    assert excinfo.value.status_code == 500


def test_transport_errors_propagate(make_config):
    client = SensuClient(make_config(), FakeSession(requests.Timeout("read timed out")))

    with pytest.raises(EntityRemovalError, match="read timed out"):
        client.remove_entity(ENTITY)


@pytest.mark.parametrize("encoding", [Encoding.DER, Encoding.PEM])
def test_load_ca_certificate_accepts_der_and_pem(tmp_path, ca_certificate, encoding):
    path = tmp_path / "ca.crt"
    path.write_bytes(ca_certificate.public_bytes(encoding))

    assert load_ca_certificate(str(path)) == ca_certificate


def test_missing_ca_certificate_is_a_configuration_error(tmp_path):
    with pytest.raises(ConfigurationError, match="unable to load sensu-ca-cert"):
        load_ca_certificate(str(tmp_path / "absent.crt"))


def test_invalid_ca_certificate_is_a_configuration_error(tmp_path):
    path = tmp_path / "ca.crt"
    path.write_bytes(b"\x30\x03\x02\x01\x00")

    with pytest.raises(ConfigurationError, match="invalid sensu-ca-cert"):
        load_ca_certificate(str(path))


def test_ca_certificate_is_mounted_for_https(make_config, tmp_path, ca_certificate):
    path = tmp_path / "ca.der"
    path.write_bytes(ca_certificate.public_bytes(Encoding.DER))
    session = requests.Session()

    SensuClient(make_config(sensu_ca_cert=str(path)), session)

    assert isinstance(session.get_adapter("https://sensu.example.com:8080/api"), _TrustedCAAdapter)
    session.close()
