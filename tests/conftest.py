"""
Shared fixtures for the heartrate_mqtt tests.

PKI material (CA, client certificate/key, unrelated key) is generated per test
with the cryptography package so no key material is checked in.
"""

import datetime
from dataclasses import dataclass
from pathlib import Path
from types import SimpleNamespace
from unittest.mock import MagicMock

import pytest
from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.x509.oid import NameOID

from heartrate_mqtt.config.settings import CredentialPaths


@dataclass
class PKI:
    root_ca: Path
    second_ca: Path
    ca_bundle: Path
    client_cert: Path
    client_key: Path
    other_key: Path


def _key():
    return ec.generate_private_key(ec.SECP256R1())


def _key_pem(key) -> bytes:
    return key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.NoEncryption(),
    )


def _ca(common_name: str):
    key = _key()
    name = x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, common_name)])
    now = datetime.datetime.now(datetime.timezone.utc)
    cert = (
        x509.CertificateBuilder()
        .subject_name(name)
        .issuer_name(name)
        .public_key(key.public_key())
        .serial_number(x509.random_serial_number())
        .not_valid_before(now - datetime.timedelta(days=1))
        .not_valid_after(now + datetime.timedelta(days=30))
        .add_extension(x509.BasicConstraints(ca=True, path_length=None), critical=True)
        .sign(key, hashes.SHA256())
    )
    return cert, key


def _client_cert(ca_cert, ca_key, client_key):
    now = datetime.datetime.now(datetime.timezone.utc)
    return (
        x509.CertificateBuilder()
        .subject_name(x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, "someThing")]))
        .issuer_name(ca_cert.subject)
        .public_key(client_key.public_key())
        .serial_number(x509.random_serial_number())
        .not_valid_before(now - datetime.timedelta(days=1))
        .not_valid_after(now + datetime.timedelta(days=30))
        .add_extension(x509.BasicConstraints(ca=False, path_length=None), critical=True)
        .sign(ca_key, hashes.SHA256())
    )


@pytest.fixture
def pki(tmp_path: Path) -> PKI:
    ca_cert, ca_key = _ca("Test Root CA")
    second_cert, _ = _ca("Second Test Root CA")
    client_key = _key()
    client_cert = _client_cert(ca_cert, ca_key, client_key)

    ca_pem = ca_cert.public_bytes(serialization.Encoding.PEM)
    second_pem = second_cert.public_bytes(serialization.Encoding.PEM)

    paths = PKI(
        root_ca=tmp_path / "root.pem",
        second_ca=tmp_path / "second.pem",
        ca_bundle=tmp_path / "bundle.pem",
        client_cert=tmp_path / "client.crt",
        client_key=tmp_path / "client.key",
        other_key=tmp_path / "other.key",
    )
    paths.root_ca.write_bytes(ca_pem)
    paths.second_ca.write_bytes(second_pem)
    paths.ca_bundle.write_bytes(ca_pem + second_pem)
    paths.client_cert.write_bytes(client_cert.public_bytes(serialization.Encoding.PEM))
    paths.client_key.write_bytes(_key_pem(client_key))
    paths.other_key.write_bytes(_key_pem(_key()))
    return paths


@pytest.fixture
def credential_paths(pki: PKI) -> CredentialPaths:
    return CredentialPaths(
        root_ca=pki.root_ca,
        client_cert=pki.client_cert,
        client_key=pki.client_key,
    )


@pytest.fixture
def fake_paho_client(monkeypatch):
    """
    Patch paho.mqtt.client.Client to return a controllable fake.
    """
    fake = MagicMock()
    fake.subscribe.return_value = (0, 1)
    fake.publish.return_value = SimpleNamespace(rc=0, mid=1)

    def _ctor(*args, **kwargs):
        fake.ctor_args = args
        fake.ctor_kwargs = kwargs
        return fake

    monkeypatch.setattr("paho.mqtt.client.Client", _ctor)
    return fake


@pytest.fixture
def clean_env(monkeypatch):
    """
    Remove every variable the configuration reads.

    Each key is set before deletion so monkeypatch also undoes values that
    load_dotenv() adds during the test.
    """
    for key in (
        "HOST",
        "ROOT_PEM",
        "PUB_CERT",
        "PRIV_KEY",
        "MQTT_PORT",
        "MQTT_CLIENT_ID",
        "PUBLISH_DELAY_SECONDS",
        "LOG_LEVEL",
    ):
        monkeypatch.setenv(key, "")
        monkeypatch.delenv(key)
    return monkeypatch
