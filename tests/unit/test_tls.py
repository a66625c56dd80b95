import ssl

import pytest

from heartrate_mqtt.config.settings import CredentialPaths
from heartrate_mqtt.tls import build_tls_context, create_tls_context, load_credentials
from heartrate_mqtt.utils.errors import CertificateError, ConfigError


def _subjects(context: ssl.SSLContext) -> set:
    names = set()
    for cert in context.get_ca_certs():
        for rdn in cert["subject"]:
            for key, value in rdn:
                if key == "commonName":
                    names.add(value)
    return names


def test_context_trusts_only_supplied_ca(credential_paths):
    context = create_tls_context(credential_paths)

    assert isinstance(context, ssl.SSLContext)
    assert _subjects(context) == {"Test Root CA"}


def test_context_trusts_every_ca_in_bundle(pki):
    paths = CredentialPaths(
        root_ca=pki.ca_bundle, client_cert=pki.client_cert, client_key=pki.client_key
    )

    context = create_tls_context(paths)

    assert len(context.get_ca_certs()) == 2
    assert _subjects(context) == {"Test Root CA", "Second Test Root CA"}


def test_context_verifies_broker(credential_paths):
    context = create_tls_context(credential_paths)

    assert context.verify_mode == ssl.CERT_REQUIRED
    assert context.check_hostname is True
    assert context.minimum_version >= ssl.TLSVersion.TLSv1_2


def test_load_credentials_keeps_root_bytes(pki, credential_paths):
    bundle = load_credentials(credential_paths)

    assert bundle.root_ca_pem == pki.root_ca.read_bytes()
    assert bundle.client_cert == pki.client_cert
    assert bundle.client_key == pki.client_key


@pytest.mark.parametrize("field", ["root_ca", "client_cert", "client_key"])
def test_unreadable_file_raises_config_error(credential_paths, tmp_path, field):
    values = {
        "root_ca": credential_paths.root_ca,
        "client_cert": credential_paths.client_cert,
        "client_key": credential_paths.client_key,
    }
    values[field] = tmp_path / "does-not-exist.pem"

    with pytest.raises(ConfigError):
        create_tls_context(CredentialPaths(**values))


def test_malformed_root_pem_raises(credential_paths, tmp_path):
    bad = tmp_path / "bad-root.pem"
    bad.write_text("-----BEGIN CERTIFICATE-----\nnot base64 at all!!\n-----END CERTIFICATE-----\n")
    paths = CredentialPaths(
        root_ca=bad,
        client_cert=credential_paths.client_cert,
        client_key=credential_paths.client_key,
    )

    with pytest.raises(CertificateError):
        create_tls_context(paths)


def test_root_without_certificate_raises(credential_paths, tmp_path):
    empty = tmp_path / "empty.pem"
    empty.write_text("just some text\n")
    paths = CredentialPaths(
        root_ca=empty,
        client_cert=credential_paths.client_cert,
        client_key=credential_paths.client_key,
    )

    with pytest.raises(CertificateError, match="no PEM certificate"):
        create_tls_context(paths)


def test_binary_root_raises(credential_paths, tmp_path):
    binary = tmp_path / "root.der"
    binary.write_bytes(b"\x30\x82\xff\xfe")
    paths = CredentialPaths(
        root_ca=binary,
        client_cert=credential_paths.client_cert,
        client_key=credential_paths.client_key,
    )

    with pytest.raises(CertificateError):
        create_tls_context(paths)


def test_malformed_client_cert_raises(credential_paths, tmp_path):
    bad = tmp_path / "bad-client.crt"
    bad.write_text("garbage\n")
    paths = CredentialPaths(
        root_ca=credential_paths.root_ca,
        client_cert=bad,
        client_key=credential_paths.client_key,
    )

    with pytest.raises(CertificateError):
        create_tls_context(paths)


def test_mismatched_key_pair_raises(pki):
    paths = CredentialPaths(
        root_ca=pki.root_ca, client_cert=pki.client_cert, client_key=pki.other_key
    )

    with pytest.raises(CertificateError):
        create_tls_context(paths)


def test_build_does_not_read_beyond_bundle(pki, credential_paths):
    bundle = load_credentials(credential_paths)
    pki.root_ca.unlink()

    context = build_tls_context(bundle)

    assert _subjects(context) == {"Test Root CA"}


@pytest.mark.parametrize("field", ["client_cert", "client_key"])
def test_directory_instead_of_client_file_raises_config_error(credential_paths, tmp_path, field):
    values = {
        "root_ca": credential_paths.root_ca,
        "client_cert": credential_paths.client_cert,
        "client_key": credential_paths.client_key,
    }
    values[field] = tmp_path

    with pytest.raises(ConfigError, match="not a regular file"):
        load_credentials(CredentialPaths(**values))
