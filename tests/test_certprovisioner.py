from __future__ import annotations

import ssl
from pathlib import Path

import pytest
from cryptography import x509
from cryptography.hazmat.primitives import hashes

from asyshare.certprovisioner import CertProvisioner, format_fingerprint
from asyshare.common.config import ServerConfig
from asyshare.fileserver import TransportError
from conftest import http_request, run_with_server


def _client_ctx() -> ssl.SSLContext:
    ctx = ssl.create_default_context()
    ctx.check_hostname = False
    ctx.verify_mode = ssl.CERT_NONE
    return ctx


def _write_pair(directory: Path):
    cert_pem, key_pem, err = CertProvisioner.generate_selfsigned(cn="testhost")
    assert err is None
    cert_path = directory / "cert.pem"
    key_path = directory / "key.pem"
    cert_path.write_bytes(cert_pem)
    key_path.write_bytes(key_pem)
    return cert_pem, cert_path, key_path


def test_format_fingerprint() -> None:
    assert format_fingerprint(b"\x00\xab\x10") == "00:AB:10"


def test_generated_certificate_is_leaf_for_localhost() -> None:
    cert_pem, key_pem, err = CertProvisioner.generate_selfsigned()
    assert err is None
    assert b"PRIVATE KEY" in key_pem
    cert = x509.load_pem_x509_certificate(cert_pem)
    san = cert.extensions.get_extension_for_class(x509.SubjectAlternativeName).value
    assert "localhost" in san.get_values_for_type(x509.DNSName)
    assert cert.extensions.get_extension_for_class(x509.BasicConstraints).value.ca is False


def test_fingerprints_match_certificate(tmp_path: Path) -> None:
    cert_pem, cert_path, _ = _write_pair(tmp_path)
    cert = x509.load_pem_x509_certificate(cert_pem)
    expected256 = format_fingerprint(cert.fingerprint(hashes.SHA256()))
    expected1 = format_fingerprint(cert.fingerprint(hashes.SHA1()))

    assert CertProvisioner.fingerprints(cert_pem) == (expected256, expected1)
    assert CertProvisioner.fingerprint_of(str(cert_path)) == (expected256, expected1, None)


def test_fingerprint_of_missing_file(tmp_path: Path) -> None:
    fp256, fp1, err = CertProvisioner.fingerprint_of(str(tmp_path / "nope.pem"))
    assert fp256 is None and fp1 is None
    assert isinstance(err, OSError)


def test_load_context_rejects_garbage(tmp_path: Path) -> None:
    bogus = tmp_path / "bogus.pem"
    bogus.write_text("not a certificate")
    ssl_ctx, err = CertProvisioner.load_context(str(bogus), str(bogus))
    assert ssl_ctx is None
    assert err is not None


def test_synthesize_returns_server_context() -> None:
    ssl_ctx, fp256, fp1, err = CertProvisioner.synthesize()
    assert err is None
    assert isinstance(ssl_ctx, ssl.SSLContext)
    assert len(fp256.split(":")) == 32
    assert len(fp1.split(":")) == 20


def test_self_signed_server(webroot: Path) -> None:
    config = ServerConfig(str(webroot), port=0, host="127.0.0.1", ssl=True, self_signed=True)

    async def scenario(port):
        return await http_request(port, "GET", "/Banana.txt", ssl_ctx=_client_ctx())

    reply = run_with_server(config, scenario)
    assert reply.status == 200
    assert reply.body == b"banana"


def test_provided_certificate_server(webroot: Path, tmp_path: Path) -> None:
    _, cert_path, key_path = _write_pair(tmp_path)
    config = ServerConfig(str(webroot), port=0, host="127.0.0.1", ssl=True, cert=str(cert_path), key=str(key_path))

    async def scenario(port):
        return await http_request(port, "GET", "/docs/readme.txt", ssl_ctx=_client_ctx())

    reply = run_with_server(config, scenario)
    assert reply.status == 200
    assert reply.body == b"hello docs"


def test_ssl_without_key_pair_refuses_to_start(webroot: Path, tmp_path: Path) -> None:
    _, cert_path, _ = _write_pair(tmp_path)
    config = ServerConfig(str(webroot), port=0, host="127.0.0.1", ssl=True, cert=str(cert_path))

    async def scenario(port):
        return port

    with pytest.raises(TransportError):
        run_with_server(config, scenario)


def test_unreadable_certificate_refuses_to_start(webroot: Path, tmp_path: Path) -> None:
    config = ServerConfig(
        str(webroot), port=0, host="127.0.0.1", ssl=True,
        cert=str(tmp_path / "missing.pem"), key=str(tmp_path / "missing.key"),
    )

    async def scenario(port):
        return port

    with pytest.raises(TransportError):
        run_with_server(config, scenario)
