"""Issues and persists the TLS credentials used on the remote-procedure channel.

The control plane keeps one certificate authority per domain, stored in the credentials
store under the domain name. Each host gets a server certificate signed by that authority
(common name = the host's credentials name), and the control plane dials hosts with a client
certificate for the domain name signed by the same authority. Both ends therefore verify
each other against a single CA.
"""

import datetime
import ipaddress
import threading
from typing import Final

from cryptography import x509
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa
from cryptography.x509.oid import ExtendedKeyUsageOID
from cryptography.x509.oid import NameOID
from loguru import logger
from pydantic import SecretBytes

from hostvisor.credentials.data_types import Credentials
from hostvisor.credentials.store import CredentialsStoreInterface
from hostvisor.errors import ConfigurationError
from hostvisor.errors import CredentialsNotFoundError
from hostvisor.hosts.data_types import Host

_KEY_SIZE: Final[int] = 2048
_CA_VALIDITY: Final[datetime.timedelta] = datetime.timedelta(days=3650)
_LEAF_VALIDITY: Final[datetime.timedelta] = datetime.timedelta(days=365)
# Tolerate modest clock skew between the control plane and freshly booted hosts.
_BACKDATE: Final[datetime.timedelta] = datetime.timedelta(hours=1)

# Serializes find-then-save of stored credentials within this process. Stores shared between
# processes must make save idempotent on their own.
_ISSUE_LOCK: Final[threading.Lock] = threading.Lock()


def _generate_private_key() -> rsa.RSAPrivateKey:
    return rsa.generate_private_key(public_exponent=65537, key_size=_KEY_SIZE)


def _private_key_pem(key: rsa.RSAPrivateKey) -> bytes:
    return key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.NoEncryption(),
    )


def _subject_alt_name(name: str) -> x509.GeneralName:
    try:
        return x509.IPAddress(ipaddress.ip_address(name))
    except ValueError:
        return x509.DNSName(name)


def _build_authority(domain_name: str) -> Credentials:
    key = _generate_private_key()
    name = x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, f"{domain_name} CA")])
    now = datetime.datetime.now(datetime.timezone.utc)
    cert = (
        x509.CertificateBuilder()
        .subject_name(name)
        .issuer_name(name)
        .public_key(key.public_key())
        .serial_number(x509.random_serial_number())
        .not_valid_before(now - _BACKDATE)
        .not_valid_after(now + _CA_VALIDITY)
        .add_extension(x509.BasicConstraints(ca=True, path_length=0), critical=True)
        .add_extension(
            x509.KeyUsage(
                digital_signature=True,
                content_commitment=False,
                key_encipherment=False,
                data_encipherment=False,
                key_agreement=False,
                key_cert_sign=True,
                crl_sign=True,
                encipher_only=False,
                decipher_only=False,
            ),
            critical=True,
        )
        .sign(key, hashes.SHA256())
    )
    cert_pem = cert.public_bytes(serialization.Encoding.PEM)
    return Credentials(ca_cert=cert_pem, cert=cert_pem, key=SecretBytes(_private_key_pem(key)), server_name=domain_name)


def _issue(authority: Credentials, common_name: str, alt_names: list[str], server_name: str) -> Credentials:
    """Issue a leaf certificate for common_name signed by the authority."""
    authority.validate_complete()
    ca_cert = x509.load_pem_x509_certificate(authority.cert)
    ca_key = serialization.load_pem_private_key(authority.key.get_secret_value(), password=None)
    if not isinstance(ca_key, rsa.RSAPrivateKey):
        raise ConfigurationError("ca_key", "authority key is not an RSA key")

    key = _generate_private_key()
    now = datetime.datetime.now(datetime.timezone.utc)
    unique_alt_names = list(dict.fromkeys([common_name, *alt_names]))
    cert = (
        x509.CertificateBuilder()
        .subject_name(x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, common_name)]))
        .issuer_name(ca_cert.subject)
        .public_key(key.public_key())
        .serial_number(x509.random_serial_number())
        .not_valid_before(now - _BACKDATE)
        .not_valid_after(now + _LEAF_VALIDITY)
        .add_extension(x509.BasicConstraints(ca=False, path_length=None), critical=True)
        .add_extension(
            x509.SubjectAlternativeName([_subject_alt_name(n) for n in unique_alt_names]),
            critical=False,
        )
        .add_extension(
            x509.ExtendedKeyUsage([ExtendedKeyUsageOID.SERVER_AUTH, ExtendedKeyUsageOID.CLIENT_AUTH]),
            critical=False,
        )
        .sign(ca_key, hashes.SHA256())
    )
    return Credentials(
        ca_cert=authority.ca_cert,
        cert=cert.public_bytes(serialization.Encoding.PEM),
        key=SecretBytes(_private_key_pem(key)),
        server_name=server_name,
    )


def bootstrap_credentials_authority(store: CredentialsStoreInterface, domain_name: str) -> Credentials:
    """Return the domain's certificate authority, creating and storing it on first use."""
    if not domain_name:
        raise ConfigurationError("domain_name", "a domain name is required to bootstrap credentials")
    with _ISSUE_LOCK:
        try:
            return store.find_by_id(domain_name)
        except CredentialsNotFoundError:
            pass
        logger.info("Bootstrapping credentials authority for {}", domain_name)
        authority = _build_authority(domain_name)
        store.save(domain_name, authority)
        return authority


def _find_authority(store: CredentialsStoreInterface, domain_name: str) -> Credentials:
    try:
        return store.find_by_id(domain_name)
    except CredentialsNotFoundError as e:
        raise ConfigurationError(
            "domain_name", f"no credentials authority has been bootstrapped for {domain_name!r}"
        ) from e


def generate_host_credentials(host: Host, store: CredentialsStoreInterface, domain_name: str) -> Credentials:
    """Issue fresh server credentials for the host's end of the channel. Nothing is persisted."""
    authority = _find_authority(store, domain_name)
    alt_names = [host.host] if host.host else []
    logger.debug("Issuing channel credentials for host {}", host.id)
    return _issue(authority, host.credentials_name, alt_names, server_name=host.credentials_name)


def save_host_credentials(host: Host, credentials: Credentials, store: CredentialsStoreInterface) -> None:
    """Persist credentials under the host's credentials name, overwriting any prior value."""
    store.save(host.credentials_name, credentials)


def find_host_credentials(host: Host, store: CredentialsStoreInterface) -> Credentials:
    return store.find_by_id(host.credentials_name)


def client_credentials_name(domain_name: str) -> str:
    return f"{domain_name}-client"


def client_credentials(store: CredentialsStoreInterface, domain_name: str) -> Credentials:
    """Return the control plane's client credentials, issuing and storing them on first use.

    The same client certificate is presented to every host in the domain.
    """
    name = client_credentials_name(domain_name)
    with _ISSUE_LOCK:
        try:
            return store.find_by_id(name)
        except CredentialsNotFoundError:
            pass
        authority = _find_authority(store, domain_name)
        logger.info("Issuing control-plane client credentials for {}", domain_name)
        credentials = _issue(authority, domain_name, [], server_name="")
        store.save(name, credentials)
        return credentials


def export_credentials(credentials: Credentials) -> bytes:
    return credentials.export()
