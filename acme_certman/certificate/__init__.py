# Copyright 2025 Jared Hendrickson
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#    http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.
"""X.509 certificate parsing and issuer identity checks."""
import dataclasses
import datetime

from cryptography import x509
from cryptography.x509.oid import NameOID

from .. import errors

PEM_CERTIFICATE_MARKER = b"-----BEGIN CERTIFICATE-----"
LETS_ENCRYPT_ORGANIZATIONS = ("Let's Encrypt", "(STAGING) Let's Encrypt")
LETS_ENCRYPT_STAGING_COMMON_NAME = "Fake LE Intermediate X1"


@dataclasses.dataclass(frozen=True)
class ParsedCertificate:
    """
    The leaf certificate of a PEM bundle along with the fields the renewal logic cares about.

    Attributes:
        not_before (datetime.datetime): Start of the validity window (UTC).
        not_after (datetime.datetime): End of the validity window (UTC).
        issuer_organizations (tuple): Every organization (O) attribute of the issuer name.
        issuer_common_name (str): The issuer's common name (CN), or an empty string.
        subject_common_name (str): The subject's common name (CN), or an empty string.
        dns_names (tuple): DNS names from the subject alternative name extension.
        serial_number (int): The certificate serial number.
        raw (bytes): The exact bytes that were parsed. For bundles this is the whole bundle.
        leaf (cryptography.x509.Certificate): The decoded leaf certificate.
    """
    # pylint: disable=too-many-instance-attributes
    not_before: datetime.datetime
    not_after: datetime.datetime
    issuer_organizations: tuple
    issuer_common_name: str
    subject_common_name: str
    dns_names: tuple
    serial_number: int
    raw: bytes
    leaf: x509.Certificate


def _attributes(name: x509.Name, oid) -> list:
    return [str(attribute.value) for attribute in name.get_attributes_for_oid(oid)]


def _load_leaf(data: bytes) -> x509.Certificate:
    """Loads the first certificate of a PEM bundle, or a single DER certificate."""
    if PEM_CERTIFICATE_MARKER in data:
        return x509.load_pem_x509_certificates(data)[0]
    return x509.load_der_x509_certificate(data)


def parse_certificate(data) -> ParsedCertificate:
    """
    Decodes certificate data. PEM data may be a single certificate or a chain, in which case the first entry is
    treated as the leaf. DER data must be a single certificate.

    Args:
        data (bytes|str): The encoded certificate data.

    Returns:
        acme_certman.certificate.ParsedCertificate: The decoded leaf certificate.

    Raises:
        acme_certman.errors.MalformedCertificate: When the data is empty or cannot be decoded.

    Examples:
        >>> cert = parse_certificate(secret[TLS_CERTIFICATE_KEY])
        >>> cert.not_after
        datetime.datetime(2026, 1, 17, 8, 12, 40, tzinfo=datetime.timezone.utc)
    """
    if isinstance(data, str):
        data = data.encode()
    if not isinstance(data, (bytes, bytearray)) or not data:
        raise errors.MalformedCertificate("Certificate data is empty or not a bytes-string.")

    try:
        leaf = _load_leaf(bytes(data))
    except ValueError as exc:
        raise errors.MalformedCertificate(f"Unable to decode certificate data: {exc}") from exc

    try:
        san = leaf.extensions.get_extension_for_class(x509.SubjectAlternativeName).value
        dns_names = tuple(san.get_values_for_type(x509.DNSName))
    except x509.ExtensionNotFound:
        dns_names = ()

    issuer_common_names = _attributes(leaf.issuer, NameOID.COMMON_NAME)
    subject_common_names = _attributes(leaf.subject, NameOID.COMMON_NAME)

    return ParsedCertificate(
        not_before=leaf.not_valid_before_utc,
        not_after=leaf.not_valid_after_utc,
        issuer_organizations=tuple(_attributes(leaf.issuer, NameOID.ORGANIZATION_NAME)),
        issuer_common_name=issuer_common_names[0] if issuer_common_names else "",
        subject_common_name=subject_common_names[0] if subject_common_names else "",
        dns_names=dns_names,
        serial_number=leaf.serial_number,
        raw=bytes(data),
        leaf=leaf
    )


def is_lets_encrypt_issuer(certificate: ParsedCertificate) -> bool:
    """
    Determines if a certificate was issued by a Let's Encrypt CA, production or staging.

    Args:
        certificate (acme_certman.certificate.ParsedCertificate): The certificate to check.

    Returns:
        bool: True when the issuer organization or staging common name identifies Let's Encrypt.
    """
    if any(org in LETS_ENCRYPT_ORGANIZATIONS for org in certificate.issuer_organizations):
        return True
    return certificate.issuer_common_name == LETS_ENCRYPT_STAGING_COMMON_NAME


def verify_issuer(certificate: ParsedCertificate) -> None:
    """
    Optional verification pass run after issuance, independent of the renewal decision.

    Raises:
        acme_certman.errors.UnexpectedIssuer: When the certificate was not issued by Let's Encrypt.
    """
    if not is_lets_encrypt_issuer(certificate):
        issuer = certificate.issuer_common_name or ", ".join(certificate.issuer_organizations) or "unknown"
        raise errors.UnexpectedIssuer(f"Certificate issuer '{issuer}' is not a Let's Encrypt CA.")
