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
"""Request and result objects exchanged between the reconciliation harness and the lifecycle engine."""
import dataclasses
import enum

import validators

from .. import errors


class Environment(enum.Enum):
    """The ACME environment a request targets. Each environment has an independent account identity."""
    STAGING = "staging"
    PRODUCTION = "production"

    @property
    def account_secret_name(self) -> str:
        """The name of the secret holding this environment's ACME account key and URL."""
        return f"lets-encrypt-account-{self.value}"

    @classmethod
    def parse(cls, value) -> "Environment":
        """
        Converts a user supplied value to an Environment.

        Args:
            value (Environment|str|bool): An Environment, its name, or a `use staging` boolean flag.

        Returns:
            acme_certman.models.Environment: The matching environment.

        Raises:
            acme_certman.errors.InvalidConfiguration: When `value` names no known environment.
        """
        if isinstance(value, cls):
            return value
        if isinstance(value, bool):
            return cls.STAGING if value else cls.PRODUCTION

        try:
            return cls(str(value).strip().lower())
        except ValueError as exc:
            options = [environment.value for environment in cls]
            raise errors.InvalidConfiguration(f"Invalid environment '{value}'. Options {options}") from exc


class Outcome(enum.Enum):
    """The terminal result of one reconciliation pass."""
    ISSUED = "issued"
    NOT_REQUIRED = "not_required"


def strip_wildcard(domain: str) -> str:
    """
    Strips the wildcard portion of a domain (*.) if present.

    Args:
        domain (str): The domain string to strip wildcards from.

    Returns:
        str: The domain string without the wildcard portion.
    """
    return domain[2:] if domain.startswith("*.") else domain


def validate_domains(domains) -> tuple:
    """
    Checks that a domain list is non-empty and that each entry (minus a leading wildcard) is a valid FQDN.

    Raises:
        acme_certman.errors.InvalidDomain: When the list is empty, not a list, or holds an invalid domain.
    """
    if isinstance(domains, str) or not isinstance(domains, (list, tuple)):
        raise errors.InvalidDomain("Domains must be of type 'list'.")
    if not domains:
        raise errors.InvalidDomain("At least one domain is required.")

    for domain in domains:
        if not isinstance(domain, str) or not validators.domain(strip_wildcard(domain)):
            raise errors.InvalidDomain(f"Invalid domain name '{domain}'. Domain name must adhere to RFC2181.")

    return tuple(domains)


@dataclasses.dataclass(frozen=True)
class CertificateRequest:
    """
    A declarative request for a certificate covering `domains`, stored in the secret `secret_name`.

    Attributes:
        name (str): The request object's name, used for logging.
        namespace (str): The namespace of the request and its target secret.
        domains (tuple): The DNS names to include in the certificate. Wildcards are allowed.
        secret_name (str): The secret receiving `tls.crt` and `tls.key`.
        renew_before_days (int): Days before expiry at which to renew. Zero or negative means unset.
        environment (Environment): Whether to use the staging or production ACME environment.
        email (str): Optional contact address applied to the ACME account before ordering.
    """
    name: str
    namespace: str
    domains: tuple
    secret_name: str
    renew_before_days: int = 0
    environment: Environment = Environment.STAGING
    email: str = None

    def __post_init__(self):
        # Frozen dataclasses must go through object.__setattr__ to normalize fields
        object.__setattr__(self, "domains", validate_domains(self.domains))
        object.__setattr__(self, "environment", Environment.parse(self.environment))
        if self.email is not None and not validators.email(self.email):
            raise errors.InvalidEmail(f"Value '{self.email}' is not a valid email address.")


@dataclasses.dataclass(frozen=True)
class ChallengeRecord:
    """A DNS-01 TXT record that must be published before a challenge is submitted."""
    domain: str
    fqdn: str
    value: str


@dataclasses.dataclass(frozen=True)
class IssuanceResult:
    """The outcome of a reconciliation pass and, when issued, the parsed certificate."""
    outcome: Outcome
    certificate: object = None

    @property
    def issued(self) -> bool:
        return self.outcome is Outcome.ISSUED
