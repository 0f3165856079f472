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
"""
Runtime settings for acme_certman. Settings are an immutable object handed to the engine and the ACME session; the
only environment access is `Settings.from_env()`.
"""
import dataclasses
import logging
import os
import sys

from .. import errors

LETS_ENCRYPT_STAGING = "https://acme-staging-v02.api.letsencrypt.org/directory"
LETS_ENCRYPT_PRODUCTION = "https://acme-v02.api.letsencrypt.org/directory"
DEFAULT_RENEW_BEFORE_DAYS = 30
ENV_PREFIX = "CERTMAN_"
LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


@dataclasses.dataclass(frozen=True)
class Settings:
    """
    Tunables shared by every certificate request.

    Attributes:
        staging_directory (str): ACME directory URL used for `staging` requests.
        production_directory (str): ACME directory URL used for `production` requests.
        operator_namespace (str): The namespace holding the ACME account secrets.
        default_renew_before_days (int): Renewal threshold applied when a request does not set a positive one.
        certificate_key_type (str): Key type generated for each issued certificate. Options are:
            [`ec256`, `ec384`, `rsa2048`, `rsa4096`]
        challenge_poll_interval (float): Seconds between challenge status checks.
        challenge_poll_timeout (float): Seconds to wait for a submitted challenge to become valid.
        order_poll_interval (float): Seconds between order status checks after finalization.
        order_poll_timeout (float): Seconds to wait for a finalized order to expose its certificate.
        network_timeout (int): Per-request timeout (in seconds) for ACME HTTP calls.
        verify_ssl (bool): Verify the ACME server's TLS certificate.
        user_agent (str): User agent sent to the ACME server.
        nameservers (tuple): DNS servers queried when checking TXT record propagation.
        propagation_timeout (float): Seconds to wait for a TXT record to become visible.
        propagation_interval (float): Seconds between TXT record lookups.
        verify_issuer (bool): Reject issued certificates that were not signed by Let's Encrypt.
    """
    # pylint: disable=too-many-instance-attributes
    staging_directory: str = LETS_ENCRYPT_STAGING
    production_directory: str = LETS_ENCRYPT_PRODUCTION
    operator_namespace: str = "certman-operator"
    default_renew_before_days: int = DEFAULT_RENEW_BEFORE_DAYS
    certificate_key_type: str = "rsa2048"
    challenge_poll_interval: float = 2.0
    challenge_poll_timeout: float = 90.0
    order_poll_interval: float = 2.0
    order_poll_timeout: float = 90.0
    network_timeout: int = 45
    verify_ssl: bool = True
    user_agent: str = "acme_certman/1.0.0"
    nameservers: tuple = ()
    propagation_timeout: float = 300.0
    propagation_interval: float = 2.0
    verify_issuer: bool = False

    def directory_for(self, environment) -> str:
        """Returns the ACME directory URL for an `acme_certman.models.Environment`."""
        if environment.value == "production":
            return self.production_directory
        return self.staging_directory

    @classmethod
    def from_env(cls, environ: dict = None) -> "Settings":
        """
        Builds settings from `CERTMAN_*` environment variables. Unset variables keep their defaults.

        Args:
            environ (dict): The mapping to read from. Defaults to `os.environ`.

        Returns:
            acme_certman.config.Settings: The populated settings object.

        Raises:
            acme_certman.errors.InvalidConfiguration: When a variable cannot be converted to its field's type.

        Examples:
            >>> Settings.from_env({"CERTMAN_DEFAULT_RENEW_BEFORE_DAYS": "45", "CERTMAN_NAMESERVERS": "8.8.8.8,1.1.1.1"})
            Settings(..., default_renew_before_days=45, ..., nameservers=('8.8.8.8', '1.1.1.1'), ...)
        """
        environ = os.environ if environ is None else environ
        values = {}

        for field in dataclasses.fields(cls):
            raw = environ.get(ENV_PREFIX + field.name.upper())
            if raw is None:
                continue
            values[field.name] = _convert(field.name, raw, type(field.default))

        return cls(**values)


def _convert(name: str, raw: str, target: type):
    """Converts a raw environment string to the type of a settings field's default."""
    raw = raw.strip()

    if target is bool:
        if raw.lower() in ("1", "true", "yes", "on"):
            return True
        if raw.lower() in ("0", "false", "no", "off"):
            return False
        raise errors.InvalidConfiguration(f"Setting '{name}' expects a boolean, got '{raw}'.")
    if target is tuple:
        return tuple(item.strip() for item in raw.split(",") if item.strip())
    if target in (int, float):
        try:
            return target(raw)
        except ValueError as exc:
            raise errors.InvalidConfiguration(f"Setting '{name}' expects {target.__name__}, got '{raw}'.") from exc
    return raw


def configure_logging(level="INFO", fmt: str = LOG_FORMAT, stream=None) -> logging.Logger:
    """
    Attaches a stream handler to the `acme_certman` logger. Embedding programs that configure logging themselves
    do not need to call this.

    Args:
        level (str|int): The log level to apply to the package logger.
        fmt (str): The log record format.
        stream: The stream to write to. Defaults to `sys.stderr`.

    Returns:
        logging.Logger: The configured package logger.
    """
    logger = logging.getLogger("acme_certman")
    handler = logging.StreamHandler(stream or sys.stderr)
    handler.setFormatter(logging.Formatter(fmt))
    logger.handlers = [handler]
    logger.setLevel(level)
    return logger
