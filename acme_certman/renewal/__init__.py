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
"""Decides whether a stored certificate needs to be issued or renewed."""
import datetime
import logging

from .. import certificate as certificate_parser
from ..config import DEFAULT_RENEW_BEFORE_DAYS

log = logging.getLogger(__name__)


def effective_threshold(renew_before_days: int, default_days: int = DEFAULT_RENEW_BEFORE_DAYS) -> int:
    """Returns `renew_before_days` if it is a positive value, otherwise `default_days`."""
    if renew_before_days and renew_before_days > 0:
        return renew_before_days
    return default_days


def days_remaining(not_after: datetime.datetime, now: datetime.datetime = None) -> int:
    """
    Counts the whole days left before `not_after`. Partial days are truncated, so a certificate expiring in 23 hours
    has 0 days remaining. A naive `now` is taken to be UTC.
    """
    now = now or datetime.datetime.now(datetime.timezone.utc)
    if now.tzinfo is None:
        now = now.replace(tzinfo=datetime.timezone.utc)
    hours = (not_after - now).total_seconds() / 3600
    return int(hours / 24)


def should_renew(
        data,
        threshold_days: int = 0,
        default_days: int = DEFAULT_RENEW_BEFORE_DAYS,
        now: datetime.datetime = None
) -> bool:
    """
    Decides whether (re)issuance is required for the certificate stored in `data`.

    Args:
        data (bytes): The stored certificate bytes, or None/empty when the secret holds no certificate.
        threshold_days (int): The request's renew-before value. Zero or negative values fall back to `default_days`.
        default_days (int): The system default renewal threshold.
        now (datetime.datetime): The current UTC time. Defaults to the wall clock.

    Returns:
        bool: True when no certificate is stored or it expires within the threshold.

    Raises:
        acme_certman.errors.MalformedCertificate: When certificate data is present but cannot be parsed.

    Examples:
        >>> should_renew(secret.get(TLS_CERTIFICATE_KEY), threshold_days=0, default_days=30)
        True
    """
    threshold = effective_threshold(threshold_days, default_days)

    # Absence of a certificate is a trigger, not a failure
    if not data:
        log.info("Certificate data was not found, issuance is required")
        return True

    parsed = certificate_parser.parse_certificate(data)
    remaining = days_remaining(parsed.not_after, now)
    renew = remaining <= threshold

    log.info(
        "Checking if certificate should be renewed: renew_before_days=%d not_after=%s days_valid_for=%d renew=%s",
        threshold, parsed.not_after.isoformat(), remaining, renew
    )
    return renew
