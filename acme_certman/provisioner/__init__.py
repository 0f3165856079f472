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
The contract for DNS provider plugins that publish DNS-01 validation records. Providers implement `create_record()`
and `delete_record()`; the lifecycle engine calls `wait_for_propagation()` before submitting each challenge.
"""
import logging

from .. import errors
from .. import tools
from ..config import Settings
from ..models import ChallengeRecord

log = logging.getLogger(__name__)


class DNSProvisioner:
    """Base class for DNS providers that manage `_acme-challenge` TXT records."""

    def __init__(
            self,
            nameservers: list = None,
            propagation_timeout: float = None,
            propagation_interval: float = None,
            authoritative: bool = False,
            check_propagation: bool = True
    ) -> None:
        """
        Args:
            nameservers (list): Nameservers queried when checking propagation. Unset values fall back to the
                settings passed to `wait_for_propagation()`.
            propagation_timeout (float): Seconds to wait for a published record to become visible.
            propagation_interval (float): Seconds between propagation lookups.
            authoritative (bool): Check propagation against the zone's authoritative nameserver.
            check_propagation (bool): Set False for providers whose `create_record()` only returns once the record
                is live, which skips the DNS lookups entirely.
        """
        self.nameservers = nameservers
        self.propagation_timeout = propagation_timeout
        self.propagation_interval = propagation_interval
        self.authoritative = authoritative
        self.check_propagation = check_propagation

    @classmethod
    def from_settings(cls, settings: Settings, **kwargs) -> "DNSProvisioner":
        """Creates a provisioner using the nameservers and propagation timing of `settings`."""
        kwargs.setdefault("nameservers", list(settings.nameservers) or None)
        kwargs.setdefault("propagation_timeout", settings.propagation_timeout)
        kwargs.setdefault("propagation_interval", settings.propagation_interval)
        return cls(**kwargs)

    def create_record(self, record: ChallengeRecord) -> None:
        """Publishes `record.value` as a TXT value of `record.fqdn`."""
        raise NotImplementedError

    def delete_record(self, record: ChallengeRecord) -> None:
        """Removes the TXT value published by `create_record()`."""
        raise NotImplementedError

    def wait_for_propagation(self, record: ChallengeRecord, settings: Settings = None) -> None:
        """
        Blocks until the record is visible in DNS.

        Args:
            record (acme_certman.models.ChallengeRecord): The published record.
            settings (acme_certman.config.Settings): Supplies the nameservers, timeout and interval this provisioner
                leaves unset. Defaults to `Settings()`.

        Raises:
            acme_certman.errors.PropagationTimeout: When the record is not observed before the propagation timeout.
        """
        if not self.check_propagation:
            return

        settings = settings or Settings()
        timeout = self.propagation_timeout if self.propagation_timeout is not None else settings.propagation_timeout
        interval = (
            self.propagation_interval if self.propagation_interval is not None else settings.propagation_interval
        )
        visible = tools.wait_for_txt_record(
            record.fqdn,
            record.value,
            timeout=timeout,
            interval=interval,
            nameservers=self.nameservers or list(settings.nameservers) or None,
            authoritative=self.authoritative
        )
        if not visible:
            msg = f"TXT record '{record.fqdn}' was not observed within {timeout} seconds."
            raise errors.PropagationTimeout(msg)

        log.info("TXT record %s has propagated", record.fqdn)
