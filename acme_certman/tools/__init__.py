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
"""DNS tools to confirm DNS-01 TXT records have propagated before a challenge is submitted."""
import datetime
import logging
import time

import dns.exception
import dns.resolver

log = logging.getLogger(__name__)

# Lookup failures that mean "not visible yet" rather than a broken query
NOT_VISIBLE_ERRORS = (dns.resolver.NoAnswer, dns.resolver.NXDOMAIN, dns.resolver.NoNameservers, dns.exception.Timeout)


class TXTQuery:
    """Queries the TXT values of a single DNS name."""

    def __init__(
        self,
        fqdn: str,
        nameservers: list = None,
        authoritative: bool = False,
        round_robin: bool = False
    ) -> None:
        """
        Args:
            fqdn (str): The DNS name to query (e.g. `_acme-challenge.apps.example.com`).
            nameservers (list): Nameserver IPs to query. Defaults to the system resolver configuration.
            authoritative (bool): Look up and query the authoritative nameserver of `fqdn` instead.
            round_robin (bool): Rotate between nameservers on each query instead of the default fail-over.
        """
        self.fqdn = fqdn.rstrip(".")
        self.round_robin = round_robin
        self.nameservers = list(nameservers) if nameservers else dns.resolver.Resolver().nameservers
        if authoritative:
            self.nameservers = self.authoritative_nameservers()
        self.values = []
        self.last_nameserver = ""

    def _resolver(self) -> dns.resolver.Resolver:
        resolver = dns.resolver.Resolver()
        resolver.nameservers = list(self.nameservers)
        return resolver

    def resolve(self) -> list:
        """
        Queries the nameservers for the TXT values of `fqdn`.

        Returns:
            list: The TXT values found. Missing names or records yield an empty list.
        """
        try:
            answer = self._resolver().resolve(self.fqdn, "TXT")
            self.values = [b"".join(rdata.strings).decode() for rdata in answer]
        except NOT_VISIBLE_ERRORS:
            self.values = []

        self.last_nameserver = self.nameservers[0] if self.nameservers else ""
        if self.round_robin and len(self.nameservers) > 1:
            self.nameservers = self.nameservers[1:] + [self.nameservers[0]]

        return self.values

    def authoritative_nameservers(self) -> list:
        """
        Walks up the labels of `fqdn` until an SOA record is found and resolves its primary nameserver.

        Returns:
            list: The IP addresses of the authoritative nameserver, or the configured nameservers if none was found.
        """
        resolver = self._resolver()
        labels = self.fqdn.split(".")

        while labels:
            zone = ".".join(labels)
            try:
                soa = resolver.resolve(zone, "SOA")
            except NOT_VISIBLE_ERRORS:
                labels.pop(0)
                continue

            primary = soa[0].mname.to_text()
            try:
                return [rdata.address for rdata in resolver.resolve(primary, "A")]
            except NOT_VISIBLE_ERRORS:
                break

        log.warning("No authoritative nameserver found for %s, using %s", self.fqdn, self.nameservers)
        return list(self.nameservers)


def wait_for_txt_record(
        fqdn: str,
        value: str,
        timeout: float = 300,
        interval: float = 2,
        nameservers: list = None,
        authoritative: bool = False,
        round_robin: bool = True
) -> bool:
    """
    Checks the TXT record of `fqdn` until it contains `value` or until the timeout is reached.

    Args:
        fqdn (str): The DNS name to check.
        value (str): The TXT value to look for.
        timeout (float): The amount of time (in seconds) to keep checking.
        interval (float): The amount of time (in seconds) between lookups.
        nameservers (list): Nameserver IPs to query.
        authoritative (bool): Query the authoritative nameserver of `fqdn`.
        round_robin (bool): Rotate between nameservers on each lookup.

    Returns:
        bool: True if the value was observed before the deadline.

    Examples:
        >>> wait_for_txt_record("_acme-challenge.apps.example.com", "moY32lkdsZ3VWHM1mdM...", timeout=120)
        True
    """
    query = TXTQuery(fqdn, nameservers=nameservers, authoritative=authoritative, round_robin=round_robin)
    deadline = datetime.datetime.now() + datetime.timedelta(seconds=timeout)

    while True:
        found = value in query.resolve()
        log.debug("TXT value for %s %s in %s via %s", fqdn, "found" if found else "not found", query.values,
                  query.last_nameserver)
        if found:
            return True
        if datetime.datetime.now() >= deadline:
            return False

        # Avoid flooding the DNS server(s) by briefly pausing between DNS checks
        time.sleep(interval)
