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
The certificate lifecycle engine. One `reconcile()` call evaluates the renewal policy for a certificate request and,
when needed, drives an ACME session end-to-end and persists the result. Errors are never swallowed: the reconciliation
harness receives them as raised and uses their `retryable` flag to decide whether to requeue.
"""
import datetime
import logging
import time

from .. import certificate as certificate_parser
from .. import errors
from .. import renewal
from .. import session as acme_session
from ..config import Settings
from ..models import IssuanceResult, Outcome
from ..store import TLS_CERTIFICATE_KEY, TLS_PRIVATE_KEY_KEY

log = logging.getLogger(__name__)


class CertificateLifecycleEngine:
    """Issues and renews certificates for `acme_certman.models.CertificateRequest` objects."""

    def __init__(self, store, provisioner, settings: Settings = None, session_factory=None, sleep=time.sleep,
                 clock=None):
        """
        Args:
            store (acme_certman.store.SecretStore): Holds account secrets and receives issued certificates.
            provisioner (acme_certman.provisioner.DNSProvisioner): Publishes and removes DNS-01 TXT records.
            settings (acme_certman.config.Settings): Engine settings. Defaults to `Settings()`.
            session_factory (callable): Returns a new `acme_certman.session.ACMESession` for `(store, settings)`.
            sleep (callable): Pauses between polls.
            clock (callable): Returns the current UTC `datetime`, used for renewal decisions and poll deadlines.

        Examples:
            >>> engine = CertificateLifecycleEngine(store, provisioner, Settings.from_env())
            >>> engine.reconcile(request).outcome
            <Outcome.ISSUED: 'issued'>
        """
        # pylint: disable=too-many-arguments
        self.store = store
        self.provisioner = provisioner
        self.settings = settings or Settings()
        self._session_factory = session_factory or acme_session.ACMESession
        self._sleep = sleep
        self._clock = clock or (lambda: datetime.datetime.now(datetime.timezone.utc))

    def reconcile(self, request) -> IssuanceResult:
        """
        Runs one reconciliation pass for `request`.

        Returns:
            acme_certman.models.IssuanceResult: `issued` with the new certificate, or `not_required`.

        Raises:
            acme_certman.errors.CertmanError: Any failure, unchanged. The stored certificate is only replaced when
                every step succeeded.
        """
        existing = self.read_certificate(request)
        renew = renewal.should_renew(
            existing,
            threshold_days=request.renew_before_days,
            default_days=self.settings.default_renew_before_days,
            now=self._clock()
        )
        if not renew:
            log.info("Certificate for %s/%s does not need renewal", request.namespace, request.name)
            return IssuanceResult(outcome=Outcome.NOT_REQUIRED)

        return IssuanceResult(outcome=Outcome.ISSUED, certificate=self.issue(request))

    def read_certificate(self, request) -> bytes:
        """Returns the certificate bytes stored for `request`, or None when the secret or key is absent."""
        try:
            secret = self.store.get(request.secret_name, request.namespace)
        except errors.SecretNotFound:
            log.info("Secret %s/%s does not exist yet", request.namespace, request.secret_name)
            return None
        return secret.get(TLS_CERTIFICATE_KEY)

    def issue(self, request) -> certificate_parser.ParsedCertificate:
        """
        Issues a new certificate for `request` and stores it in the request's secret.

        Returns:
            acme_certman.certificate.ParsedCertificate: The issued certificate. The caller owns it.
        """
        log.info("Issuing certificate for %s/%s: %s", request.namespace, request.name, ", ".join(request.domains))
        session = self._session_factory(self.store, self.settings)
        session.load_account(request.environment)
        if request.email:
            session.update_account(request.email)

        for url in session.create_order(request.domains):
            session.fetch_authorization(url)
            if session.state is acme_session.SessionState.CHALLENGE_VALIDATED:
                continue
            self._complete_challenge(session)

        private_key = acme_session.generate_private_key(self.settings.certificate_key_type)
        session.finalize_order(acme_session.generate_csr(private_key, request.domains))
        chain = self._download(session)

        certificate = certificate_parser.parse_certificate(chain)
        log.info(
            "Issued certificate for %s/%s: issuer=%s not_after=%s",
            request.namespace, request.name, certificate.issuer_common_name, certificate.not_after.isoformat()
        )
        if self.settings.verify_issuer:
            certificate_parser.verify_issuer(certificate)

        self.store.update(request.secret_name, request.namespace, {
            TLS_CERTIFICATE_KEY: chain,
            TLS_PRIVATE_KEY_KEY: private_key
        })
        return certificate

    def _complete_challenge(self, session) -> None:
        """Publishes the TXT record for the current authorization, submits its challenge and waits for validation."""
        session.select_challenge()
        record = session.compute_key_authorization()
        self.provisioner.create_record(record)

        try:
            self.provisioner.wait_for_propagation(record, self.settings)
            session.submit_challenge()
            self._poll(
                session.poll_challenge,
                lambda: session.state is acme_session.SessionState.CHALLENGE_VALIDATED,
                self.settings.challenge_poll_interval,
                self.settings.challenge_poll_timeout,
                f"challenge for {record.domain}"
            )
        except Exception:
            self._cleanup(record, in_flight=True)
            raise
        self._cleanup(record, in_flight=False)

    def _cleanup(self, record, in_flight: bool) -> None:
        """Removes a TXT record. Cleanup failures only propagate when no earlier error is already propagating."""
        try:
            self.provisioner.delete_record(record)
        except Exception:  # pylint: disable=broad-except
            if not in_flight:
                raise
            log.exception("Failed to delete TXT record %s", record.fqdn)

    def _download(self, session) -> bytes:
        def ready():
            return bool(session.order and session.order.body.certificate)

        if not ready():
            self._poll(session.poll_order, ready, self.settings.order_poll_interval, self.settings.order_poll_timeout,
                       "order finalization")
        return session.download_certificate()

    def _poll(self, step, done, interval: float, timeout: float, what: str) -> None:
        """Calls `step` until `done()` is true or `timeout` seconds have elapsed."""
        deadline = self._clock() + datetime.timedelta(seconds=timeout)

        while True:
            status = step()
            if done():
                return
            if self._clock() >= deadline:
                raise errors.ACMETimeout(f"Timed out after {timeout} seconds waiting for the {what} ({status}).")
            self._sleep(interval)
