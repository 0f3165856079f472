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
An ACME v2 session that drives one DNS-01 issuance as an explicit state machine:

    Uninitialized -> AccountLoaded -> OrderCreated -> AuthorizationsPending -> ChallengeSelected -> ChallengeReady
        -> ChallengeSubmitted -> ChallengeValidated -> (next authorization ...) -> Finalizing -> CertificateIssued

`Failed` is reachable from any non-terminal state. Every operation checks the current state first and raises
`acme_certman.errors.InvalidTransition` without side effects when called out of order. Polling is single-step; the
caller decides how often and how long to poll.
"""
import contextlib
import enum
import logging

import josepy as jose
import requests
import validators
from acme import challenges
from acme import client
from acme import crypto_util
from acme import errors as acme_errors
from acme import messages
from cryptography import exceptions as crypto_exceptions
from cryptography import x509
from cryptography.hazmat.primitives.asymmetric import rsa, ec
from cryptography.hazmat.primitives.serialization import (
    Encoding, PrivateFormat, NoEncryption, load_pem_private_key
)

from .. import certificate as certificate_parser
from .. import errors
from ..config import Settings
from ..models import ChallengeRecord, Environment, strip_wildcard, validate_domains
from ..store import ACCOUNT_PRIVATE_KEY, ACCOUNT_URL_KEY

DNS01 = challenges.DNS01.typ
KEY_TYPES = ("ec256", "ec384", "rsa2048", "rsa4096")
EC_ALGORITHMS = {"secp256r1": jose.ES256, "secp384r1": jose.ES384, "secp521r1": jose.ES512}
# acme re-raises connection failures from requests as ValueError
NETWORK_ERRORS = (acme_errors.Error, jose.errors.Error, requests.exceptions.RequestException, ValueError)

log = logging.getLogger(__name__)


class SessionState(enum.Enum):
    """The states of an ACME issuance session."""
    UNINITIALIZED = "Uninitialized"
    ACCOUNT_LOADED = "AccountLoaded"
    ORDER_CREATED = "OrderCreated"
    AUTHORIZATIONS_PENDING = "AuthorizationsPending"
    CHALLENGE_SELECTED = "ChallengeSelected"
    CHALLENGE_READY = "ChallengeReady"
    CHALLENGE_SUBMITTED = "ChallengeSubmitted"
    CHALLENGE_VALIDATED = "ChallengeValidated"
    FINALIZING = "Finalizing"
    CERTIFICATE_ISSUED = "CertificateIssued"
    FAILED = "Failed"


TERMINAL_STATES = frozenset({SessionState.CERTIFICATE_ISSUED, SessionState.FAILED})


@contextlib.contextmanager
def acme_call(operation: str):
    """
    Converts errors raised by the acme library and its transport into `acme_certman.errors.AcmeProtocolError`,
    keeping the ACME problem type when the server returned a problem document.
    """
    try:
        yield
    except messages.Error as exc:
        msg = f"{operation} failed: {exc.detail or exc}"
        raise errors.AcmeProtocolError(msg, problem_type=exc.typ, detail=exc.detail) from exc
    except NETWORK_ERRORS as exc:
        raise errors.AcmeProtocolError(f"{operation} failed: {exc}") from exc


def default_client_factory(directory_url: str, account_key: jose.JWK, alg, settings: Settings) -> client.ClientV2:
    """Builds an `acme.client.ClientV2` for `directory_url`. Network timeouts and TLS checks come from `settings`."""
    net = client.ClientNetwork(
        account_key,
        alg=alg,
        user_agent=settings.user_agent,
        verify_ssl=settings.verify_ssl,
        timeout=settings.network_timeout
    )
    directory = messages.Directory.from_json(net.get(directory_url).json())
    return client.ClientV2(directory, net=net)


def load_account_key(key_pem: bytes) -> tuple:
    """
    Loads a PEM encoded RSA or EC account key.

    Returns:
        tuple: The `josepy.JWK` key and the JWS algorithm used to sign requests with it.

    Raises:
        acme_certman.errors.AccountNotConfigured: When the key cannot be loaded or is of an unsupported type.
    """
    try:
        key = load_pem_private_key(key_pem, password=None)
    except (ValueError, TypeError, crypto_exceptions.UnsupportedAlgorithm) as exc:
        raise errors.AccountNotConfigured(f"ACME account private key could not be loaded: {exc}") from exc

    if isinstance(key, rsa.RSAPrivateKey):
        return jose.JWKRSA(key=key), jose.RS256
    if isinstance(key, ec.EllipticCurvePrivateKey) and key.curve.name in EC_ALGORITHMS:
        return jose.JWKEC(key=key), EC_ALGORITHMS[key.curve.name]

    raise errors.AccountNotConfigured(f"ACME account private key type '{type(key).__name__}' is not supported.")


def generate_private_key(key_type: str = "rsa2048") -> bytes:
    """
    Generates a new RSA or EC private key for a certificate.

    Args:
        key_type (str): The requested key type. Options are: [`ec256`, `ec384`, `rsa2048`, `rsa4096`]

    Returns:
        bytes: The PEM encoded private key data bytes-string.

    Raises:
        acme_certman.errors.InvalidKeyType: When an unknown/unsupported `key_type` is requested.
    """
    if key_type == "ec256":
        key = ec.generate_private_key(ec.SECP256R1())
    elif key_type == "ec384":
        key = ec.generate_private_key(ec.SECP384R1())
    elif key_type == "rsa2048":
        key = rsa.generate_private_key(public_exponent=65537, key_size=2048)
    elif key_type == "rsa4096":
        key = rsa.generate_private_key(public_exponent=65537, key_size=4096)
    else:
        raise errors.InvalidKeyType(f"Invalid private key type '{key_type}'. Options {list(KEY_TYPES)}")

    return key.private_bytes(
        encoding=Encoding.PEM,
        format=PrivateFormat.TraditionalOpenSSL,
        encryption_algorithm=NoEncryption()
    )


def generate_csr(private_key: bytes, domains) -> bytes:
    """Generates a PEM encoded CSR for `domains`, signed by `private_key`."""
    return crypto_util.make_csr(private_key, list(domains))


def _csr_domains(csr: x509.CertificateSigningRequest) -> set:
    """Returns the DNS names a CSR requests, falling back to its common name when it has no SAN extension."""
    try:
        san = csr.extensions.get_extension_for_class(x509.SubjectAlternativeName).value
        return set(san.get_values_for_type(x509.DNSName))
    except x509.ExtensionNotFound:
        return {str(attr.value) for attr in csr.subject.get_attributes_for_oid(x509.NameOID.COMMON_NAME)}


def _challenge_type(challb: messages.ChallengeBody) -> str:
    if isinstance(challb.chall, challenges.UnrecognizedChallenge):
        return challb.chall.jobj.get("type", "")
    return challb.chall.typ


class ACMESession:
    """
    Owns an ACME account for one environment and drives a single DNS-01 order through issuance. A session is not
    shared between certificate requests; discard it once it reaches `CertificateIssued` or `Failed`.
    """
    # pylint: disable=too-many-instance-attributes

    def __init__(self, store, settings: Settings = None, namespace: str = None, client_factory=None):
        """
        Args:
            store (acme_certman.store.SecretStore): The store holding the ACME account secrets.
            settings (acme_certman.config.Settings): Directory URLs and transport settings.
            namespace (str): The namespace of the account secrets. Defaults to `settings.operator_namespace`.
            client_factory (callable): Builds the `acme.client.ClientV2`. Called with
                `(directory_url, account_key, alg, settings)`.

        Examples:
            >>> session = ACMESession(store, settings)
            >>> session.load_account(Environment.STAGING)
            >>> session.create_order(["apps.example.com"])
            ('https://acme-staging-v02.api.letsencrypt.org/acme/authz-v3/1234',)
        """
        self.store = store
        self.settings = settings or Settings()
        self.namespace = namespace or self.settings.operator_namespace
        self.environment = None
        self.account = None
        self.account_key = None
        self.failure_reason = None
        self._client_factory = client_factory or default_client_factory
        self._acme_client = None
        self._state = SessionState.UNINITIALIZED
        self._clear_order()

    def _clear_order(self) -> None:
        self.order = None
        self.domains = ()
        self.authorization = None
        self.challenge = None
        self._response = None
        self._validated = set()

    @property
    def state(self) -> SessionState:
        """The current session state."""
        return self._state

    @property
    def finished(self) -> bool:
        """True once the session is `CertificateIssued` or `Failed` and should be discarded."""
        return self._state in TERMINAL_STATES

    @property
    def acme_client(self) -> client.ClientV2:
        """The ACME client bound to the loaded account."""
        return self._acme_client

    @property
    def authorization_urls(self) -> tuple:
        """The authorization URLs of the active order."""
        if not self.order:
            return ()
        return tuple(self.order.body.authorizations)

    @property
    def pending_authorization_urls(self) -> tuple:
        """The authorization URLs of the active order that have not been validated yet."""
        return tuple(url for url in self.authorization_urls if url not in self._validated)

    @property
    def authorization_domain(self) -> str:
        """The identifier value of the current authorization."""
        return self.authorization.body.identifier.value if self.authorization else None

    @property
    def available_challenge_types(self) -> list:
        """The challenge types offered by the current authorization."""
        if not self.authorization:
            return []
        return [_challenge_type(challb) for challb in self.authorization.body.challenges]

    def _require(self, action: str, *allowed: SessionState) -> None:
        if self._state not in allowed:
            msg = f"Cannot {action} while the session is {self._state.value}."
            raise errors.InvalidTransition(msg, state=self._state)

    def _require_account(self, action: str) -> None:
        if self.account is None:
            msg = f"Cannot {action} before an ACME account is loaded."
            raise errors.InvalidTransition(msg, state=self._state)

    def _set_state(self, state: SessionState) -> None:
        log.debug("ACME session transition %s -> %s", self._state.value, state.value)
        self._state = state

    def _fail(self, reason: str) -> None:
        log.error("ACME session failed in state %s: %s", self._state.value, reason)
        self.failure_reason = reason
        self._clear_order()
        self._set_state(SessionState.FAILED)

    @contextlib.contextmanager
    def _network(self, operation: str, fail_session: bool = True):
        try:
            with acme_call(operation):
                yield
        except errors.AcmeProtocolError as exc:
            if fail_session:
                self._fail(exc.message)
            raise

    def _post(self, url: str, obj=None):
        """POSTs `obj` to `url`. A None `obj` makes this a POST-as-GET request."""
        return self._acme_client.net.post(url, obj, new_nonce_url=self._acme_client.directory["newNonce"])

    def load_account(self, environment) -> messages.RegistrationResource:
        """
        Loads the account URL and private key for `environment` from the store and connects to its ACME directory.

        Args:
            environment (acme_certman.models.Environment|str|bool): The ACME environment to use.

        Returns:
            acme.messages.RegistrationResource: The loaded account.

        Raises:
            acme_certman.errors.AccountNotConfigured: When the account secret, URL or key is absent or unusable.
            acme_certman.errors.AcmeProtocolError: When the ACME directory cannot be retrieved.
        """
        self._require("load an account", SessionState.UNINITIALIZED)
        environment = Environment.parse(environment)
        secret_name = environment.account_secret_name

        try:
            secret = self.store.get(secret_name, self.namespace)
        except errors.SecretNotFound as exc:
            msg = f"ACME account secret '{self.namespace}/{secret_name}' for {environment.value} does not exist."
            raise errors.AccountNotConfigured(msg) from exc

        key_pem = secret.get(ACCOUNT_PRIVATE_KEY)
        account_url = secret.get(ACCOUNT_URL_KEY, b"").decode().rstrip("\r\n")
        if not key_pem or not account_url:
            missing = ACCOUNT_PRIVATE_KEY if not key_pem else ACCOUNT_URL_KEY
            msg = f"ACME account secret '{self.namespace}/{secret_name}' has no '{missing}' value."
            raise errors.AccountNotConfigured(msg)

        account_key, alg = load_account_key(key_pem)
        with self._network("Loading the ACME directory"):
            acme_client = self._client_factory(self.settings.directory_for(environment), account_key, alg, self.settings)

        # The account URL becomes the JWS key ID for every following request
        self.account = messages.RegistrationResource(uri=account_url, body=messages.Registration())
        acme_client.net.account = self.account
        self._acme_client = acme_client
        self.account_key = account_key
        self.environment = environment
        self._set_state(SessionState.ACCOUNT_LOADED)
        log.info("Loaded %s ACME account %s", environment.value, account_url)
        return self.account

    def update_account(self, email: str) -> messages.RegistrationResource:
        """
        Replaces the account's contact list with `email`. Allowed in any state once an account is loaded.

        Raises:
            acme_certman.errors.InvalidEmail: When `email` is not a valid email address.
        """
        self._require_account("update the account")
        if not validators.email(email):
            raise errors.InvalidEmail(f"Value '{email}' is not a valid email address.")

        with self._network("Updating the ACME account contact", fail_session=False):
            self.account = self._acme_client.update_registration(
                self.account, messages.Registration.from_data(email=email)
            )
        return self.account

    def create_order(self, domains) -> tuple:
        """
        Requests a new order for a `dns` identifier per domain.

        Args:
            domains (list): The domains to include in the certificate. Must not be empty.

        Returns:
            tuple: The order's authorization URLs.

        Raises:
            acme_certman.errors.InvalidDomain: When `domains` is empty or holds an invalid domain.
        """
        self._require("create an order", SessionState.ACCOUNT_LOADED)
        domains = validate_domains(list(domains) if not isinstance(domains, str) else domains)
        identifiers = [messages.Identifier(typ=messages.IDENTIFIER_FQDN, value=domain) for domain in domains]

        with self._network("Creating the order"):
            response = self._post(self._acme_client.directory["newOrder"], messages.NewOrder(identifiers=identifiers))
            body = messages.Order.from_json(response.json())

        self.order = messages.OrderResource(body=body, uri=response.headers.get("Location"))
        self.domains = domains
        self._set_state(SessionState.ORDER_CREATED)
        log.info("Created order %s for %s", self.order.uri, ", ".join(domains))
        return self.authorization_urls

    def fetch_authorization(self, url: str) -> messages.AuthorizationResource:
        """
        Retrieves one of the order's authorizations. An authorization the server already considers valid (e.g. one
        reused from a recent order) needs no challenge and moves the session straight to `ChallengeValidated`.

        Raises:
            acme_certman.errors.ChallengeValidationFailed: When the authorization is already invalid.
            acme_certman.errors.AcmeProtocolError: When the authorization is expired, deactivated or revoked.
        """
        self._require("fetch an authorization", SessionState.ORDER_CREATED, SessionState.CHALLENGE_VALIDATED)
        if url not in self.authorization_urls:
            raise errors.InvalidTransition(f"Authorization '{url}' does not belong to the active order.", self._state)

        with self._network("Fetching the authorization"):
            body = messages.Authorization.from_json(self._post(url).json())

        self.authorization = messages.AuthorizationResource(body=body, uri=url)
        self.challenge = None
        self._response = None
        domain = body.identifier.value

        if body.status == messages.STATUS_VALID:
            self._validated.add(url)
            self._set_state(SessionState.CHALLENGE_VALIDATED)
            log.info("Authorization for %s is already valid", domain)
        elif body.status == messages.STATUS_PENDING:
            self._set_state(SessionState.AUTHORIZATIONS_PENDING)
        elif body.status == messages.STATUS_INVALID:
            msg = f"Authorization for '{domain}' is invalid."
            self._fail(msg)
            raise errors.ChallengeValidationFailed(msg, domain=domain)
        else:
            msg = f"Authorization for '{domain}' is {body.status.name}."
            self._fail(msg)
            raise errors.AcmeProtocolError(msg, retryable=False)

        return self.authorization

    def select_challenge(self, challenge_type: str = DNS01) -> messages.ChallengeBody:
        """
        Selects the challenge of `challenge_type` from the current authorization. Only `dns-01` is supported. On
        failure the session state is left unchanged.

        Raises:
            acme_certman.errors.ChallengeTypeUnavailable: When the type is unsupported or not offered.
        """
        self._require("select a challenge", SessionState.AUTHORIZATIONS_PENDING)
        domain = self.authorization_domain

        if challenge_type != DNS01:
            raise errors.ChallengeTypeUnavailable(f"Challenge type '{challenge_type}' is not supported, use '{DNS01}'.")

        for challb in self.authorization.body.challenges:
            if isinstance(challb.chall, challenges.DNS01):
                self.challenge = challb
                self._set_state(SessionState.CHALLENGE_SELECTED)
                return challb

        msg = f"ACME server does not offer '{DNS01}' for '{domain}'. Available: {self.available_challenge_types}"
        raise errors.ChallengeTypeUnavailable(msg)

    def compute_key_authorization(self) -> ChallengeRecord:
        """
        Derives the DNS-01 TXT value from the challenge token and the account key.

        Returns:
            acme_certman.models.ChallengeRecord: The `_acme-challenge` record to publish before submitting.

        Examples:
            >>> session.compute_key_authorization()
            ChallengeRecord(domain='apps.example.com', fqdn='_acme-challenge.apps.example.com', value='moY32lkd...')
        """
        self._require("compute a key authorization", SessionState.CHALLENGE_SELECTED)
        domain = strip_wildcard(self.authorization_domain)
        response, validation = self.challenge.response_and_validation(self.account_key)
        self._response = response
        self._set_state(SessionState.CHALLENGE_READY)
        return ChallengeRecord(domain=domain, fqdn=self.challenge.chall.validation_domain_name(domain), value=validation)

    def submit_challenge(self) -> None:
        """Notifies the ACME server that the TXT record is published and the challenge can be validated."""
        self._require("submit a challenge", SessionState.CHALLENGE_READY)

        with self._network("Submitting the challenge"):
            challr = self._acme_client.answer_challenge(self.challenge, self._response)

        self.challenge = challr.body
        self._set_state(SessionState.CHALLENGE_SUBMITTED)
        log.info("Submitted %s challenge for %s", DNS01, self.authorization_domain)

    def poll_challenge(self) -> str:
        """
        Checks the submitted challenge's status once.

        Returns:
            str: The challenge status. `valid` moves the session to `ChallengeValidated`; `pending` and `processing`
                leave it unchanged.

        Raises:
            acme_certman.errors.ChallengeValidationFailed: When the server marked the challenge `invalid`.
        """
        self._require("poll a challenge", SessionState.CHALLENGE_SUBMITTED)

        with self._network("Polling the challenge"):
            body = messages.ChallengeBody.from_json(self._post(self.challenge.uri).json())

        self.challenge = body
        domain = self.authorization_domain

        if body.status == messages.STATUS_VALID:
            self._validated.add(self.authorization.uri)
            self._set_state(SessionState.CHALLENGE_VALIDATED)
            log.info("Challenge for %s is valid", domain)
        elif body.status == messages.STATUS_INVALID:
            problem = body.error
            detail = problem.detail if problem and problem.detail else "no detail provided"
            msg = f"Challenge for '{domain}' is invalid: {detail}"
            self._fail(msg)
            raise errors.ChallengeValidationFailed(msg, domain=domain, problem_type=problem.typ if problem else None)

        return body.status.name

    def finalize_order(self, csr) -> messages.OrderResource:
        """
        Submits the CSR once every authorization of the order is validated.

        Args:
            csr (bytes|cryptography.x509.CertificateSigningRequest): A CSR naming exactly the order's domains.

        Raises:
            acme_certman.errors.InvalidTransition: When authorizations remain unvalidated.
            acme_certman.errors.InvalidCSR: When the CSR cannot be loaded or its domains differ from the order's.
        """
        self._require("finalize the order", SessionState.CHALLENGE_VALIDATED)
        pending = self.pending_authorization_urls
        if pending:
            msg = f"Cannot finalize the order, {len(pending)} authorization(s) are not validated."
            raise errors.InvalidTransition(msg, state=self._state)

        if isinstance(csr, x509.CertificateSigningRequest):
            csr_obj = csr
        else:
            try:
                csr_obj = x509.load_pem_x509_csr(csr.encode() if isinstance(csr, str) else csr)
            except (ValueError, TypeError) as exc:
                raise errors.InvalidCSR(f"CSR could not be loaded: {exc}") from exc

        requested = _csr_domains(csr_obj)
        if requested != set(self.domains):
            msg = f"CSR domains {sorted(requested)} do not match the order domains {sorted(self.domains)}."
            raise errors.InvalidCSR(msg)

        with self._network("Finalizing the order"):
            response = self._post(self.order.body.finalize, messages.CertificateRequest(csr=csr_obj))
            body = messages.Order.from_json(response.json())

        self.order = self.order.update(body=body, csr_pem=csr_obj.public_bytes(Encoding.PEM))
        self._set_state(SessionState.FINALIZING)
        self._check_order(body)
        log.info("Finalized order %s", self.order.uri)
        return self.order

    def _check_order(self, body: messages.Order) -> None:
        if body.status == messages.STATUS_INVALID:
            problem = body.error
            msg = f"Order {self.order.uri} is invalid: {problem.detail if problem else 'no detail provided'}"
            self._fail(msg)
            raise errors.AcmeProtocolError(msg, problem_type=problem.typ if problem else None,
                                           detail=problem.detail if problem else None,
                                           retryable=None if problem else False)

    def _refresh_order(self) -> messages.Order:
        with self._network("Polling the order"):
            body = messages.Order.from_json(self._post(self.order.uri).json())
        self.order = self.order.update(body=body)
        self._check_order(body)
        return body

    def poll_order(self) -> str:
        """
        Checks the finalized order's status once.

        Returns:
            str: The order status, `valid` once the certificate can be downloaded.

        Raises:
            acme_certman.errors.AcmeProtocolError: When the server marked the order `invalid`.
        """
        self._require("poll the order", SessionState.FINALIZING)
        return self._refresh_order().status.name

    def download_certificate(self) -> bytes:
        """
        Downloads the certificate chain once the order exposes its certificate URL. The order, its authorizations
        and challenges are discarded afterwards.

        Returns:
            bytes: The PEM encoded certificate chain, leaf first.

        Raises:
            acme_certman.errors.OrderNotReady: When the order has no certificate URL yet. The state is unchanged.
        """
        self._require("download the certificate", SessionState.FINALIZING)
        if not self.order.body.certificate:
            self._refresh_order()
        if not self.order.body.certificate:
            raise errors.OrderNotReady(f"Order {self.order.uri} is {self.order.body.status.name}, no certificate yet.")

        with self._network("Downloading the certificate"):
            response = self._post(self.order.body.certificate)

        chain = response.text.encode()
        log.info("Downloaded certificate for %s", ", ".join(self.domains))
        self._clear_order()
        self._set_state(SessionState.CERTIFICATE_ISSUED)
        return chain

    def revoke_certificate(self, certificate, reason: int = 0) -> None:
        """
        Revokes a certificate issued to this account. Independent of the issuance sequence; the state is unchanged.

        Args:
            certificate (bytes|str|acme_certman.certificate.ParsedCertificate|cryptography.x509.Certificate): The
                certificate (or chain, leaf first) to revoke.
            reason (int): The RFC 5280 revocation reason code.
        """
        self._require_account("revoke a certificate")
        if isinstance(certificate, x509.Certificate):
            leaf = certificate
        elif isinstance(certificate, certificate_parser.ParsedCertificate):
            leaf = certificate.leaf
        else:
            leaf = certificate_parser.parse_certificate(certificate).leaf

        with self._network("Revoking the certificate", fail_session=False):
            self._acme_client.revoke(leaf, reason)
        log.info("Revoked certificate with serial %x", leaf.serial_number)


def register_account(
        store,
        environment,
        email: str = None,
        settings: Settings = None,
        namespace: str = None,
        client_factory=None
) -> messages.RegistrationResource:
    """
    Registers a new ACME account with a fresh RSA 2048 key and stores its key and URL in the environment's account
    secret. By running this function, you are agreeing to the ACME server's terms of service.

    Args:
        store (acme_certman.store.SecretStore): The store receiving the account secret.
        environment (acme_certman.models.Environment|str|bool): The ACME environment to register with.
        email (str): Optional contact email address.
        settings (acme_certman.config.Settings): Directory URLs and transport settings.
        namespace (str): The namespace of the account secret. Defaults to `settings.operator_namespace`.
        client_factory (callable): Builds the `acme.client.ClientV2`.

    Returns:
        acme.messages.RegistrationResource: The registered account.
    """
    environment = Environment.parse(environment)
    settings = settings or Settings()
    namespace = namespace or settings.operator_namespace
    client_factory = client_factory or default_client_factory
    if email is not None and not validators.email(email):
        raise errors.InvalidEmail(f"Value '{email}' is not a valid email address.")

    rsa_key = rsa.generate_private_key(public_exponent=65537, key_size=2048)
    account_key = jose.JWKRSA(key=rsa_key)

    with acme_call("Registering the ACME account"):
        acme_client = client_factory(settings.directory_for(environment), account_key, jose.RS256, settings)
        registration = messages.NewRegistration.from_data(email=email, terms_of_service_agreed=True)
        account = acme_client.new_account(registration)

    key_pem = rsa_key.private_bytes(
        encoding=Encoding.PEM,
        format=PrivateFormat.TraditionalOpenSSL,
        encryption_algorithm=NoEncryption()
    )
    store.update(environment.account_secret_name, namespace, {ACCOUNT_PRIVATE_KEY: key_pem, ACCOUNT_URL_KEY: account.uri})
    log.info("Registered %s ACME account %s", environment.value, account.uri)
    return account
