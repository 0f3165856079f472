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
Custom exception classes for acme_certman. Each class carries a `retryable` flag so the reconciliation harness can
decide between requeueing the request and alerting an operator.
"""

# ACME problem types (RFC 8555 section 6.7) that describe a temporary server-side condition
TRANSIENT_PROBLEM_TYPES = ("serverInternal", "rateLimited", "badNonce")
ACME_ERROR_PREFIX = "urn:ietf:params:acme:error:"


class CertmanError(Exception):
    """Base class for every error raised by acme_certman."""
    retryable = False

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class AccountNotConfigured(CertmanError):
    """Error occurs when the ACME account URL or private key is missing for the requested environment."""


class MalformedCertificate(CertmanError):
    """Error occurs when certificate data is present but cannot be decoded."""


class ChallengeTypeUnavailable(CertmanError):
    """Error occurs when an authorization does not offer the requested challenge type."""


class ChallengeValidationFailed(CertmanError):
    """Error occurs when the ACME server marks a challenge as invalid."""
    def __init__(self, message: str, domain: str = None, problem_type: str = None) -> None:
        super().__init__(message)
        self.domain = domain
        self.problem_type = problem_type


class AcmeProtocolError(CertmanError):
    """
    Error occurs when the ACME server or the transport beneath it reports a failure. Pass `retryable` to override
    the classification by problem type, e.g. for terminal statuses the server reported without a problem document.
    """
    def __init__(self, message: str, problem_type: str = None, detail: str = None, retryable: bool = None) -> None:
        super().__init__(message)
        self.problem_type = problem_type
        self.detail = detail
        self._retryable = retryable

    @property
    def code(self) -> str:
        """The short problem code (e.g. `rateLimited`) if the problem type is an ACME URN."""
        if self.problem_type and self.problem_type.startswith(ACME_ERROR_PREFIX):
            return self.problem_type[len(ACME_ERROR_PREFIX):]
        return self.problem_type

    @property
    def retryable(self) -> bool:
        if self._retryable is not None:
            return self._retryable
        # Transport failures carry no problem document and are always worth another attempt
        if not self.problem_type:
            return True
        return self.code in TRANSIENT_PROBLEM_TYPES


class InvalidTransition(CertmanError):
    """Error occurs when a session operation is called from a state that does not allow it."""
    def __init__(self, message: str, state=None) -> None:
        super().__init__(message)
        self.state = state


class InvalidDomain(CertmanError):
    """Error occurs when a requested domain list is empty or contains an invalid domain"""


class InvalidEmail(CertmanError):
    """Error occurs when an account contact email is not a valid email address"""


class InvalidCSR(CertmanError):
    """Error occurs when a CSR cannot be loaded or does not match the order's domains"""


class InvalidKeyType(CertmanError):
    """Error occurs when the requested private key type is unsupported"""


class InvalidConfiguration(CertmanError):
    """Error occurs when a configuration value cannot be converted to its expected type or is not an allowed option"""


class SecretNotFound(CertmanError):
    """Error occurs when the store holds no secret with the requested name and namespace"""


class OrderNotReady(CertmanError):
    """Error occurs when the certificate is requested before the order exposes a certificate URL"""
    retryable = True


class ACMETimeout(CertmanError):
    """Error occurs when the max time has been exceeded waiting for an ACME server event"""
    retryable = True


class PropagationTimeout(CertmanError):
    """Error occurs when a DNS-01 TXT record is not observed before the propagation deadline"""
    retryable = True


class UnexpectedIssuer(CertmanError):
    """Error occurs when issuer verification is enabled and the certificate was not issued by Let's Encrypt"""
