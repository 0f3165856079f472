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
acme_certman automates issuance and renewal of Let's Encrypt certificates for cluster ingress domains using the ACME
DNS-01 challenge. A reconciliation loop hands each certificate request to a `CertificateLifecycleEngine`, which decides
whether the stored certificate needs renewal and, if so, drives an `ACMESession` through the order, authorization,
challenge, finalize and download steps before writing the new certificate back to the secret store.

Examples:
    >>> import acme_certman
    >>> engine = acme_certman.CertificateLifecycleEngine(store, provisioner, acme_certman.Settings.from_env())
    >>> request = acme_certman.CertificateRequest(
    ...     name="ingress",
    ...     namespace="apps",
    ...     domains=["*.apps.example.com"],
    ...     secret_name="ingress-tls",
    ...     environment=acme_certman.Environment.PRODUCTION
    ... )
    >>> engine.reconcile(request)
    IssuanceResult(outcome=<Outcome.ISSUED: 'issued'>, certificate=ParsedCertificate(...))
"""
from . import errors
from . import tools
from .certificate import ParsedCertificate, is_lets_encrypt_issuer, parse_certificate, verify_issuer
from .config import Settings, configure_logging
from .engine import CertificateLifecycleEngine
from .models import CertificateRequest, ChallengeRecord, Environment, IssuanceResult, Outcome
from .provisioner import DNSProvisioner
from .renewal import should_renew
from .session import ACMESession, SessionState, register_account
from .store import FileSecretStore, MemorySecretStore, SecretStore

__pdoc__ = {"tests": False}    # Excludes 'tests' submodule from documentation
__all__ = [
    "ACMESession",
    "CertificateLifecycleEngine",
    "CertificateRequest",
    "ChallengeRecord",
    "DNSProvisioner",
    "Environment",
    "FileSecretStore",
    "IssuanceResult",
    "MemorySecretStore",
    "Outcome",
    "ParsedCertificate",
    "SecretStore",
    "SessionState",
    "Settings",
    "configure_logging",
    "errors",
    "is_lets_encrypt_issuer",
    "parse_certificate",
    "register_account",
    "should_renew",
    "tools",
    "verify_issuer",
]
