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

import acme_certman


class ManualProvisioner(acme_certman.DNSProvisioner):
    """Asks an operator to publish and remove each TXT record by hand."""

    def create_record(self, record):
        print(f"Create TXT record {record.fqdn} -> {record.value}")
        input("Press enter once the record is published...")

    def delete_record(self, record):
        print(f"The TXT record {record.fqdn} -> {record.value} can now be removed")


acme_certman.configure_logging("INFO")

# Secrets are kept as JSON documents under ./secrets. Settings come from CERTMAN_* environment variables.
store = acme_certman.FileSecretStore("./secrets")
settings = acme_certman.Settings.from_env()

# Register a staging account the first time this example runs
try:
    store.get(acme_certman.Environment.STAGING.account_secret_name, settings.operator_namespace)
except acme_certman.errors.SecretNotFound:
    acme_certman.register_account(store, acme_certman.Environment.STAGING, email="user@example.com", settings=settings)

# Issue the certificate if it does not exist yet or expires within 30 days
engine = acme_certman.CertificateLifecycleEngine(store, ManualProvisioner(nameservers=["8.8.8.8", "1.1.1.1"]), settings)
request = acme_certman.CertificateRequest(
    name="example",
    namespace="default",
    domains=["test.example.com"],
    secret_name="example-tls",
    renew_before_days=30
)
result = engine.reconcile(request)
print(f"{request.secret_name}: {result.outcome.value}")
