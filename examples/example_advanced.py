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

import sys
import time

import acme_certman
from acme_certman.session import SessionState, generate_csr, generate_private_key

acme_certman.configure_logging("DEBUG" if "--verbose" in sys.argv else "INFO")
store = acme_certman.FileSecretStore("./secrets")
domains = ["test.example.com", "*.test.example.com"]

# Drive an ACME session by hand instead of through the lifecycle engine
session = acme_certman.ACMESession(store)
session.load_account(acme_certman.Environment.STAGING)
session.update_account("user@example.com")

for url in session.create_order(domains):
    session.fetch_authorization(url)
    if session.state is SessionState.CHALLENGE_VALIDATED:
        continue

    session.select_challenge("dns-01")
    record = session.compute_key_authorization()
    print(f"{record.fqdn} --> {record.value}")

    # [ !!! ADD YOUR CODE TO UPLOAD THE TOKEN TO YOUR DNS SERVER HERE; OR UPLOAD THE TOKEN MANUALLY !!! ]

    # Keep checking DNS for the verification token for 1200 seconds (20 minutes) before giving up.
    if not acme_certman.tools.wait_for_txt_record(record.fqdn, record.value, timeout=1200, nameservers=["8.8.8.8"]):
        print(f"TXT record {record.fqdn} did not propagate")
        sys.exit(1)

    session.submit_challenge()
    while session.poll_challenge() != "valid":
        time.sleep(2)

private_key = generate_private_key("ec384")
session.finalize_order(generate_csr(private_key, domains))
while session.poll_order() != "valid":
    time.sleep(2)

certificate = session.download_certificate()
print(certificate.decode())
print(private_key.decode())

# Revoke the certificate again, reason 4 is "superseded"
session.revoke_certificate(certificate, reason=4)
