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
Secret store accessors. A secret is a named key/value map of bytes inside a namespace, the same shape as a Kubernetes
Secret. The lifecycle engine only depends on the `SecretStore` contract; the concrete stores here cover tests and
single-host deployments.
"""
import base64
import json
import logging
import pathlib
import threading

from .. import errors

# Keys used inside secrets
TLS_CERTIFICATE_KEY = "tls.crt"
TLS_PRIVATE_KEY_KEY = "tls.key"
ACCOUNT_PRIVATE_KEY = "private-key"
ACCOUNT_URL_KEY = "account-url"

log = logging.getLogger(__name__)


class SecretStore:
    """The read/write contract the lifecycle engine needs from secret storage."""

    def get(self, name: str, namespace: str) -> dict:
        """
        Reads a secret.

        Args:
            name (str): The secret name.
            namespace (str): The namespace the secret lives in.

        Returns:
            dict: The secret's data, mapping keys to bytes values.

        Raises:
            acme_certman.errors.SecretNotFound: When no such secret exists.
        """
        raise NotImplementedError

    def put(self, name: str, namespace: str, data: dict) -> None:
        """Creates or replaces a secret with exactly `data`."""
        raise NotImplementedError

    def update(self, name: str, namespace: str, data: dict) -> dict:
        """
        Merges `data` into a secret, creating it if it does not exist yet. Keys not in `data` are preserved.

        Returns:
            dict: The merged secret data.
        """
        try:
            merged = dict(self.get(name, namespace))
        except errors.SecretNotFound:
            merged = {}
        merged.update(_to_bytes_map(data))
        self.put(name, namespace, merged)
        return merged


def _to_bytes_map(data: dict) -> dict:
    """Normalizes secret values to bytes."""
    return {key: value.encode() if isinstance(value, str) else bytes(value) for key, value in data.items()}


class MemorySecretStore(SecretStore):
    """A thread-safe in-memory secret store."""

    def __init__(self, secrets: dict = None) -> None:
        """
        Args:
            secrets (dict): Initial content keyed by `(namespace, name)` tuples.
        """
        self._lock = threading.Lock()
        self._secrets = {key: _to_bytes_map(value) for key, value in (secrets or {}).items()}

    def get(self, name: str, namespace: str) -> dict:
        with self._lock:
            try:
                return dict(self._secrets[(namespace, name)])
            except KeyError as exc:
                raise errors.SecretNotFound(f"Secret '{namespace}/{name}' not found.") from exc

    def put(self, name: str, namespace: str, data: dict) -> None:
        with self._lock:
            self._secrets[(namespace, name)] = _to_bytes_map(data)

    def update(self, name: str, namespace: str, data: dict) -> dict:
        # The read-merge-write runs under one lock so concurrent updates of a secret are not lost
        with self._lock:
            merged = dict(self._secrets.get((namespace, name), {}))
            merged.update(_to_bytes_map(data))
            self._secrets[(namespace, name)] = merged
            return dict(merged)


class FileSecretStore(SecretStore):
    """
    Stores each secret as a JSON document at `<root>/<namespace>/<name>.json`. Values are base64 encoded, matching
    the `data` field of a Kubernetes Secret.
    """

    def __init__(self, root: str) -> None:
        self.root = pathlib.Path(root).absolute()

    def path_for(self, name: str, namespace: str) -> pathlib.Path:
        """Returns the file path backing a secret."""
        return self.root.joinpath(namespace, f"{name}.json")

    def get(self, name: str, namespace: str) -> dict:
        path = self.path_for(name, namespace)

        # Ensure our file exists, throw an error otherwise
        if not path.exists():
            raise errors.SecretNotFound(f"No secret file found at '{path}'")

        with open(path, "r", encoding="utf-8") as secret_file:
            document = json.load(secret_file)

        return {key: base64.b64decode(value) for key, value in document.get("data", {}).items()}

    def put(self, name: str, namespace: str, data: dict) -> None:
        path = self.path_for(name, namespace)
        path.parent.mkdir(parents=True, exist_ok=True)
        document = {
            "name": name,
            "namespace": namespace,
            "data": {key: base64.b64encode(value).decode() for key, value in _to_bytes_map(data).items()}
        }

        # Replace the secret file atomically via a sibling temp file
        tmp_path = path.with_suffix(".json.tmp")
        with open(tmp_path, "w", encoding="utf-8") as secret_file:
            json.dump(document, secret_file)
        tmp_path.replace(path)
        log.debug("Wrote secret %s/%s to %s", namespace, name, path)
