"""Credential gateway.

Passwords are looked up by the opaque host id of a ConnectionConfig. The
compiler code only ever sees the ``CredentialStore`` interface; where the
secret actually lives is up to the implementation.
"""
import logging
from typing import Dict, Protocol

import keyring
from keyring.errors import KeyringError, PasswordDeleteError

logger = logging.getLogger(__name__)

SERVICE_NAME = "sshdeck"


class CredentialStore(Protocol):
    def get_password(self, host_id: str) -> str:
        """Return the stored password, or "" when there is none."""

    def set_password(self, host_id: str, password: str) -> None:
        ...

    def delete_password(self, host_id: str) -> None:
        ...


class KeyringCredentialStore:
    """Store passwords in the system keyring (Keychain, Secret Service, ...)."""

    def __init__(self, service_name: str = SERVICE_NAME):
        self.service_name = service_name

    def get_password(self, host_id: str) -> str:
        if not host_id:
            return ""
        try:
            return keyring.get_password(self.service_name, host_id) or ""
        except KeyringError as e:
            logger.warning("Keyring lookup failed for host %s: %s", host_id, e)
            return ""

    def set_password(self, host_id: str, password: str) -> None:
        if not host_id or not password:
            logger.warning("Keyring: refusing to store an empty host id or password")
            return
        keyring.set_password(self.service_name, host_id, password)
        logger.info("Keyring: password for host %s saved", host_id)

    def delete_password(self, host_id: str) -> None:
        if not host_id:
            return
        try:
            keyring.delete_password(self.service_name, host_id)
        except PasswordDeleteError:
            pass
        logger.info("Keyring: password for host %s cleared", host_id)


class MemoryCredentialStore:
    def __init__(self, passwords: Dict[str, str] = None):
        self._passwords = dict(passwords or {})

    def get_password(self, host_id: str) -> str:
        return self._passwords.get(host_id, "")

    def set_password(self, host_id: str, password: str) -> None:
        self._passwords[host_id] = password

    def delete_password(self, host_id: str) -> None:
        self._passwords.pop(host_id, None)
