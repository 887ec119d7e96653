"""Keyring-backed credential storage for provider secrets.

Provides a thin wrapper around the ``keyring`` library to store and
retrieve the SimpleFIN access URL in the system keychain (or any other
backend supported by keyring).
"""

import logging

import keyring
from keyring.errors import KeyringError

logger = logging.getLogger(__name__)

SERVICE_NAME = "simplefin-relink"

CREDENTIAL_KEYS: frozenset[str] = frozenset({"SIMPLEFIN_ACCESS_URL"})


def get_credential(key: str) -> str | None:
    """Retrieve a credential from the keychain.

    Args:
        key: The credential name (e.g. ``"SIMPLEFIN_ACCESS_URL"``).

    Returns:
        The credential value, or ``None`` if not found or the keyring
        backend is unavailable.
    """
    try:
        return keyring.get_password(SERVICE_NAME, key)
    except KeyringError:
        logger.debug("keyring lookup failed for %s", key, exc_info=True)
        return None


def set_credential(key: str, value: str) -> bool:
    """Store a credential in the keychain.

    Only keys listed in :data:`CREDENTIAL_KEYS` are accepted.

    Returns:
        ``True`` if stored successfully, ``False`` otherwise.
    """
    if key not in CREDENTIAL_KEYS:
        logger.warning("Attempted to store non-credential key: %s", key)
        return False
    if not value or not value.strip():
        logger.warning("Attempted to store empty value for %s", key)
        return False

    try:
        keyring.set_password(SERVICE_NAME, key, value)
    except KeyringError:
        logger.warning("Failed to store %s in keychain", key, exc_info=True)
        return False
    logger.info("Stored %s in keychain", key)
    return True


def delete_credential(key: str) -> bool:
    """Remove a credential from the keychain."""
    if key not in CREDENTIAL_KEYS:
        logger.warning("Attempted to delete non-credential key: %s", key)
        return False

    try:
        keyring.delete_password(SERVICE_NAME, key)
    except KeyringError:
        logger.debug("Failed to delete %s from keychain", key, exc_info=True)
        return False
    logger.info("Deleted %s from keychain", key)
    return True
