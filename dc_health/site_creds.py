# site_creds.py
# Directory credentials for a run, read from the encrypted keyring (seed it with dc-health-seed).
# The keyring is unlocked from a master file named in dc_health.conf, so runs never prompt.

import pathlib
from typing import List, Tuple

import keyring
from keyring.errors import KeyringError
from keyrings.alt.file import EncryptedKeyring

from dc_health.config import KEYRING_FILE, KEYRING_MASTER, Settings

# what a locked or unreadable store can raise; EncryptedKeyring reports a bad master as ValueError
UNLOCK_ERRORS = (RuntimeError, ValueError, KeyringError)


def open_keyring(master_path: str = KEYRING_MASTER, store_path: str = KEYRING_FILE) -> pathlib.Path:
    """
    Make EncryptedKeyring at store_path the active backend, keyed by the contents of master_path.
    Returns the store path. A missing or empty master file is a RuntimeError.
    """
    master_file = pathlib.Path(master_path).expanduser()
    if not master_file.is_file():
        raise RuntimeError(f"keyring master file not found: {master_file}")
    master = master_file.read_text().strip()
    if not master:
        raise RuntimeError(f"keyring master file is empty: {master_file}")

    store = pathlib.Path(store_path).expanduser()
    store.parent.mkdir(parents=True, exist_ok=True)
    backend = EncryptedKeyring()
    backend.file_path = str(store)
    backend.keyring_key = master
    keyring.set_keyring(backend)
    return store


def stored_credentials(site: str, users: List[str],
                       master_path: str = KEYRING_MASTER,
                       store_path: str = KEYRING_FILE) -> List[Tuple[str, str]]:
    """(user, password) for each user with a stored password under site, in the given order."""
    open_keyring(master_path, store_path)
    creds: List[Tuple[str, str]] = []
    for user in users:
        pw = keyring.get_password(site, user)
        if pw:
            creds.append((user, pw))
    return creds


def credentials_for(settings: Settings) -> List[Tuple[str, str]]:
    return stored_credentials(settings.credential_site, settings.credential_users,
                              settings.keyring_master, settings.keyring_file)
