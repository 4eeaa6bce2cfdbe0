# seed_secrets.py  (run interactively once per site)
# Stores directory credentials in the encrypted keyring read by site_creds.

import argparse
import getpass
from typing import List, Optional

import keyring

from dc_health.config import load_settings
from dc_health.site_creds import UNLOCK_ERRORS, open_keyring


def main(argv: Optional[List[str]] = None) -> int:
    ap = argparse.ArgumentParser(description="Seed dc-health credentials into the encrypted keyring.")
    ap.add_argument("--config", default=None, help="dc_health.conf naming the keyring files and users")
    ap.add_argument("--site", default=None, help="Keyring service name (default: site or domain from config)")
    ap.add_argument("users", nargs="*", help="Users to store (default: [general] users from config)")
    args = ap.parse_args(argv)

    try:
        settings = load_settings(args.config)
    except (OSError, ValueError) as err:
        raise SystemExit(f"[config] {err}")
    site = args.site or settings.credential_site
    if not site:
        raise SystemExit("no --site given and no site/domain in config")

    try:
        store = open_keyring(settings.keyring_master, settings.keyring_file)
    except RuntimeError as err:
        raise SystemExit(str(err))

    for user in args.users or settings.credential_users:
        pw = getpass.getpass(f"Enter password for {site}/{user} (blank to skip): ")
        if not pw:
            print(f"Skipped {site}/{user}")
            continue
        try:
            keyring.set_password(site, user, pw)
        except UNLOCK_ERRORS as err:
            raise SystemExit(f"could not store {site}/{user}: {err}")
        print(f"Stored {site}/{user}")
    print(f"\nAll set. Encrypted keyring: {store}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
