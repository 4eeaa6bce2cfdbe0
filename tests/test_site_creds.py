import pytest

from dc_health import site_creds
from dc_health.config import Settings


class FakeBackend:
    """Stands in for EncryptedKeyring; records what open_keyring configured."""

    def __init__(self):
        self.file_path = None
        self.keyring_key = None


@pytest.fixture
def store(tmp_path, monkeypatch):
    passwords = {("corp", "svc-dchealth"): "pw-svc", ("corp", "Administrator"): "pw-admin"}
    bound = {}
    monkeypatch.setattr(site_creds, "EncryptedKeyring", FakeBackend)
    monkeypatch.setattr(site_creds.keyring, "set_keyring", lambda backend: bound.setdefault("backend", backend))
    monkeypatch.setattr(site_creds.keyring, "get_password", lambda site, user: passwords.get((site, user)))
    master = tmp_path / "master"
    master.write_text("s3cret\n")
    return {"master": master, "file": tmp_path / "kr" / "crypted_pass.cfg", "bound": bound}


def _settings(store, **kw):
    s = Settings()
    s.site = "corp"
    s.keyring_master = str(store["master"])
    s.keyring_file = str(store["file"])
    for k, v in kw.items():
        setattr(s, k, v)
    return s


def test_default_user_order(store):
    assert site_creds.credentials_for(_settings(store)) == [
        ("svc-dchealth", "pw-svc"),
        ("Administrator", "pw-admin"),
    ]


def test_configured_users_skip_missing_passwords(store):
    creds = site_creds.credentials_for(_settings(store, users=["nobody", "Administrator"]))
    assert creds == [("Administrator", "pw-admin")]


def test_backend_bound_from_settings_paths(store):
    site_creds.credentials_for(_settings(store))

    backend = store["bound"]["backend"]
    assert backend.keyring_key == "s3cret"
    assert backend.file_path == str(store["file"])
    assert store["file"].parent.is_dir()


def test_missing_master_file(store, tmp_path):
    with pytest.raises(RuntimeError, match="master file not found"):
        site_creds.credentials_for(_settings(store, keyring_master=str(tmp_path / "absent")))
    assert store["bound"] == {}


def test_empty_master_file(store):
    store["master"].write_text("  \n")
    with pytest.raises(RuntimeError, match="master file is empty"):
        site_creds.open_keyring(str(store["master"]), str(store["file"]))


def test_wrong_master_is_an_unlock_error():
    assert issubclass(ValueError, site_creds.UNLOCK_ERRORS)


def test_seed_stores_configured_users(store, tmp_path, monkeypatch, capsys):
    from dc_health import seed_secrets

    conf = tmp_path / "dc.conf"
    conf.write_text(
        "[general]\n"
        "domain = corp.example.com\n"
        "users = svc-a, svc-b\n"
        f"keyring_master = {store['master']}\n"
        f"keyring_file = {store['file']}\n"
    )
    stored = {}
    answers = iter(["pw-a", ""])
    monkeypatch.setattr(seed_secrets.getpass, "getpass", lambda prompt: next(answers))
    monkeypatch.setattr(seed_secrets.keyring, "set_password",
                        lambda site, user, pw: stored.__setitem__((site, user), pw))

    assert seed_secrets.main(["--config", str(conf)]) == 0

    assert stored == {("corp.example.com", "svc-a"): "pw-a"}
    assert "Skipped corp.example.com/svc-b" in capsys.readouterr().out
