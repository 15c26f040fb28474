"""Unit tests for main.py -- operator CLI commands and the cpf_hash backfill."""

import pytest

from auth.models import User
from auth.store import UserStore
from core.crypto import SecretBox
from main import backfill_cpf_hashes, main
from pii.cpf import CpfEncryptor, hash_cpf


@pytest.fixture
def user_store():
    store = UserStore("sqlite:///:memory:")
    yield store
    store.close()


def _legacy_user(store: UserStore, email: str, encrypted: str, last4: str) -> int:
    """Insert a user the way rows looked before cpf_hash existed."""
    return store.create_user(User(email=email, name=email, cpf_encrypted=encrypted, cpf_last4=last4))


class TestBackfill:
    def test_fills_missing_hashes(self, user_store: UserStore, box: SecretBox) -> None:
        encryptor = CpfEncryptor(box)
        uid = _legacy_user(user_store, "a@example.com", box.seal("11144477735"), "7735")
        user_store.create_user(User(email="b@example.com", name="b"))

        report = backfill_cpf_hashes(user_store, encryptor)

        assert report.total == 1
        assert report.updated == 1
        assert report.errors == []
        assert user_store.get_by_id(uid).cpf_hash == hash_cpf("11144477735")
        assert user_store.find_by_cpf_hash(hash_cpf("11144477735")).id == uid

    def test_idempotent(self, user_store: UserStore, box: SecretBox) -> None:
        encryptor = CpfEncryptor(box)
        _legacy_user(user_store, "a@example.com", box.seal("12345678909"), "8909")
        backfill_cpf_hashes(user_store, encryptor)

        second = backfill_cpf_hashes(user_store, encryptor)
        assert second.total == 0
        assert second.updated == 0

    def test_reports_undecryptable_rows(self, user_store: UserStore, box: SecretBox) -> None:
        encryptor = CpfEncryptor(box)
        good = _legacy_user(user_store, "good@example.com", box.seal("12345678909"), "8909")
        other_key = SecretBox.from_hex("ee" * 32)
        bad = _legacy_user(user_store, "bad@example.com", other_key.seal("11144477735"), "7735")
        broken = _legacy_user(user_store, "broken@example.com", "not-encrypted", "0000")

        report = backfill_cpf_hashes(user_store, encryptor)

        assert report.total == 3
        assert report.updated == 1
        assert dict(report.errors) == {bad: "DecryptionError", broken: "FormatError"}
        assert user_store.get_by_id(good).cpf_hash is not None
        assert user_store.get_by_id(bad).cpf_hash is None


class TestCommands:
    def test_generate_key(self, capsys: pytest.CaptureFixture) -> None:
        assert main(["generate-key"]) == 0
        key = capsys.readouterr().out.strip()
        assert len(key) == 64
        SecretBox.from_hex(key)

    def test_check_cpf_valid(self, capsys: pytest.CaptureFixture) -> None:
        assert main(["check-cpf", "12345678909"]) == 0
        assert "123.456.789-09" in capsys.readouterr().out

    def test_check_cpf_invalid(self, capsys: pytest.CaptureFixture) -> None:
        assert main(["check-cpf", "11111111111"]) == 1
        assert "not a valid CPF" in capsys.readouterr().out

    def test_backfill_command(self, capsys: pytest.CaptureFixture) -> None:
        url = "sqlite:///file:test_cli_backfill?mode=memory&cache=shared&uri=true"
        keeper = UserStore(url)
        try:
            assert main(["backfill-cpf-hash", "--database-url", url]) == 0
            assert "Updated: 0" in capsys.readouterr().out
        finally:
            keeper.close()

    def test_no_command_prints_help(self, capsys: pytest.CaptureFixture) -> None:
        assert main([]) == 0
        assert "usage" in capsys.readouterr().out.lower()
