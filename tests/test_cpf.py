"""Unit tests for pii/cpf.py -- CPF validation, formatting, hashing and encryption."""

import hashlib

import pytest

from core.crypto import SecretBox, is_sealed
from core.errors import DecryptionError, ValidationError
from pii.cpf import CpfEncryptor, clean_cpf, format_cpf, hash_cpf, mask_cpf, validate_cpf


class TestValidate:
    @pytest.mark.parametrize("cpf", ["12345678909", "123.456.789-09", "11144477735", "111.444.777-35"])
    def test_valid(self, cpf: str) -> None:
        assert validate_cpf(cpf)

    @pytest.mark.parametrize("digit", "0123456789")
    def test_repeated_digits_rejected(self, digit: str) -> None:
        assert not validate_cpf(digit * 11)

    @pytest.mark.parametrize("cpf", ["12345678900", "12345678919", "11144477736"])
    def test_bad_check_digits(self, cpf: str) -> None:
        assert not validate_cpf(cpf)

    @pytest.mark.parametrize("cpf", ["", "1234567890", "123456789012", "abc"])
    def test_wrong_length(self, cpf: str) -> None:
        assert not validate_cpf(cpf)

    def test_static_method_matches_helper(self) -> None:
        assert CpfEncryptor.validate("123.456.789-09") is True
        assert CpfEncryptor.validate("00000000000") is False


class TestFormatting:
    def test_clean(self) -> None:
        assert clean_cpf(" 123.456.789-09 ") == "12345678909"

    def test_format(self) -> None:
        assert format_cpf("12345678909") == "123.456.789-09"
        assert CpfEncryptor.format("11144477735") == "111.444.777-35"

    def test_format_does_not_validate(self) -> None:
        assert format_cpf("00000000000") == "000.000.000-00"

    def test_format_wrong_length_returned_unformatted(self) -> None:
        assert format_cpf("123") == "123"

    def test_mask(self) -> None:
        assert mask_cpf("7735") == "***.***.*77-35"


class TestHash:
    def test_hash_is_sha256_of_digits(self) -> None:
        expected = hashlib.sha256(b"12345678909").hexdigest()
        assert hash_cpf("12345678909") == expected
        assert len(expected) == 64

    def test_hash_ignores_punctuation(self) -> None:
        assert hash_cpf("123.456.789-09") == hash_cpf("12345678909")

    def test_hash_is_deterministic_and_distinct(self) -> None:
        assert hash_cpf("12345678909") == hash_cpf("12345678909")
        assert hash_cpf("12345678909") != hash_cpf("11144477735")

    def test_hash_rejects_wrong_length(self) -> None:
        with pytest.raises(ValidationError):
            hash_cpf("123")


class TestEncryptor:
    def test_encrypt_produces_all_three_forms(self, box: SecretBox) -> None:
        record = CpfEncryptor(box).encrypt("111.444.777-35")
        assert is_sealed(record.encrypted)
        assert "11144477735" not in record.encrypted
        assert record.last4 == "7735"
        assert record.hash == hash_cpf("11144477735")

    def test_decrypt_returns_clean_digits(self, box: SecretBox) -> None:
        encryptor = CpfEncryptor(box)
        record = encryptor.encrypt("123.456.789-09")
        assert encryptor.decrypt(record.encrypted) == "12345678909"

    def test_encrypt_is_randomized_hash_is_not(self, box: SecretBox) -> None:
        encryptor = CpfEncryptor(box)
        a = encryptor.encrypt("12345678909")
        b = encryptor.encrypt("12345678909")
        assert a.encrypted != b.encrypted
        assert a.hash == b.hash == encryptor.hash("12345678909")

    def test_encrypt_rejects_wrong_length(self, box: SecretBox) -> None:
        with pytest.raises(ValidationError, match="11 digits"):
            CpfEncryptor(box).encrypt("1234")

    def test_decrypt_with_other_key_fails(self, box: SecretBox) -> None:
        record = CpfEncryptor(box).encrypt("12345678909")
        with pytest.raises(DecryptionError):
            CpfEncryptor(SecretBox.from_hex("ab" * 32)).decrypt(record.encrypted)
