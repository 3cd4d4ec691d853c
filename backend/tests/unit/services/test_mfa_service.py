"""Tests for the TOTP engine and backup codes."""

import base64
from datetime import UTC, datetime, timedelta

import pyotp
import pytest

from festive.services.mfa_service import MfaService


@pytest.fixture
def secret():
    return MfaService.generate_totp_secret()


class TestSecrets:
    def test_secret_is_base32_and_long_enough(self, secret):
        assert len(secret) == 32
        assert MfaService.is_valid_secret_format(secret)

    def test_secret_format_rejects_non_base32(self):
        assert not MfaService.is_valid_secret_format("not-base32!")
        assert not MfaService.is_valid_secret_format("ABC")
        assert not MfaService.is_valid_secret_format(None)

    def test_provisioning_uri_names_issuer_and_account(self, secret):
        uri = MfaService.get_totp_uri(secret, "host@example.com")

        assert uri.startswith("otpauth://totp/")
        assert "issuer=Festive" in uri
        assert f"secret={secret}" in uri
        assert "host%40example.com" in uri or "host@example.com" in uri

    def test_qr_code_is_png(self, secret):
        qr = MfaService.generate_qr_code_base64(MfaService.get_totp_uri(secret, "a@example.com"))

        assert base64.b64decode(qr).startswith(b"\x89PNG")

    def test_secret_encryption_round_trip(self, secret):
        encrypted = MfaService.encrypt_secret(secret)

        assert encrypted != secret
        assert MfaService.decrypt_secret(encrypted) == secret


class TestVerifyTotp:
    def test_current_code_is_accepted(self, secret):
        assert MfaService.verify_totp(secret, pyotp.TOTP(secret).now())

    def test_adjacent_steps_are_accepted(self, secret):
        now = datetime.now(UTC)
        totp = pyotp.TOTP(secret)

        assert MfaService.verify_totp(secret, totp.at(now - timedelta(seconds=30)), for_time=now)
        assert MfaService.verify_totp(secret, totp.at(now + timedelta(seconds=30)), for_time=now)

    def test_codes_two_steps_away_are_rejected(self, secret):
        now = datetime.now(UTC)
        totp = pyotp.TOTP(secret)
        now_code = totp.at(now)

        for offset in (-60, 60):
            code = totp.at(now + timedelta(seconds=offset))
            if code != now_code:
                assert not MfaService.verify_totp(secret, code, for_time=now)

    def test_malformed_codes_are_rejected(self, secret):
        for code in ("", "12345", "1234567", "abcdef", "12 456"):
            assert not MfaService.verify_totp(secret, code)

    def test_fullwidth_digits_are_rejected(self, secret):
        code = pyotp.TOTP(secret).now()
        fullwidth = code.translate(str.maketrans("0123456789", "０１２３４５６７８９"))

        assert not MfaService.is_valid_totp_format(fullwidth)
        assert not MfaService.verify_totp(secret, fullwidth)

    def test_trailing_newline_is_rejected(self, secret):
        code = pyotp.TOTP(secret).now()

        assert not MfaService.is_valid_totp_format(f"{code}\n")
        assert not MfaService.verify_totp(secret, f"{code}\n")

    def test_unusable_secret_fails_instead_of_raising(self):
        assert MfaService.verify_totp("!!!", "123456") is False


class TestBackupCodes:
    def test_batch_has_ten_distinct_codes(self):
        batch = MfaService.generate_backup_codes()

        codes = [backup.code for backup in batch]
        assert len(codes) == 10
        assert len(set(codes)) == 10
        for code in codes:
            assert MfaService.is_valid_backup_code_format(code)

    def test_only_hash_differs_from_code(self):
        backup = MfaService.generate_backup_codes(1)[0]

        assert backup.code_hash != backup.code
        assert backup.code_hash == MfaService.hash_backup_code(backup.code)

    def test_verify_matches_any_stored_hash_case_insensitively(self):
        batch = MfaService.generate_backup_codes(3)
        hashes = [backup.code_hash for backup in batch]

        assert MfaService.verify_backup_code(batch[1].code, hashes)
        assert MfaService.verify_backup_code(batch[2].code.lower(), hashes)

    def test_verify_rejects_unknown_and_malformed_codes(self):
        hashes = [backup.code_hash for backup in MfaService.generate_backup_codes(3)]

        assert not MfaService.verify_backup_code("ZZZZ9999", hashes)
        assert not MfaService.verify_backup_code("short", hashes)
        assert not MfaService.verify_backup_code("ABCD-1234", hashes)

    def test_non_ascii_and_trailing_newline_codes_are_rejected(self):
        backup = MfaService.generate_backup_codes(1)[0]
        hashes = [backup.code_hash]
        fullwidth = "".join(chr(ord(char) + 0xFEE0) for char in backup.code)

        assert not MfaService.is_valid_backup_code_format(f"{backup.code}\n")
        assert not MfaService.verify_backup_code(f"{backup.code}\n", hashes)
        assert not MfaService.is_valid_backup_code_format(fullwidth)
        assert not MfaService.is_valid_backup_code_format("ıııııııı")

    def test_verify_with_no_hashes_fails(self):
        assert not MfaService.verify_backup_code("ABCD1234", [])
