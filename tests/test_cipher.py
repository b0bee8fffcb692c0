"""Tests for secrets encryption."""

import filecmp
import os
import stat
from unittest.mock import patch

import pytest

from homeserver.secrets.cipher import MAGIC, SALT_SIZE, SecretsCipher
from homeserver.secrets.passphrase import PASSPHRASE_ENV, obtain_passphrase
from homeserver.utils.errors import DecryptionError, SecurityError


class TestSecretsCipher:
    """Test passphrase encryption of the secrets tree."""

    def setup_method(self):
        """Setup test environment."""
        self.cipher = SecretsCipher()

    def test_encrypt_has_openssl_header(self):
        blob = self.cipher.encrypt(b"payload", "passphrase")

        assert blob.startswith(MAGIC)
        assert (len(blob) - len(MAGIC) - SALT_SIZE) % 16 == 0

    def test_encrypt_uses_fresh_salt(self):
        first = self.cipher.encrypt(b"payload", "passphrase")
        second = self.cipher.encrypt(b"payload", "passphrase")

        assert first != second

    def test_decrypt_round_trip(self):
        blob = self.cipher.encrypt(b"payload" * 100, "passphrase")

        assert self.cipher.decrypt(blob, "passphrase") == b"payload" * 100

    def test_empty_passphrase_rejected(self):
        with pytest.raises(SecurityError):
            self.cipher.encrypt(b"payload", "")

    def test_decrypt_rejects_missing_header(self):
        with pytest.raises(DecryptionError):
            self.cipher.decrypt(b"not encrypted at all, just text", "passphrase")

    def test_decrypt_rejects_truncated_data(self):
        blob = self.cipher.encrypt(b"payload" * 10, "passphrase")

        with pytest.raises(DecryptionError):
            self.cipher.decrypt(blob[:-5], "passphrase")

    def test_tree_round_trip(self, config_dir, temp_directory):
        output = os.path.join(temp_directory, "secrets.tar.gz.enc")
        restore_dir = os.path.join(temp_directory, "restore")

        self.cipher.encrypt_tree(config_dir, "secrets", output, "correct horse")
        self.cipher.decrypt_tree(output, restore_dir, "correct horse")

        comparison = filecmp.dircmp(os.path.join(config_dir, "secrets"), os.path.join(restore_dir, "secrets"))
        assert comparison.left_only == []
        assert comparison.right_only == []
        _, mismatch, errors = filecmp.cmpfiles(
            os.path.join(config_dir, "secrets"),
            os.path.join(restore_dir, "secrets"),
            ["db_password", "jwt_key"],
            shallow=False,
        )
        assert mismatch == []
        assert errors == []

    def test_tree_is_written_private(self, config_dir, temp_directory):
        output = os.path.join(temp_directory, "secrets.tar.gz.enc")

        self.cipher.encrypt_tree(config_dir, "secrets", output, "correct horse")

        assert stat.S_IMODE(os.stat(output).st_mode) == 0o600

    def test_tree_wrong_passphrase(self, config_dir, temp_directory):
        output = os.path.join(temp_directory, "secrets.tar.gz.enc")
        restore_dir = os.path.join(temp_directory, "restore")
        self.cipher.encrypt_tree(config_dir, "secrets", output, "correct horse")

        with pytest.raises(DecryptionError):
            self.cipher.decrypt_tree(output, restore_dir, "battery staple")

        assert not os.path.exists(os.path.join(restore_dir, "secrets", "db_password"))


class TestObtainPassphrase:
    """Test where the passphrase comes from."""

    def test_environment_wins(self):
        with patch.dict(os.environ, {PASSPHRASE_ENV: "from-env"}):
            with patch("homeserver.secrets.passphrase.click.prompt") as mock_prompt:
                assert obtain_passphrase("Passphrase") == "from-env"

        mock_prompt.assert_not_called()

    def test_non_interactive_never_prompts(self):
        with patch.dict(os.environ):
            os.environ.pop(PASSPHRASE_ENV, None)
            with patch("homeserver.secrets.passphrase.click.prompt") as mock_prompt:
                assert obtain_passphrase("Passphrase", non_interactive=True) is None

        mock_prompt.assert_not_called()

    def test_prompt_with_confirmation(self):
        with patch.dict(os.environ):
            os.environ.pop(PASSPHRASE_ENV, None)
            with patch("homeserver.secrets.passphrase.click.prompt", return_value="typed") as mock_prompt:
                assert obtain_passphrase("Passphrase", confirm=True) == "typed"

        assert mock_prompt.call_args[1]["hide_input"] is True
        assert mock_prompt.call_args[1]["confirmation_prompt"] is True

    def test_prompt_without_terminal_returns_none(self):
        with patch.dict(os.environ):
            os.environ.pop(PASSPHRASE_ENV, None)
            with patch("click.termui.hidden_prompt_func", side_effect=EOFError):
                assert obtain_passphrase("Passphrase", confirm=True) is None
