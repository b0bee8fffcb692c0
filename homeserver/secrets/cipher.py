"""Passphrase encryption for the secrets archive.

The format is the one written by ``openssl enc -aes-256-cbc -pbkdf2``:
``Salted__`` followed by an 8 byte random salt and the AES-256-CBC
ciphertext (PKCS#7 padded). Key and IV are derived together with
PBKDF2-HMAC-SHA256 over 10000 iterations, so archives written by the old
shell tooling can still be restored and vice versa.
"""

import logging
import os

from cryptography.hazmat.primitives import hashes, padding
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

from homeserver.utils.archive import Archiver
from homeserver.utils.errors import ArchiveError, DecryptionError, SecurityError, create_error_suggestions

logger = logging.getLogger(__name__)

MAGIC = b"Salted__"
SALT_SIZE = 8
KEY_SIZE = 32
IV_SIZE = 16
PBKDF2_ITERATIONS = 10000


class SecretsCipher:
    """Encrypts and decrypts directory trees with a passphrase."""

    def __init__(self, archiver: Archiver = None, iterations: int = PBKDF2_ITERATIONS, verbose: bool = False):
        """
        Initialize the cipher.

        Args:
            archiver: Archiver used to pack and unpack trees
            iterations: PBKDF2 iteration count
            verbose: Enable verbose output
        """
        self.archiver = archiver or Archiver(compresslevel=9)
        self.iterations = iterations
        self.verbose = verbose

    def _derive(self, passphrase: str, salt: bytes):
        kdf = PBKDF2HMAC(
            algorithm=hashes.SHA256(),
            length=KEY_SIZE + IV_SIZE,
            salt=salt,
            iterations=self.iterations,
        )
        material = kdf.derive(passphrase.encode("utf-8"))
        return material[:KEY_SIZE], material[KEY_SIZE:]

    def encrypt(self, data: bytes, passphrase: str) -> bytes:
        """
        Encrypt bytes with a fresh random salt.

        Args:
            data: Plaintext
            passphrase: Passphrase to derive the key from

        Returns:
            bytes: OpenSSL-compatible ciphertext
        """
        if not passphrase:
            raise SecurityError("An empty passphrase cannot be used for encryption")

        salt = os.urandom(SALT_SIZE)
        key, iv = self._derive(passphrase, salt)

        padder = padding.PKCS7(algorithms.AES.block_size).padder()
        padded = padder.update(data) + padder.finalize()

        encryptor = Cipher(algorithms.AES(key), modes.CBC(iv)).encryptor()
        return MAGIC + salt + encryptor.update(padded) + encryptor.finalize()

    def decrypt(self, blob: bytes, passphrase: str) -> bytes:
        """
        Decrypt bytes produced by encrypt() or openssl.

        Args:
            blob: Ciphertext including the salt header
            passphrase: Passphrase used at encryption time

        Returns:
            bytes: Plaintext

        Raises:
            DecryptionError: On a malformed blob or a wrong passphrase
        """
        if not blob.startswith(MAGIC) or len(blob) < len(MAGIC) + SALT_SIZE + IV_SIZE:
            raise DecryptionError("Encrypted data is missing the salt header")

        salt = blob[len(MAGIC):len(MAGIC) + SALT_SIZE]
        body = blob[len(MAGIC) + SALT_SIZE:]
        if len(body) % IV_SIZE:
            raise DecryptionError("Encrypted data is truncated")

        key, iv = self._derive(passphrase, salt)
        decryptor = Cipher(algorithms.AES(key), modes.CBC(iv)).decryptor()
        padded = decryptor.update(body) + decryptor.finalize()

        try:
            unpadder = padding.PKCS7(algorithms.AES.block_size).unpadder()
            return unpadder.update(padded) + unpadder.finalize()
        except ValueError as e:
            raise DecryptionError(
                "Bad decrypt: wrong passphrase or corrupted data",
                suggestions=create_error_suggestions("decryption_failed"),
            ) from e

    def encrypt_tree(self, parent_dir: str, member: str, output_path: str, passphrase: str) -> str:
        """
        Archive ``parent_dir/member`` and write it encrypted.

        Nothing is written when archiving fails, so the plaintext never lands
        on disk.

        Args:
            parent_dir: Directory the archive is rooted at
            member: Directory name to archive
            output_path: Encrypted file to write
            passphrase: Encryption passphrase

        Returns:
            str: Path to the encrypted archive
        """
        blob = self.encrypt(self.archiver.create_bytes(parent_dir, member), passphrase)

        with open(output_path, "wb") as f:
            f.write(blob)
        os.chmod(output_path, 0o600)

        if self.verbose:
            logger.debug("Encrypted %s into %s", os.path.join(parent_dir, member), output_path)

        return output_path

    def decrypt_tree(self, input_path: str, destination: str, passphrase: str) -> None:
        """
        Decrypt an archive written by encrypt_tree() and extract it.

        Args:
            input_path: Encrypted archive
            destination: Directory to extract into
            passphrase: Decryption passphrase

        Raises:
            DecryptionError: On a wrong passphrase or unreadable content
        """
        with open(input_path, "rb") as f:
            plaintext = self.decrypt(f.read(), passphrase)

        try:
            self.archiver.extract_bytes(plaintext, destination)
        except ArchiveError as e:
            raise DecryptionError(
                f"Decrypted data from {input_path} is not a valid archive",
                details=str(e),
                suggestions=create_error_suggestions("decryption_failed"),
            ) from e
