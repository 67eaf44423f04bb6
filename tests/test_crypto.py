"""Tests for the AES-256-GCM secret cipher and preview masking."""
import pytest

from prompt_keeper.exceptions import DecryptionError
from prompt_keeper.vault import KeyConfig, SecretCipher, mask_preview


def _flip_first_byte(hex_value: str) -> str:
    raw = bytearray(bytes.fromhex(hex_value))
    raw[0] ^= 0x01
    return raw.hex()


class TestRoundTrip:
    """Tests for encrypt/decrypt."""

    @pytest.mark.parametrize("plaintext", [
        "sk-test-123456789",
        "",
        "clé-secrète-🔑",
        "x" * 4096,
    ])
    def test_decrypt_reproduces_plaintext(self, cipher, plaintext):
        sealed = cipher.encrypt(plaintext)
        assert cipher.decrypt(*sealed) == plaintext

    def test_output_sizes(self, cipher):
        """96-bit nonce and 128-bit tag, hex-encoded."""
        sealed = cipher.encrypt("abc")
        assert len(sealed.iv) == 24
        assert len(sealed.auth_tag) == 32
        assert len(sealed.ciphertext) == 6

    def test_fresh_nonce_per_call(self, cipher):
        """Encrypting the same plaintext twice never reuses a nonce."""
        nonces = {cipher.encrypt("same").iv for _ in range(200)}
        assert len(nonces) == 200

    def test_ciphertext_differs_between_calls(self, cipher):
        assert cipher.encrypt("same").ciphertext != cipher.encrypt("same").ciphertext


class TestTampering:
    """Any modified part must fail authentication."""

    @pytest.mark.parametrize("field", ["ciphertext", "iv", "auth_tag"])
    def test_flipped_byte_fails(self, cipher, field):
        sealed = cipher.encrypt("sk-test-123456789")
        tampered = sealed._replace(**{field: _flip_first_byte(getattr(sealed, field))})
        with pytest.raises(DecryptionError):
            cipher.decrypt(*tampered)

    def test_wrong_key_fails(self, cipher):
        sealed = cipher.encrypt("sk-test-123456789")
        other = SecretCipher(KeyConfig(master_key=bytes(32), session_secret="s"))
        with pytest.raises(DecryptionError):
            other.decrypt(*sealed)

    def test_parts_are_not_interchangeable(self, cipher):
        """An iv from another encryption does not decrypt this ciphertext."""
        first = cipher.encrypt("sk-test-123456789")
        second = cipher.encrypt("sk-test-123456789")
        with pytest.raises(DecryptionError):
            cipher.decrypt(first.ciphertext, second.iv, first.auth_tag)

    @pytest.mark.parametrize("ciphertext,iv,auth_tag", [
        ("zz", "00" * 12, "00" * 16),
        ("00", "00" * 8, "00" * 16),
        ("00", "00" * 12, "00" * 4),
    ])
    def test_malformed_parts_fail(self, cipher, ciphertext, iv, auth_tag):
        with pytest.raises(DecryptionError):
            cipher.decrypt(ciphertext, iv, auth_tag)


class TestMaskPreview:
    """Tests for the masked display form."""

    def test_long_secret(self):
        assert mask_preview("sk-test-123456789") == "sk-test...6789"

    def test_threshold(self):
        """Eleven characters or fewer are fully masked; twelve are not."""
        assert mask_preview("a" * 11) == "****"
        assert mask_preview("abcdefghijkl") == "abcdefg...ijkl"

    def test_empty(self):
        assert mask_preview("") == "****"
