"""Secret codec for per-group API keys.

Group API keys are referenced from GroupConfig.api_key_secret_ref and
resolved through a codec right before use. The default codec stores the key
itself as the reference and relies on the SQLCipher-encrypted database for
protection at rest.
"""

from typing import Protocol


class SecretCodec(Protocol):
    """Turns plaintext credentials into stored references and back."""

    def conceal(self, plaintext: str) -> str:
        ...

    def reveal(self, ref: str) -> str:
        ...


class StoredSecretCodec:
    """Codec whose references are the credentials themselves."""

    def conceal(self, plaintext: str) -> str:
        if not plaintext:
            raise ValueError("Cannot store an empty credential")
        return plaintext

    def reveal(self, ref: str) -> str:
        if not ref:
            raise ValueError("Group has no stored credential")
        return ref
