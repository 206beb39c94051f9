"""Member PII decryption backed by PostgreSQL pgcrypto."""
from __future__ import annotations

from typing import Tuple

from django.conf import settings
from django.core.exceptions import ImproperlyConfigured
from django.db import connection as default_connection

MIN_KEY_LENGTH = 32


def get_encryption_key() -> str:
    key = getattr(settings, "MEMBER_ENCRYPTION_KEY", "") or ""
    if len(key) < MIN_KEY_LENGTH:
        raise ImproperlyConfigured(
            f"MEMBER_ENCRYPTION_KEY must be set and at least {MIN_KEY_LENGTH} characters long."
        )
    return key


def decrypt_field(connection, ciphertext) -> str:
    """Decrypt a ``pgp_sym_encrypt`` value on the given connection."""

    with connection.cursor() as cursor:
        cursor.execute(
            "SELECT pgp_sym_decrypt(%s::bytea, %s)",
            [bytes(ciphertext), get_encryption_key()],
        )
        row = cursor.fetchone()
    return row[0]


def decrypt_member_contact(member, connection=None) -> Tuple[str, str]:
    """Return ``(cpf, phone)`` in clear text for a member row."""

    conn = connection or default_connection
    return decrypt_field(conn, member.cpf), decrypt_field(conn, member.phone)
