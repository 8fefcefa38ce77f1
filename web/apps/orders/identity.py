"""Customer-facing order identifiers.

Confirmation numbers look like ``ORD-LZ3K9QX1-7F2KQ9``: the creation time in
milliseconds and six random characters, both base 36, upper-cased.
Guest customer ids are a keyed hash of the checkout email and phone so the
same guest always maps to the same id while the contact details cannot be
recovered from it.
"""

import hashlib
import hmac
import re
import secrets
import string
import time

_ALPHABET = string.digits + string.ascii_uppercase
_NON_DIGITS = re.compile(r"\D")


def to_base36(n: int) -> str:
    if n < 0:
        raise ValueError("negative")
    if n == 0:
        return "0"
    out = []
    while n:
        n, rem = divmod(n, 36)
        out.append(_ALPHABET[rem])
    return "".join(reversed(out))


def digits_only(value: str) -> str:
    return _NON_DIGITS.sub("", value or "")


def generate_confirmation_number(now_ms: int | None = None) -> str:
    """Return a fresh ``ORD-<time>-<random>`` confirmation number."""
    if now_ms is None:
        now_ms = time.time_ns() // 1_000_000
    suffix = "".join(secrets.choice(_ALPHABET) for _ in range(6))
    return f"ORD-{to_base36(now_ms)}-{suffix}"


def guest_customer_id(email: str, phone: str, secret: str | None = None) -> str:
    """Deterministic, non-reversible id for a guest checkout.

    Email is case-folded and only the last ten phone digits are used, so
    ``+91 98765 43210`` and ``9876543210`` resolve to the same guest.
    """
    if secret is None:
        from django.conf import settings

        secret = settings.GUEST_ID_SECRET
    material = f"{(email or '').strip().lower()}_{digits_only(phone)[-10:]}"
    digest = hmac.new(secret.encode("utf-8"), material.encode("utf-8"), hashlib.sha256).hexdigest()
    return f"guest_{digest[:20]}"
