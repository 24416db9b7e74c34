import hashlib
import secrets
import time

from config import get_settings

_DIGITS = "0123456789abcdefghijklmnopqrstuvwxyz"


def _base36(value: int) -> str:
    out = ""
    while True:
        value, rem = divmod(value, 36)
        out = _DIGITS[rem] + out
        if value == 0:
            return out


def generate_signature_token() -> str:
    """Token de firma: SIG-<timestamp base36>-<16 hex aleatorios>-<checksum 6>."""
    ts = _base36(int(time.time() * 1000))
    random_part = secrets.token_hex(8)
    checksum = hashlib.sha256(
        f"{ts}-{random_part}-{get_settings().pin_salt}".encode()
    ).hexdigest()[:6]
    return f"SIG-{ts}-{random_part}-{checksum}".upper()
