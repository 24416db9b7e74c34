import re
from typing import Optional

_CLEAN_RE = re.compile(r"[^0-9kK]")


def clean_rut(rut: Optional[str]) -> str:
    return _CLEAN_RE.sub("", rut or "").upper()


def _check_digit(body: str) -> str:
    total, factor = 0, 2
    for digit in reversed(body):
        total += int(digit) * factor
        factor = 2 if factor == 7 else factor + 1
    rest = 11 - (total % 11)
    if rest == 11:
        return "0"
    if rest == 10:
        return "K"
    return str(rest)


def format_rut(rut: str) -> Optional[str]:
    """Devuelve el RUT como 12.345.678-5, o None si el dígito verificador no cuadra."""
    cleaned = clean_rut(rut)
    if len(cleaned) < 2:
        return None
    body, dv = cleaned[:-1], cleaned[-1]
    if not body.isdigit() or _check_digit(body) != dv:
        return None
    body = str(int(body))
    groups = []
    while body:
        groups.insert(0, body[-3:])
        body = body[:-3]
    return f"{'.'.join(groups)}-{dv}"
