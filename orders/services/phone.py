# orders/services/phone.py

"""
MSISDN normalization for M-Pesa.

Accepted inputs (spaces, dashes and a leading "+" are ignored):
- 07XXXXXXXX / 01XXXXXXXX   (local)
- 7XXXXXXXX  / 1XXXXXXXX    (local, no trunk zero)
- 2547XXXXXXXX / 2541XXXXXXXX

Canonical output: 254XXXXXXXXX (12 digits).
"""

import re

from orders.services.exceptions import InvalidPhoneNumberError

_STRIP = re.compile(r"[\s\-()]")
_CANONICAL = re.compile(r"^254[17]\d{8}$")


def normalize_msisdn(raw) -> str:
    value = _STRIP.sub("", str(raw or "")).lstrip("+")

    if not value.isdigit():
        raise InvalidPhoneNumberError()

    if len(value) == 10 and value[:2] in ("07", "01"):
        value = "254" + value[1:]
    elif len(value) == 9 and value[0] in ("7", "1"):
        value = "254" + value

    if not _CANONICAL.match(value):
        raise InvalidPhoneNumberError()

    return value
