import re

_NON_DIGITS = re.compile(r'\D')

DEFAULT_COUNTRY_CODE = '55'


def normalize_phone(raw: str, country_code: str = DEFAULT_COUNTRY_CODE) -> str:
    """Return ``raw`` as bare digits with ``country_code`` prepended when missing.

    ``"(11) 99999-9999"`` becomes ``"5511999999999"``; a number that already
    starts with the country code is left as is. Raises ``ValueError`` when no
    digits remain.
    """
    digits = _NON_DIGITS.sub('', raw or '')
    if not digits:
        raise ValueError('Phone number has no digits.')

    if not digits.startswith(country_code):
        digits = f'{country_code}{digits}'

    return digits


def phones_match(left: str, right: str, country_code: str = DEFAULT_COUNTRY_CODE) -> bool:
    try:
        return normalize_phone(left, country_code) == normalize_phone(right, country_code)
    except ValueError:
        return False
