"""Sequential borrowing codes (BR000001, BR000002, ...)."""
from __future__ import annotations

import re
from typing import Optional

BORROWING_CODE_PREFIX = 'BR'
BORROWING_CODE_WIDTH = 6

_DIGITS = re.compile(r'(\d+)$')


def generate_borrowing_code(last_code: Optional[str]) -> str:
    next_number = 1
    if last_code:
        match = _DIGITS.search(last_code)
        if match:
            next_number = int(match.group(1)) + 1
    return f'{BORROWING_CODE_PREFIX}{next_number:0{BORROWING_CODE_WIDTH}d}'
