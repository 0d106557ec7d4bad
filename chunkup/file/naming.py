"""Display-name helpers for components."""

import unicodedata
from typing import Optional, Tuple


def normalize_name(value: Optional[str]) -> str:
    """Return *value* in NFC form with surrounding whitespace removed."""
    if not value:
        return ''
    return unicodedata.normalize('NFC', value).strip()


def split_file_extension(file_name: str) -> Tuple[str, str]:
    """
    Split *file_name* into (stem, extension).

    The extension keeps its leading dot. Dot-files such as ``.bashrc``
    have no extension.

    >>> split_file_extension('data.json')
    ('data', '.json')
    >>> split_file_extension('archive.tar.gz')
    ('archive.tar', '.gz')
    """
    index = file_name.rfind('.')
    if index <= 0:
        return file_name, ''
    return file_name[:index], file_name[index:]
