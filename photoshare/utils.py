import math
import os
import secrets
from typing import Iterable, Optional, Set

from .config import PAGE_SIZE, RECOVERY_CODE_CHARACTERS, RECOVERY_CODE_LENGTH

# --- Helper Functions ---

def normalize_tags(raw_tags: Iterable[str]) -> Set[str]:
    """Trims, lowercases and deduplicates raw tag strings, dropping empty ones."""
    return {t.strip().lower() for t in raw_tags if t and t.strip()}


def get_offset(page: int, page_size: int = PAGE_SIZE) -> int:
    """Row offset for a 1-based page number. Pages below 1 map to offset 0."""
    return max((page - 1) * page_size, 0)


def count_pages(total: int, page_size: int = PAGE_SIZE) -> int:
    return int(math.ceil(total / page_size))


def generate_recovery_code(length: int = RECOVERY_CODE_LENGTH) -> str:
    return ''.join(secrets.choice(RECOVERY_CODE_CHARACTERS) for _ in range(length))


def get_nested_path_for_filename(filename: str) -> str:
    """
    Generates a nested directory path from the first four characters of a filename's stem.
    A filename like 'd41d8cd98f00b204e9800998ecf8427e.jpg' results in 'd4/1d'.
    This helps to avoid having too many files in a single directory.
    """
    name_part = os.path.splitext(filename)[0]
    if len(name_part) < 4:
        return ""
    return os.path.join(name_part[:2], name_part[2:4])


def parse_id(value) -> Optional[int]:
    """Parses a path identifier. Anything that is not an integer gives None."""
    try:
        return int(value)
    except (TypeError, ValueError):
        return None
