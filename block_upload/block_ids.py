"""
Block identifier scheme.

Azure requires every block id within one blob to be a base64 string of the
same length, so the index is zero-padded to a fixed width before encoding.
Assembly order comes only from the list passed at commit, never from the id
value itself.
"""

import base64
import binascii
from typing import Iterable

from block_upload.errors import InvalidConfiguration

_PREFIX = "block-"
_WIDTH = 12

MAX_INDEX = 10**_WIDTH - 1


def block_id_for(index: int) -> str:
    if isinstance(index, bool) or not isinstance(index, int):
        raise InvalidConfiguration(f"Block index must be an int, got {index!r}.")
    if index < 0 or index > MAX_INDEX:
        raise InvalidConfiguration(
            f"Block index {index} is outside 0..{MAX_INDEX}."
        )
    raw = f"{_PREFIX}{index:0{_WIDTH}d}"
    return base64.b64encode(raw.encode("ascii")).decode("ascii")


def index_for(block_id: str) -> int:
    """Decode a block id produced by block_id_for back into its index."""
    try:
        raw = base64.b64decode(block_id.encode("ascii"), validate=True).decode("ascii")
    except (binascii.Error, UnicodeError, AttributeError, ValueError):
        raise InvalidConfiguration(f"Malformed block id: {block_id!r}.")

    digits = raw[len(_PREFIX):]
    if (
        not raw.startswith(_PREFIX)
        or len(digits) != _WIDTH
        or not digits.isdigit()
    ):
        raise InvalidConfiguration(f"Malformed block id: {block_id!r}.")
    return int(digits)


def ordered_block_ids(count: int) -> list[str]:
    return [block_id_for(i) for i in range(count)]


def check_ascending(block_ids: Iterable[str]) -> list[str]:
    """Fail fast unless block_ids are exactly the ids for 0..n-1, in order.

    Returns the ids as a list so callers can pass generators.
    """
    ids = list(block_ids)
    if not ids:
        raise InvalidConfiguration("Block id list is empty.")

    for position, block_id in enumerate(ids):
        index = index_for(block_id)
        if index != position:
            raise InvalidConfiguration(
                f"Block id at position {position} is for chunk {index}; "
                "ids must be in ascending chunk order with no gaps."
            )
    return ids
