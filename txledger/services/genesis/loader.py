"""
Genesis Loader

Reads the genesis snapshot: chain metadata plus the balances every replay
starts from. The file is opened read-only, exactly once per start, and is
never written back.
"""

from pathlib import Path
from typing import Union

from pydantic import ValidationError

from txledger.models.genesis import Genesis


class GenesisError(Exception):
    """The genesis snapshot is missing, unreadable or malformed."""

    def __init__(self, path: Union[str, Path], message: str):
        self.path = str(path)
        super().__init__(f"Invalid genesis file {path}: {message}")


def load_genesis(path: Union[str, Path]) -> Genesis:
    """
    Load and validate a genesis snapshot.

    Args:
        path: Path to the genesis JSON document

    Returns:
        The immutable Genesis snapshot

    Raises:
        GenesisError: If the file cannot be read or does not match the schema
    """
    path = Path(path)
    try:
        raw = path.read_bytes()
    except OSError as e:
        raise GenesisError(path, f"cannot read file ({e})") from e

    if not raw.strip():
        raise GenesisError(path, "file is empty")

    try:
        return Genesis.model_validate_json(raw)
    except ValidationError as e:
        raise GenesisError(path, f"{e.error_count()} validation error(s): {e}") from e
