from typing import Optional
from peofiles.storage.base import BlobStore


def extension_of(original_name: Optional[str], default: str = "bin") -> str:
    """
    Whatever follows the last "." of the original filename.

    Names without a dot, or ending in one, get the default extension.
    """
    if not original_name or "." not in original_name:
        return default
    extension = original_name.rsplit(".", 1)[1]
    return extension or default


def display_name(adjuster: str, sequence: int, extension: str) -> str:
    return f"{adjuster}_{sequence}.{extension}"


class NamingSequencer:
    """
    Sequential display names per (office, adjuster) scope.

    The store is counted once per batch, then numbers are handed out in
    memory. Two sessions uploading into the same scope at the same time can
    both read the same count and produce duplicate names. This is a known
    limitation and no locking is done.
    """

    def __init__(self, store: BlobStore, default_extension: str = "bin"):
        self.store = store
        self.default_extension = default_extension

    def next_sequence(self, office: str, adjuster: str) -> int:
        return self.store.count_by_scope(office, adjuster) + 1

    def name_batch(self, office: str, adjuster: str, original_names: list[Optional[str]]) -> list[str]:
        """Display names for files selected together, numbered consecutively"""
        if not original_names:
            return []
        start = self.next_sequence(office, adjuster)
        return [
            display_name(adjuster, start + offset, extension_of(original_name, self.default_extension))
            for offset, original_name in enumerate(original_names)
        ]
