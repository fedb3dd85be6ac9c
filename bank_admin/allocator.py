"""
Account Number Allocator

Account numbers have the form ACC000001: a fixed prefix followed by a
six-digit zero-padded sequence number. Numbers are never issued twice, even
after the account holding one has been deleted.
"""

from typing import Callable, TypeVar

from .storage import StorageInterface, DuplicateKeyError

T = TypeVar("T")

ACCOUNT_PREFIX = "ACC"
SEQUENCE_WIDTH = 6
SEQUENCES_TABLE = "sequences"


def format_account_number(sequence: int) -> str:
    """Format a sequence number as an account number"""
    return f"{ACCOUNT_PREFIX}{sequence:0{SEQUENCE_WIDTH}d}"


class AccountNumberAllocator:
    """
    Derives the next account number from the live account count and the
    highest number issued so far.

    The candidate is max(count + 1, high water + 1), advanced past any number
    already in use. Claiming happens in ``allocate_and_insert``: the caller's
    insert runs with the candidate, and a primary-key collision (another
    writer claimed the same number between the check and the insert) moves on to the
    next candidate. After a successful insert the high-water mark in the
    ``sequences`` table is raised to the claimed sequence; it only ever grows.
    """

    def __init__(self, storage: StorageInterface, table: str = "accounts",
                 key_column: str = "account_no"):
        self.storage = storage
        self.table = table
        self.key_column = key_column

    def _in_use(self, account_no: str) -> bool:
        return self.storage.exists(self.table, [(self.key_column, "=", account_no)])

    def high_water(self) -> int:
        """Highest sequence ever issued for this table (0 when none)"""
        row = self.storage.load(SEQUENCES_TABLE, self.table)
        return row["high_water"] if row else 0

    def _record_issued(self, sequence: int) -> None:
        # Conditional write keeps the mark monotonic under concurrent allocators
        while not self.storage.update(
            SEQUENCES_TABLE, self.table, {"high_water": sequence},
            where=[("high_water", "<", sequence)]
        ):
            if self.storage.load(SEQUENCES_TABLE, self.table) is not None:
                return  # already at or above sequence
            try:
                self.storage.insert(SEQUENCES_TABLE, {"name": self.table, "high_water": sequence})
                return
            except DuplicateKeyError:
                continue  # row created concurrently; retry the conditional update

    def _start(self) -> int:
        return max(self.storage.count(self.table), self.high_water()) + 1

    def next_candidate(self, start: int) -> int:
        """Return the first sequence >= start whose number is not in use"""
        sequence = start
        while self._in_use(format_account_number(sequence)):
            sequence += 1
        return sequence

    def next_account_number(self) -> str:
        """Look up the next free account number without claiming it"""
        return format_account_number(self.next_candidate(self._start()))

    def allocate_and_insert(self, insert: Callable[[str], T]) -> T:
        """
        Allocate a number and claim it by running ``insert(account_no)``.

        Retries with the following candidate whenever the insert hits a
        duplicate key, so the returned value always corresponds to exactly one
        newly inserted row.
        """
        sequence = self.next_candidate(self._start())
        while True:
            account_no = format_account_number(sequence)
            try:
                result = insert(account_no)
            except DuplicateKeyError:
                sequence = self.next_candidate(sequence + 1)
                continue
            self._record_issued(sequence)
            return result
