"""
Shuffle: group mapped values by partition key.
"""

from collections.abc import Iterable, Iterator

from rep_digest.core.models import PartitionValue


class PartitionStore:
    """
    Ordered multimap from partition key to the values emitted for it.

    Values keep the order in which they were added, which the pipeline makes
    equal to input enumeration order. Keys iterate in first-seen order, but
    no reducer may rely on that.
    """

    def __init__(self):
        self._partitions: dict[str, list[PartitionValue]] = {}
        self._value_count = 0

    @classmethod
    def group(cls, pairs: Iterable[tuple[str, PartitionValue]]) -> "PartitionStore":
        store = cls()
        for key, value in pairs:
            store.add(key, value)
        return store

    def add(self, key: str, value: PartitionValue) -> None:
        self._partitions.setdefault(key, []).append(value)
        self._value_count += 1

    def keys(self) -> list[str]:
        return list(self._partitions)

    def values(self, key: str) -> tuple[PartitionValue, ...]:
        return tuple(self._partitions[key])

    def items(self) -> Iterator[tuple[str, tuple[PartitionValue, ...]]]:
        for key, values in self._partitions.items():
            yield key, tuple(values)

    @property
    def value_count(self) -> int:
        return self._value_count

    def __contains__(self, key: object) -> bool:
        return key in self._partitions

    def __len__(self) -> int:
        return len(self._partitions)

    def __repr__(self) -> str:
        return f"PartitionStore(keys={len(self)}, values={self.value_count})"
