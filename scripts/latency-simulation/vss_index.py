"""
Sharded vector index registry
=============================

Tracks how the vectors of one logical index are distributed across shards
and supports reshaping that distribution before it is handed to the latency
simulation.

A :class:`ShardedIndex` owns a set of :class:`ShardAssignment` records keyed
by shard identifier.  Identifiers start at ``1`` for the root shard and are
minted from a counter that only ever moves forward, so an identifier is
never reused even after its shard has been removed.

Callers never hold a live reference to a stored shard.  :meth:`ShardedIndex.shard`
returns a snapshot, and changes go through :meth:`ShardedIndex.edit_shard`,
:meth:`ShardedIndex.move_vectors` or :meth:`ShardedIndex.remove_shard`, each
of which either applies completely or leaves the registry untouched.
"""

from __future__ import annotations

import dataclasses
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Iterator, Sequence

from loguru import logger


ROOT_SHARD_ID = 1


# ---------------------------------------------------------------------------
# Errors
# ---------------------------------------------------------------------------

class ShardIndexError(Exception):
    """Base class for errors raised by :class:`ShardedIndex`."""


class ShardNotFoundError(ShardIndexError, LookupError):
    """The requested shard identifier is not part of the index."""

    def __init__(self, shard_id: int) -> None:
        super().__init__(f"shard {shard_id} does not exist")
        self.shard_id = shard_id


class SourceShardTooSmallError(ShardIndexError, ValueError):
    """A vector transfer asked for more vectors than the source shard holds."""

    def __init__(self, shard_id: int, available: int, requested: int) -> None:
        super().__init__(
            f"source shard {shard_id} holds {available:,} vectors, "
            f"cannot move {requested:,}"
        )
        self.shard_id = shard_id
        self.available = available
        self.requested = requested


class ShardRemovalError(ShardIndexError):
    """A shard could not be removed (it still holds vectors or is the last one)."""


class ShardEditInProgressError(ShardIndexError):
    """The shard is open in an :meth:`ShardedIndex.edit_shard` block."""

    def __init__(self, shard_id: int) -> None:
        super().__init__(f"shard {shard_id} is being edited")
        self.shard_id = shard_id


# ---------------------------------------------------------------------------
# Shard
# ---------------------------------------------------------------------------

@dataclass
class ShardAssignment:
    """The vectors of one index assigned to one shard."""
    index_id: int
    shard_id: int
    num_vectors: int
    vector_length: int

    def weight(self) -> int:
        """Work units to scan the shard: vectors times dimensions."""
        return self.num_vectors * self.vector_length

    def is_empty(self) -> bool:
        return self.num_vectors == 0


# ---------------------------------------------------------------------------
# Registry
# ---------------------------------------------------------------------------

class ShardedIndex:
    """All shards of one logical index plus the shard identifier counter.

    Parameters
    ----------
    index_id : int
        Stable identity of the index.
    num_vectors : int
        Vectors placed on the root shard.
    vector_length : int
        Dimensionality shared by every shard of the index.  Must be >= 1.
    """

    def __init__(
        self,
        index_id: int,
        num_vectors: int,
        vector_length: int,
    ) -> None:
        if vector_length < 1:
            raise ValueError(
                f"vector_length must be at least 1, got {vector_length}"
            )
        self.index_id = index_id
        self.vector_length = vector_length
        self._shards: dict[int, ShardAssignment] = {}
        self._editing: set[int] = set()
        self._highest_shard_id = ROOT_SHARD_ID - 1
        self._add_shard(num_vectors)

    @classmethod
    def from_shards(
        cls,
        index_id: int,
        vector_counts: Sequence[int],
        vector_length: int,
    ) -> ShardedIndex:
        """Create an index with one shard per entry of *vector_counts*.

        Shards receive identifiers ``1, 2, ...`` in the order of
        *vector_counts*.  An empty sequence yields a single empty root shard.

        Raises
        ------
        ValueError
            If any count is negative or *vector_length* is below 1.
        """
        counts = list(vector_counts)
        for count in counts:
            if count < 0:
                raise ValueError(
                    f"vector counts must be non-negative, got {count}"
                )
        if not counts:
            counts = [0]

        index = cls(index_id, counts[0], vector_length)
        for count in counts[1:]:
            index._add_shard(count)
        return index

    # -- queries ------------------------------------------------------------

    @property
    def num_vectors(self) -> int:
        """Total vectors across all shards, recomputed on every read."""
        return sum(shard.num_vectors for shard in self._shards.values())

    def __len__(self) -> int:
        """Same as :attr:`num_vectors`, so an index with no vectors is falsy."""
        return self.num_vectors

    def weight(self) -> int:
        return self.num_vectors * self.vector_length

    def is_empty(self) -> bool:
        return self.num_vectors == 0

    def shard_count(self) -> int:
        return len(self._shards)

    def shard_ids(self) -> list[int]:
        """All shard identifiers in ascending order."""
        return sorted(self._shards)

    def shard(self, shard_id: int) -> ShardAssignment:
        """Return a snapshot of the shard with *shard_id*.

        The snapshot is detached from the registry: modifying it has no
        effect on the index.

        Raises
        ------
        ShardNotFoundError
            If the index has no shard with this identifier.
        """
        return dataclasses.replace(self._get(shard_id))

    def __iter__(self) -> Iterator[ShardAssignment]:
        """Yield a snapshot of every shard, in no particular order."""
        for shard in list(self._shards.values()):
            yield dataclasses.replace(shard)

    def __repr__(self) -> str:
        return (
            f"ShardedIndex(index_id={self.index_id}, "
            f"num_vectors={self.num_vectors}, "
            f"vector_length={self.vector_length}, "
            f"shards={self.shard_count()})"
        )

    # -- mutation -----------------------------------------------------------

    def create_empty_shard(self) -> int:
        """Add a shard with no vectors and return its new identifier."""
        return self._add_shard(0)

    @contextmanager
    def edit_shard(self, shard_id: int) -> Iterator[ShardAssignment]:
        """Edit a shard in place within a ``with`` block.

        The block receives a working copy.  When the block exits normally the
        copy replaces the stored shard; when it raises, the shard is left as
        it was.  Only ``num_vectors`` may change and it must stay
        non-negative.

        While the block runs the shard is locked: :meth:`move_vectors`,
        :meth:`remove_shard` and a nested :meth:`edit_shard` touching it raise
        :class:`ShardEditInProgressError`.

        Raises
        ------
        ShardNotFoundError
            If the index has no shard with this identifier.
        ShardEditInProgressError
            If the shard is already being edited.
        ValueError
            If the edited copy is invalid; nothing is committed.
        """
        current = self._get(shard_id)
        self._check_not_editing(shard_id)
        working = dataclasses.replace(current)
        self._editing.add(shard_id)
        try:
            yield working
        finally:
            self._editing.discard(shard_id)

        if (
            working.shard_id != current.shard_id
            or working.index_id != current.index_id
            or working.vector_length != current.vector_length
        ):
            raise ValueError(
                f"only num_vectors of shard {shard_id} may be edited"
            )
        if working.num_vectors < 0:
            raise ValueError(
                f"shard {shard_id} cannot hold {working.num_vectors} vectors"
            )
        self._shards[shard_id] = working

    def move_vectors(
        self,
        source_shard_id: int,
        target_shard_id: int,
        amount: int,
    ) -> tuple[ShardAssignment, ShardAssignment]:
        """Move *amount* vectors from one shard to another.

        The source identifier is checked before the target identifier, and
        the size check only runs once both shards are known to exist.

        Returns
        -------
        tuple[ShardAssignment, ShardAssignment]
            Snapshots of the source and target shards after the move.

        Raises
        ------
        ShardNotFoundError
            If either shard does not exist.
        SourceShardTooSmallError
            If the source shard holds fewer than *amount* vectors.
        ShardEditInProgressError
            If either shard is open in an :meth:`edit_shard` block.
        ValueError
            If *amount* is negative.
        """
        if amount < 0:
            raise ValueError(f"amount must be non-negative, got {amount}")
        source = self._get(source_shard_id)
        target = self._get(target_shard_id)
        self._check_not_editing(source_shard_id)
        self._check_not_editing(target_shard_id)
        if source.num_vectors < amount:
            raise SourceShardTooSmallError(
                source_shard_id, source.num_vectors, amount,
            )

        source.num_vectors -= amount
        target.num_vectors += amount
        logger.debug(
            f"Index {self.index_id}: moved {amount} vectors from shard "
            f"{source_shard_id} to shard {target_shard_id}"
        )
        return self.shard(source_shard_id), self.shard(target_shard_id)

    def remove_shard(self, shard_id: int) -> ShardAssignment:
        """Remove an empty shard and return its final snapshot.

        The identifier is retired: :meth:`create_empty_shard` never hands it
        out again.

        Raises
        ------
        ShardNotFoundError
            If the index has no shard with this identifier.
        ShardRemovalError
            If the shard still holds vectors or is the only shard left.
        ShardEditInProgressError
            If the shard is open in an :meth:`edit_shard` block.
        """
        shard = self._get(shard_id)
        self._check_not_editing(shard_id)
        if not shard.is_empty():
            raise ShardRemovalError(
                f"shard {shard_id} still holds {shard.num_vectors:,} vectors"
            )
        if len(self._shards) == 1:
            raise ShardRemovalError(
                f"shard {shard_id} is the last shard of index {self.index_id}"
            )
        del self._shards[shard_id]
        logger.debug(f"Index {self.index_id}: removed shard {shard_id}")
        return shard

    # -- internals ----------------------------------------------------------

    def _get(self, shard_id: int) -> ShardAssignment:
        try:
            return self._shards[shard_id]
        except KeyError:
            raise ShardNotFoundError(shard_id) from None

    def _check_not_editing(self, shard_id: int) -> None:
        if shard_id in self._editing:
            raise ShardEditInProgressError(shard_id)

    def _add_shard(self, num_vectors: int) -> int:
        if num_vectors < 0:
            raise ValueError(
                f"vector counts must be non-negative, got {num_vectors}"
            )
        self._highest_shard_id += 1
        shard_id = self._highest_shard_id
        self._shards[shard_id] = ShardAssignment(
            index_id=self.index_id,
            shard_id=shard_id,
            num_vectors=num_vectors,
            vector_length=self.vector_length,
        )
        logger.debug(
            f"Index {self.index_id}: created shard {shard_id} "
            f"with {num_vectors} vectors"
        )
        return shard_id
