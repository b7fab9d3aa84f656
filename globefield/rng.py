"""Seeded random streams for particle and streamline placement.

Every consumer draws from its own named branch of the engine seed, so
respawning particles never shifts the streamline starts and two engines built
with the same seed place everything identically.
"""

from __future__ import annotations

from dataclasses import dataclass
import hashlib

import numpy as np

_SEED_MASK = (1 << 64) - 1


def branch_entropy(seed: int, path: tuple[str, ...]) -> int:
    """128 bits of entropy for the branch `path` under `seed`."""

    label = "/".join((str(int(seed) & _SEED_MASK), *path)).encode("utf-8")
    digest = hashlib.blake2b(label, digest_size=16, person=b"globefield").digest()
    return int.from_bytes(digest, byteorder="little")


@dataclass(frozen=True)
class RngStream:
    """A branch of the engine seed, named by the keys it was forked with."""

    seed: int
    path: tuple[str, ...] = ()

    @property
    def name(self) -> str:
        return "/".join(self.path) or "root"

    def fork(self, key: str) -> RngStream:
        if not key or "/" in key:
            raise ValueError(f"invalid stream key {key!r}")
        return RngStream(self.seed, self.path + (key,))

    def generator(self) -> np.random.Generator:
        return np.random.default_rng(np.random.SeedSequence(branch_entropy(self.seed, self.path)))
