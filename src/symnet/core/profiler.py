"""Memory profile of tensors allocated while a network is launched."""

from __future__ import annotations

from dataclasses import dataclass


@dataclass
class ContractionProfiler:
    """Counts pairwise contractions and tracks live intermediate elements.

    A :class:`~symnet.network.network.Network` owns one profiler (or shares
    one passed in by the caller). ``launch`` records every intermediate it
    allocates and releases it once the parent node has consumed it, so
    ``max_elem_num`` is the peak number of intermediate elements alive at
    the same time.

    Attributes:
        counter:      Number of pairwise contractions performed.
        elem_num:     Elements currently held by live intermediates.
        max_elem_num: Peak of ``elem_num`` since the last :meth:`reset`.
    """

    counter: int = 0
    elem_num: int = 0
    max_elem_num: int = 0

    def record(self, n_elements: int) -> None:
        self.counter += 1
        self.elem_num += n_elements
        self.max_elem_num = max(self.max_elem_num, self.elem_num)

    def release(self, n_elements: int) -> None:
        self.elem_num = max(0, self.elem_num - n_elements)

    def reset(self) -> None:
        self.counter = 0
        self.elem_num = 0
        self.max_elem_num = 0
