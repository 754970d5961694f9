"""hirlint/pipeline.py – per-block analysis and the multi-block driver.

One implementation block is analysed in two phases::

    COLLECT   scan(block) → build_index(bindings)        (collection.py)
    SCAN      traverse(method) → first_match(occ, index)  (walker.py,
                                                           equivalence.py)

Blocks share nothing, so :func:`analyze_blocks` may run them on a thread
pool.  Each block returns its own finding tuple; the tuples are merged and
sorted by source location, which keeps the output identical whatever the
worker count or completion order.  Cancellation is checked only before a
block starts, so every block that is reported is reported completely.
"""

from __future__ import annotations

import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Iterable, List, Optional, Sequence, Tuple

from .collection import AssociatedTypeBinding, TypeReferenceIndex, collect
from .equivalence import GenericArgPolicy, first_match
from .hir import ImplBlock
from .walker import Occurrence, traverse

logger = logging.getLogger(__name__)

FINDING_MESSAGE = "Used concrete type where associated type could be used instead"
FINDING_SEVERITY = "warning"


@dataclass(frozen=True, slots=True)
class Finding:
    """A concrete-type reference that could be written ``Self::<name>``."""

    occurrence: Occurrence
    binding: AssociatedTypeBinding
    message: str = FINDING_MESSAGE

    @property
    def file(self) -> str:
        return self.occurrence.span.file

    @property
    def line(self) -> int:
        return self.occurrence.span.line

    @property
    def column(self) -> int:
        return self.occurrence.span.column

    @property
    def byte_span(self) -> Tuple[int, int]:
        return self.occurrence.span.byte_span

    @property
    def severity(self) -> str:
        return FINDING_SEVERITY

    @property
    def suggestion(self) -> str:
        return f"Self::{self.binding.name}"

    def sort_key(self) -> Tuple:
        return (*self.occurrence.span.sort_key(), self.binding.name,
                self.occurrence.kind.value)


@dataclass(frozen=True, slots=True)
class BlockResult:
    block: ImplBlock
    index: TypeReferenceIndex
    findings: Tuple[Finding, ...]
    occurrences: int


@dataclass
class AnalysisResult:
    findings: List[Finding] = field(default_factory=list)
    blocks_total: int = 0
    blocks_analyzed: List[int] = field(default_factory=list)
    cancelled: bool = False

    @property
    def blocks_skipped(self) -> int:
        return self.blocks_total - len(self.blocks_analyzed)


def _sorted(findings: Iterable[Finding]) -> List[Finding]:
    return sorted(findings, key=Finding.sort_key)


def scan_bodies(block: ImplBlock, index: TypeReferenceIndex,
                policy: GenericArgPolicy = GenericArgPolicy.LENIENT) -> Tuple[Tuple[Finding, ...], int]:
    """SCAN phase: match every occurrence in every method body of ``block``.

    Returns the findings (sorted) and the number of occurrences examined.
    """
    findings: List[Finding] = []
    examined = 0
    if not index.supported:
        return (), 0
    for method in block.methods:
        for occurrence in traverse(method):
            examined += 1
            binding = first_match(occurrence, index, policy)
            if binding is not None:
                findings.append(Finding(occurrence, binding))
    return tuple(_sorted(findings)), examined


def analyze_block(block: ImplBlock,
                  policy: GenericArgPolicy = GenericArgPolicy.LENIENT) -> BlockResult:
    """COLLECT then SCAN one implementation block."""
    index = collect(block)
    findings, examined = scan_bodies(block, index, policy)
    logger.debug("%s (%s): %d binding(s), %d occurrence(s), %d finding(s)",
                 block.span, block.describe(), len(index), examined, len(findings))
    return BlockResult(block, index, findings, examined)


def analyze_blocks(blocks: Sequence[ImplBlock],
                   policy: GenericArgPolicy = GenericArgPolicy.LENIENT,
                   workers: int = 1,
                   cancel: Optional[threading.Event] = None) -> AnalysisResult:
    """Analyse independent blocks and merge their findings deterministically.

    Args:
        blocks: implementation blocks, in any order.
        policy: generic argument comparison policy.
        workers: thread count; ``1`` analyses blocks in order on the caller's
            thread.
        cancel: when set, blocks that have not started are skipped.
    """
    blocks = list(blocks)
    result = AnalysisResult(blocks_total=len(blocks))

    def run(position: int) -> Optional[BlockResult]:
        if cancel is not None and cancel.is_set():
            return None
        return analyze_block(blocks[position], policy)

    if workers <= 1 or len(blocks) <= 1:
        outcomes = []
        for position in range(len(blocks)):
            outcome = run(position)
            if outcome is None:
                break
            outcomes.append(outcome)
        outcomes.extend([None] * (len(blocks) - len(outcomes)))
    else:
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="hirlint") as pool:
            try:
                outcomes = list(pool.map(run, range(len(blocks))))
            except KeyboardInterrupt:
                # Blocks not yet started see the flag and return at once.
                if cancel is not None:
                    cancel.set()
                raise

    merged: List[Finding] = []
    for position, outcome in enumerate(outcomes):
        if outcome is None:
            continue
        result.blocks_analyzed.append(position)
        merged.extend(outcome.findings)
    result.findings = _sorted(merged)
    result.cancelled = len(result.blocks_analyzed) < len(blocks)
    logger.info("analysed %d/%d block(s), %d finding(s)%s",
                len(result.blocks_analyzed), len(blocks), len(result.findings),
                " (cancelled)" if result.cancelled else "")
    return result


__all__ = [
    "FINDING_MESSAGE",
    "FINDING_SEVERITY",
    "Finding",
    "BlockResult",
    "AnalysisResult",
    "scan_bodies",
    "analyze_block",
    "analyze_blocks",
]
