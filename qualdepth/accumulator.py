from dataclasses import dataclass, fields
from typing import Dict, Optional

from qualdepth.regions import Region
from qualdepth.sinks import DepthSink, DepthSpan


@dataclass
class ReadCounters:
    """The statistics of one alignment file, owned by its worker."""
    reads_paired: int = 0
    paired_with_mapped_mate: int = 0
    duplicates: int = 0
    aligned_bases: int = 0
    reads_used: int = 0
    reads_filtered: int = 0

    def merge(self, other: 'ReadCounters') -> 'ReadCounters':
        return ReadCounters(**{f.name: getattr(self, f.name) + getattr(other, f.name) for f in fields(self)})


@dataclass(frozen=True)
class ReadFilter:
    min_mapping_quality: int = 20
    min_base_quality: int = 20
    keep_duplicates: bool = False

    def rejects(self, segment) -> bool:
        # unusable alignments, not counted in any statistics
        return (segment.mapping_quality < self.min_mapping_quality
                or segment.is_qcfail
                or segment.is_secondary
                or segment.is_unmapped)


class CoverageAccumulator:
    """
    Exact per-base depth of one region at a time, keeping only the positions
    that later reads can still reach.

    The reads of a region MUST be added in non-decreasing order of their
    alignment start (a coordinate-sorted file guarantees it). This is not
    checked; unsorted input gives wrong depths.
    """

    def __init__(self, sink: DepthSink, read_filter: Optional[ReadFilter] = None, counters: Optional[ReadCounters] = None):
        self.sink = sink
        self.read_filter = read_filter if read_filter is not None else ReadFilter()
        self.counters = counters if counters is not None else ReadCounters()
        self.region: Optional[Region] = None
        self.coverages: Dict[int, int] = {}
        self.flushed = 0

    def start_region(self, region: Region):
        self.region = region
        self.coverages = {}
        self.flushed = region.start - 1

    def record_base(self, position: int, passes_quality: bool):
        if passes_quality and self.region.start <= position <= self.region.end:
            self.coverages[position] = self.coverages.get(position, 0) + 1

    def flush_up_to(self, barrier: int):
        """
        usage: finalize every position in (flushed, barrier) and send its depth downstream

        input: the barrier (ONE-based, exclusive); no later read can touch a
               position before the alignment start of the current read
        """
        barrier = min(barrier, self.region.end + 1)
        contig = self.region.contig
        for position in range(self.flushed + 1, barrier):
            self.sink.on_span(DepthSpan.at(contig, position, self.coverages.pop(position, 0)))
        if barrier - 1 > self.flushed:
            self.flushed = barrier - 1

    def add_record(self, segment) -> bool:
        """
        usage: apply the read policy to one alignment and count its qualifying bases

        input: a pysam.AlignedSegment (or anything with the same attributes)

        return: whether the read contributed to the depth
        """
        read_filter = self.read_filter
        counters = self.counters
        # reference_start is ZERO-based
        self.flush_up_to(segment.reference_start + 1)

        if read_filter.rejects(segment):
            counters.reads_filtered += 1
            return False
        if segment.is_paired:
            counters.reads_paired += 1
            if not segment.mate_is_unmapped:
                counters.paired_with_mapped_mate += 1
        if segment.is_duplicate:
            counters.duplicates += 1
            if not read_filter.keep_duplicates:
                return False

        qualities = segment.query_qualities
        start = self.region.start
        end = self.region.end
        min_base_quality = read_filter.min_base_quality
        for query_pos, ref_pos in segment.get_aligned_pairs():
            # insertions and soft clips have no reference position, deletions no read position
            if query_pos is None or ref_pos is None:
                continue
            position = ref_pos + 1
            if start <= position <= end:
                counters.aligned_bases += 1
                quality = qualities[query_pos] if qualities is not None else 0
                self.record_base(position, quality >= min_base_quality)
        counters.reads_used += 1
        return True

    def finish_region(self):
        self.flush_up_to(self.region.end + 1)
        self.coverages = {}
        self.region = None
