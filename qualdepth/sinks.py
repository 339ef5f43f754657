from dataclasses import dataclass
from typing import List, Optional, TextIO

import numpy as np

from qualdepth.regions import Region


@dataclass(frozen=True)
class DepthSpan:
    """A run of equal depth, ZERO-based and half-open: [start, end)."""
    contig: str
    start: int
    end: int
    depth: int

    @classmethod
    def at(cls, contig: str, position: int, depth: int) -> 'DepthSpan':
        # position is ONE-based
        return cls(contig, position - 1, position, depth)

    def __len__(self):
        return self.end - self.start

    def __str__(self):
        return f'{self.contig}\t{self.start}\t{self.end}\t{self.depth}'


class DepthSink:
    """
    The consumer side of the depth stream. Only on_span() is mandatory,
    the lifecycle hooks do nothing unless overridden.
    """

    def on_region_start(self, region: Region):
        pass

    def on_span(self, span: DepthSpan):
        raise NotImplementedError

    def on_region_end(self, region: Region):
        pass

    def on_finish(self):
        pass


class Aggregator(DepthSink):
    """
    Coalesce consecutive spans of equal depth into maximal spans and fan
    them out to every client. Spans must arrive in genomic order with
    pending.end <= span.start; a gap is filled with depth 0.
    """

    def __init__(self, *clients: DepthSink):
        self.clients: List[DepthSink] = list(clients)
        self.pending: Optional[DepthSpan] = None

    def add_clients(self, *clients: DepthSink) -> 'Aggregator':
        self.clients.extend(clients)
        return self

    def on_region_start(self, region):
        self.pending = None
        for client in self.clients:
            client.on_region_start(region)

    def on_span(self, span):
        pending = self.pending
        if pending is None:
            self.pending = span
            return

        if pending.end < span.start:
            if pending.depth == 0:
                pending = DepthSpan(pending.contig, pending.start, span.start, 0)
            else:
                self._emit(pending)
                pending = DepthSpan(pending.contig, pending.end, span.start, 0)

        if pending.depth != span.depth:
            self._emit(pending)
            self.pending = span
        else:
            self.pending = DepthSpan(pending.contig, pending.start, span.end, pending.depth)

    def on_region_end(self, region):
        if self.pending is not None:
            self._emit(self.pending)
            self.pending = None
        for client in self.clients:
            client.on_region_end(region)

    def on_finish(self):
        for client in self.clients:
            client.on_finish()

    def _emit(self, span):
        for client in self.clients:
            client.on_span(span)


class IntervalTrackSink(DepthSink):
    """Write one bedGraph-like line per span."""

    def __init__(self, handle: TextIO):
        self.handle = handle

    def on_span(self, span):
        self.handle.write(f'{span}\n')

    def on_finish(self):
        if not self.handle.closed:
            self.handle.close()


class PerBaseTrackSink(DepthSink):
    """
    Write a covfasta file: a ">contig:start-end" header per region followed
    by one depth per base, space separated, `width` depths per line.
    """

    def __init__(self, handle: TextIO, width: int = 100):
        self.handle = handle
        self.width = width
        self.offset = 0

    def on_region_start(self, region):
        self.handle.write(f'>{region}')
        self.offset = 0

    def on_span(self, span):
        token = str(span.depth)
        remaining = len(span)
        while remaining > 0:
            column = self.offset % self.width
            take = min(remaining, self.width - column)
            # the first depth of a line is preceded by the line break
            separator = '\n' if column == 0 else ' '
            self.handle.write(separator + ' '.join([token] * take))
            self.offset += take
            remaining -= take

    def on_region_end(self, region):
        self.handle.write('\n')

    def on_finish(self):
        if not self.handle.closed:
            self.handle.close()


class HistogramSink(DepthSink):
    """Count bases per depth; depths at or above max_depth share the last bucket."""

    def __init__(self, max_depth: int = 1000):
        if max_depth < 1:
            raise ValueError(f'The maximum depth of the histogram must be positive, got {max_depth}')
        self.max_depth = max_depth
        self.buckets = np.zeros(max_depth + 1, dtype=np.int64)

    def on_span(self, span):
        self.buckets[min(span.depth, self.max_depth)] += len(span)

    @property
    def total(self) -> int:
        return int(self.buckets.sum())

    def cumulative_below(self) -> np.ndarray:
        # bases with depth strictly lower than d
        below = np.zeros_like(self.buckets)
        below[1:] = np.cumsum(self.buckets)[:-1]
        return below

    def cumulative_at_least(self) -> np.ndarray:
        return np.cumsum(self.buckets[::-1])[::-1]

    def rows(self):
        """
        usage: get the distribution table of the histogram

        return: a list of (depth, count, cumulative below, cumulative at least)
        """
        below = self.cumulative_below()
        at_least = self.cumulative_at_least()
        return [(depth, int(self.buckets[depth]), int(below[depth]), int(at_least[depth])) for depth in range(len(self.buckets))]


class RememberingSink(DepthSink):
    def __init__(self):
        self.spans: List[DepthSpan] = []

    def on_span(self, span):
        self.spans.append(span)
