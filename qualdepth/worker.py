import logging
import threading
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from typing import Callable, List, Optional, Sequence

import pysam
from pysam.libcbgzf import BGZFile
from tqdm import tqdm

from qualdepth.accumulator import CoverageAccumulator, ReadCounters, ReadFilter
from qualdepth.config import DepthConfig
from qualdepth.regions import Region, whole_reference_regions
from qualdepth.sinks import Aggregator, HistogramSink, IntervalTrackSink, PerBaseTrackSink


logger = logging.getLogger(__name__)

REPORT_RULE = '#' + '-' * 89 + '#'


class WorkerCancelled(Exception):
    pass


@dataclass
class WorkerResult:
    alignment_file: str
    report_file: Optional[str] = None
    counters: ReadCounters = field(default_factory=ReadCounters)
    histogram: Optional[HistogramSink] = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None


def open_alignment_source(locator: str, index_file: Optional[str] = None):
    """
    usage: open an indexed alignment file leniently

    input: the alignment file (local path or any URL htslib can read),
           the index file (default: found next to the alignment file)

    return: the pysam.AlignmentFile
    """
    kwargs = {'check_sq': False}
    if index_file is not None:
        kwargs['index_filename'] = index_file
    return pysam.AlignmentFile(locator, 'r', **kwargs)


def query_region(samfile, region: Region):
    """Yield the alignments overlapping the region, sorted by alignment start."""
    if region.contig not in samfile.references:
        logger.warning('The contig "%s" is absent from "%s", its depth is 0', region.contig, samfile.filename)
        return
    # fetch() takes ZERO-based, half-open coordinates
    yield from samfile.fetch(region.contig, region.start - 1, region.end)


class BgzfTextWriter:
    """Text writes into a BGZF file, so the compressed tracks stay tabix-indexable."""

    def __init__(self, path: str):
        self.bgzf = BGZFile(path, 'wb')

    def write(self, text: str) -> int:
        return self.bgzf.write(text.encode('utf-8'))

    @property
    def closed(self) -> bool:
        return self.bgzf.closed

    def close(self):
        self.bgzf.close()


def open_output(path: str, compress: bool = False):
    if compress:
        return BgzfTextWriter(path)
    return open(path, 'w')


def write_report(handle, counters: ReadCounters, histogram: HistogramSink):
    handle.write(f'Total Reads Paired:\t{counters.reads_paired}\n')
    handle.write(f'Total Paired Reads With Mapped Mates:\t{counters.paired_with_mapped_mate}\n')
    handle.write(f'Duplicate Reads:\t{counters.duplicates}\n')
    handle.write(f'Total aligned bases:\t{counters.aligned_bases}\n')
    handle.write(f'{REPORT_RULE}\n')
    handle.write('Coverage\tCount\tCumulative Below\tCumulative At Least\n')
    for depth, count, below, at_least in histogram.rows():
        handle.write(f'{depth}\t{count}\t{below}\t{at_least}\n')
    handle.write(f'{REPORT_RULE}\n')


class DepthWorker:
    """
    The whole pipeline of one alignment file: regions are processed one after
    another, their spans flow through one Aggregator into the configured
    outputs, and a report is written at the end.
    """

    def __init__(self, alignment_file: str, regions: Sequence[Region], config: DepthConfig, index_file: Optional[str] = None,
                 cancel: Optional[threading.Event] = None, open_source: Callable = open_alignment_source):
        self.alignment_file = alignment_file
        self.regions = regions
        self.config = config
        self.index_file = index_file
        self.cancel = cancel
        self.open_source = open_source
        self.prefix = config.output_prefix(alignment_file)
        self.counters = ReadCounters()
        self.histogram = HistogramSink(config.histogram_max_depth)

    def _check_cancelled(self):
        if self.cancel is not None and self.cancel.is_set():
            raise WorkerCancelled(f'Cancelled while processing "{self.alignment_file}"')

    def _build_aggregator(self, handles):
        config = self.config
        gz = '.gz' if config.compress else ''
        aggregator = Aggregator(self.histogram)
        if config.interval_track:
            handle = open_output(f'{self.prefix}.bedgraph{gz}', config.compress)
            handles.append(handle)
            aggregator.add_clients(IntervalTrackSink(handle))
        if config.per_base_track:
            handle = open_output(f'{self.prefix}.covfasta{gz}', config.compress)
            handles.append(handle)
            aggregator.add_clients(PerBaseTrackSink(handle))
        return aggregator

    def run(self) -> WorkerResult:
        config = self.config
        read_filter = ReadFilter(config.min_mapping_quality, config.min_base_quality, config.keep_duplicates)
        samfile = self.open_source(self.alignment_file, self.index_file)
        handles = []
        try:
            regions = self.regions or whole_reference_regions(samfile.references, samfile.lengths)
            logger.info('Computing the depth of "%s" over %d regions', self.alignment_file, len(regions))
            aggregator = self._build_aggregator(handles)
            accumulator = CoverageAccumulator(aggregator, read_filter, self.counters)
            for region in regions:
                self._check_cancelled()
                aggregator.on_region_start(region)
                accumulator.start_region(region)
                records = query_region(samfile, region)
                try:
                    for segment in records:
                        self._check_cancelled()
                        accumulator.add_record(segment)
                    accumulator.finish_region()
                    aggregator.on_region_end(region)
                finally:
                    records.close()
            aggregator.on_finish()
        finally:
            for handle in handles:
                if not handle.closed:
                    handle.close()
            samfile.close()

        report_file = f'{self.prefix}.report'
        with open(report_file, 'w') as f:
            write_report(f, self.counters, self.histogram)
        logger.info('Finished "%s": %d reads used, %d filtered, %d duplicates',
                    self.alignment_file, self.counters.reads_used, self.counters.reads_filtered, self.counters.duplicates)
        return WorkerResult(self.alignment_file, report_file, self.counters, self.histogram)


def run_workers(alignment_files: List[str], regions: Sequence[Region], config: DepthConfig,
                cancel: Optional[threading.Event] = None, open_source: Callable = open_alignment_source) -> List[WorkerResult]:
    """
    usage: compute the depth of every alignment file, one worker per file

    input: the alignment files,
           the normalized regions shared by all workers (empty for the whole reference),
           the DepthConfig,
           the event that cancels the unfinished workers when set,
           the function opening an alignment file (pysam by default)

    return: one WorkerResult per alignment file, in input order; a file that
            failed carries the error and does not stop the others
    """
    regions = tuple(regions)
    cancel = cancel if cancel is not None else threading.Event()
    index_files = config.index_files or [None] * len(alignment_files)
    results: List[Optional[WorkerResult]] = [None] * len(alignment_files)

    with ThreadPoolExecutor(max_workers=config.threads) as executor:
        futures = {}
        for i, (file, index_file) in enumerate(zip(alignment_files, index_files)):
            worker = DepthWorker(file, regions, config, index_file, cancel, open_source)
            futures[executor.submit(worker.run)] = i
        try:
            for future in tqdm(as_completed(futures), total=len(futures), desc='Computing depth', disable=len(futures) <= 1):
                i = futures[future]
                try:
                    results[i] = future.result()
                except (OSError, ValueError, WorkerCancelled) as e:
                    logger.error('Failed to compute the depth of "%s": %s', alignment_files[i], e)
                    results[i] = WorkerResult(alignment_files[i], error=str(e))
        except KeyboardInterrupt:
            cancel.set()
            raise
    return results
