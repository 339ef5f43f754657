import gzip
import logging
from dataclasses import dataclass
from typing import Iterable, List, Sequence


logger = logging.getLogger(__name__)


@dataclass(frozen=True, order=True)
class Region:
    """A closed genomic interval, ONE-based and inclusive on both ends."""
    contig: str
    start: int
    end: int

    def __post_init__(self):
        if self.start > self.end:
            raise ValueError(f'The region {self.contig}:{self.start}-{self.end} ends before it starts')

    def __len__(self):
        return self.end - self.start + 1

    def __str__(self):
        return f'{self.contig}:{self.start}-{self.end}'


def parse_region(region: str) -> Region:
    """
    usage: parse a region string like "1:32221-42212" (ONE-based, inclusive)

    input: the region string; the last ':' separates the contig, so contigs
           like "HLA-A*01:01" are kept intact

    return: the Region
    """
    colon = region.rfind(':')
    dash = region.rfind('-')
    if colon <= 0 or dash < colon:
        raise ValueError(f'"{region}" is not in contig:start-end format')
    contig = region[:colon]
    try:
        start = int(region[colon+1:dash].replace(',', ''))
        end = int(region[dash+1:].replace(',', ''))
    except ValueError:
        raise ValueError(f'"{region}" is not in contig:start-end format') from None
    return Region(contig, start, end)


def read_bed(bed_file: str) -> List[Region]:
    """
    usage: read the intervals of a bed file

    input: the bed file (ZERO-based, half-open; gzipped if ending with .gz)

    return: a list of ONE-based inclusive Regions in file order
    """
    regions = []
    opener = gzip.open if bed_file.endswith('.gz') else open
    with opener(bed_file, 'rt') as f:
        for line in f:
            line = line.strip()
            if not line or line.startswith(('#', 'track', 'browser')):
                continue
            parts = line.split('\t')
            if len(parts) < 3:
                raise ValueError(f'The line "{line}" of "{bed_file}" has fewer than 3 columns')
            start, end = int(parts[1]), int(parts[2])
            if start == end:
                logger.warning('Skipping the empty interval %s:%d-%d of "%s"', parts[0], start, end, bed_file)
                continue
            regions.append(Region(parts[0], start + 1, end))
    return regions


def normalize_regions(regions: Iterable[Region]) -> List[Region]:
    """
    usage: sort the regions and merge the overlapping or abutting ones

    input: the regions in any order

    return: sorted, pairwise disjoint and non-abutting regions covering the
            same positions as the input
    """
    regions = list(regions)
    if len(regions) <= 1:
        return regions

    regions.sort()
    merged = []
    active = regions[0]
    for following in regions[1:]:
        if following.contig == active.contig and following.start <= active.end + 1:
            coalesced = Region(active.contig, active.start, max(active.end, following.end))
            logger.warning('Intervals overlap, coalescing %s and %s into %s', active, following, coalesced)
            active = coalesced
        else:
            merged.append(active)
            active = following
    merged.append(active)
    return merged


def whole_reference_regions(references: Sequence[str], lengths: Sequence[int]) -> List[Region]:
    # one region per sequence of the header, in header order
    return [Region(reference, 1, length) for reference, length in zip(references, lengths) if length > 0]


def collect_regions(bed_file=None, region_strings=()) -> List[Region]:
    """
    usage: gather the bed intervals and the region strings into one normalized list

    input: the bed file (or None),
           the region strings

    return: the normalized regions (empty means the whole reference)
    """
    regions = read_bed(bed_file) if bed_file is not None else []
    for region in region_strings:
        regions.append(parse_region(region))
    return normalize_regions(regions)
