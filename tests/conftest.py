import pysam
import pytest


class FakeSegment:
    """The pysam.AlignedSegment attributes the depth computation reads."""

    def __init__(self, reference_start, length=5, mapping_quality=60, qualities=30, pairs=None,
                 is_paired=False, mate_is_unmapped=False, is_duplicate=False, is_qcfail=False,
                 is_secondary=False, is_unmapped=False):
        self.reference_start = reference_start
        self.mapping_quality = mapping_quality
        if pairs is None:
            pairs = [(i, reference_start + i) for i in range(length)]
        self.pairs = pairs
        read_length = sum(1 for query_pos, _ in pairs if query_pos is not None)
        if isinstance(qualities, int):
            qualities = [qualities] * read_length
        self.query_qualities = qualities
        self.is_paired = is_paired
        self.mate_is_unmapped = mate_is_unmapped
        self.is_duplicate = is_duplicate
        self.is_qcfail = is_qcfail
        self.is_secondary = is_secondary
        self.is_unmapped = is_unmapped

    def get_aligned_pairs(self):
        return list(self.pairs)


class FakeSource:
    """An in-memory stand-in for pysam.AlignmentFile."""

    def __init__(self, segments_by_contig, lengths=None, filename='fake.bam'):
        self.segments_by_contig = segments_by_contig
        self.references = tuple(segments_by_contig)
        self.lengths = tuple(lengths[contig] if lengths else 1000 for contig in self.references)
        self.filename = filename
        self.closed = False
        self.queries = []

    def fetch(self, contig, start, end):
        self.queries.append((contig, start, end))
        for segment in sorted(self.segments_by_contig[contig], key=lambda s: s.reference_start):
            segment_end = segment.reference_start + len(segment.pairs)
            if segment.reference_start < end and segment_end > start:
                yield segment

    def close(self):
        self.closed = True


@pytest.fixture
def make_segment():
    return FakeSegment


@pytest.fixture
def make_source():
    return FakeSource


@pytest.fixture
def write_bam():
    """Write a coordinate-sorted, indexed BAM of 5 bp reads on contig "1"."""

    def write(path, reads):
        header = {'HD': {'VN': '1.6', 'SO': 'coordinate'}, 'SQ': [{'SN': '1', 'LN': 1000}, {'SN': '2', 'LN': 50}]}
        with pysam.AlignmentFile(str(path), 'wb', header=header) as out:
            for i, (reference_start, flag, mapping_quality) in enumerate(reads):
                segment = pysam.AlignedSegment(out.header)
                segment.query_name = f'read{i}'
                segment.query_sequence = 'ACGTA'
                segment.flag = flag
                segment.reference_id = 0
                segment.reference_start = reference_start
                segment.mapping_quality = mapping_quality
                segment.cigartuples = [(0, 5)]
                segment.query_qualities = pysam.qualitystring_to_array('IIIII')
                out.write(segment)
        pysam.index(str(path))

    return write
