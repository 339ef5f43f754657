import argparse
import logging
import sys

from qualdepth import __version__
from qualdepth.accumulator import ReadCounters
from qualdepth.config import ConfigError, DepthConfig, load_config, validate
from qualdepth.regions import collect_regions
from qualdepth.worker import run_workers


logger = logging.getLogger('qualdepth')

HELP_HINT = 'Please read the help message use "-h" or "--help"'


def setup_logging(log_file=None, verbose=False):
    """
    usage: send the log messages to stderr (and to a file if given)

    input: the log file,
           whether to show debug messages
    """
    handlers = [logging.StreamHandler(sys.stderr)]
    if log_file is not None:
        handlers.append(logging.FileHandler(log_file, mode='w'))
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format='%(asctime)s [%(levelname)s] - %(message)s',
        handlers=handlers,
        force=True,
    )


def build_parser():
    parser = argparse.ArgumentParser(prog='qualdepth', add_help=False, formatter_class=argparse.RawDescriptionHelpFormatter, description='Exact per-base depth of coordinate-sorted and indexed alignment files', epilog='Examples:\nqualdepth -r 1:32221-42212 -t -c sample1.bam sample2.bam\nqualdepth -b targets.bed -z -T 4 *.bam')

    group_io = parser.add_argument_group("Input/Output")
    group_io.add_argument('files', nargs='*', metavar='ALIGNMENT-FILE', help='Indexed alignment files (bam, cram or sam; paths or URLs)')
    group_io.add_argument('--index', nargs='+', dest='index_files', metavar='FILE', help='Index files, one per alignment file in order [next to the alignment files]')
    group_io.add_argument('-b', '--bed', dest='bed_file', metavar='FILE', help='Bed file of the regions to analyze (ZERO-based)')
    group_io.add_argument('-r', '--region', action='append', dest='regions', metavar='STR', help='Region to analyze in contig:start-end format (ONE-based), can be repeated [whole reference]')
    group_io.add_argument('-c', '--cov-fasta', dest='per_base_track', action='store_const', const=True, help='Generate a .covfasta file with the depth of every base')
    group_io.add_argument('-t', '--cov-bedgraph', dest='interval_track', action='store_const', const=True, help='Generate a tab-delimited (bedGraph) .bedgraph file')
    group_io.add_argument('-z', '--compress', action='store_const', const=True, help='Compress the output tracks with BGZF (gzip-compatible, tabix-indexable)')
    group_io.add_argument('-s', '--suffix', metavar='STR', help='Additional suffix of the output files')
    group_io.add_argument('-d', dest='directory', metavar='PATH', help='The directory of output files [next to the alignment files]')
    group_io.add_argument('--config', metavar='FILE', help='JSON file with the options, overridden by the command line')

    group_fo = parser.add_argument_group("Filter Options")
    group_fo.add_argument('-mq', '--map-qual', dest='min_mapping_quality', metavar='INT', type=int, help='Minimum mapping quality for alignments [20]')
    group_fo.add_argument('-bq', '--base-qual', dest='min_base_quality', metavar='INT', type=int, help='Minimum base quality [20]')
    group_fo.add_argument('--keep-dupes', dest='keep_duplicates', action='store_const', const=True, help='Include the duplicate reads in the depth [False]')

    group_po = parser.add_argument_group("Report Options")
    group_po.add_argument('--max-depth', dest='histogram_max_depth', metavar='INT', type=int, help='The depth collecting every deeper base in the histogram [1000]')
    group_po.add_argument('-p', '--plot', action='store_const', const=True, help='Plot the cumulative coverage of every file [False]')
    group_po.add_argument('-it', '--image-type', metavar='STR', help='The format of the output images: png or pdf [png]')

    group_op = parser.add_argument_group("Other Options")
    group_op.add_argument('-T', '--threads', metavar='INT', type=int, help='Number of alignment files processed at the same time [1]')
    group_op.add_argument('-f', '--force', action='store_const', const=True, help='Force rewriting of existing files [False]')
    group_op.add_argument('--log-file', metavar='FILE', help='Also write the log messages to this file')
    group_op.add_argument('--verbose', action='store_true', help='Show debug messages')
    group_op.add_argument('-h', '--help', action="help", help="Show this help message and exit")
    group_op.add_argument('-v', '--version', action="version", version=f'qualdepth version {__version__}', help="Show program's version number and exit")
    return parser


def main(argv=None):
    args = vars(build_parser().parse_args(argv))
    files = args.pop('files')
    config_file = args.pop('config')
    log_file = args.pop('log_file')
    verbose = args.pop('verbose')
    setup_logging(log_file, verbose)

    try:
        config = load_config(config_file) if config_file is not None else DepthConfig()
        if args['image_type'] is not None:
            args['image_type'] = args['image_type'].lower()
        config = config.updated(**args)
        validate(config, files)
        try:
            regions = collect_regions(config.bed_file, config.regions)
        except ValueError as e:
            raise ConfigError(str(e)) from e
    except ConfigError as e:
        sys.exit(f'ERROR!!! {e}\n{HELP_HINT}')

    logger.info('Used configuration: %s', config)

    results = run_workers(files, regions, config)

    if config.plot:
        from qualdepth.plot import plot_coverage
        for result in results:
            if result.ok:
                output = f'{config.output_prefix(result.alignment_file)}.coverage.{config.image_type}'
                plot_coverage(result.histogram, output, result.alignment_file, config.image_type)

    total = ReadCounters()
    for result in results:
        if result.ok:
            total = total.merge(result.counters)
    failed = [result for result in results if not result.ok]
    logger.info('Processed %d of %d files: %d paired reads, %d duplicates, %d aligned bases',
                len(results) - len(failed), len(results), total.reads_paired, total.duplicates, total.aligned_bases)
    for result in failed:
        logger.error('"%s" was not processed: %s', result.alignment_file, result.error)
    return 1 if failed else 0


if __name__ == '__main__':
    sys.exit(main())
