import json
import os
from dataclasses import dataclass, field, fields, replace
from typing import List, Optional


ALIGNMENT_SUFFIXES = ('.bam', '.cram', '.sam')


class ConfigError(Exception):
    """An unusable configuration, reported before any file is processed."""


@dataclass(frozen=True)
class DepthConfig:
    min_mapping_quality: int = 20
    min_base_quality: int = 20
    keep_duplicates: bool = False
    compress: bool = False
    bed_file: Optional[str] = None
    regions: List[str] = field(default_factory=list)
    per_base_track: bool = False
    interval_track: bool = False
    suffix: str = ''
    threads: int = 1
    histogram_max_depth: int = 1000
    directory: Optional[str] = None
    force: bool = False
    plot: bool = False
    image_type: str = 'png'
    index_files: List[str] = field(default_factory=list)

    def updated(self, **changes) -> 'DepthConfig':
        """
        usage: get a copy of the config with the given fields replaced;
               None values are ignored so that unset command-line flags keep
               the values of the config file
        """
        known = {f.name for f in fields(self)}
        unknown = sorted(set(changes) - known)
        if unknown:
            raise ConfigError(f'Unknown configuration keys: {", ".join(unknown)}')
        return replace(self, **{key: value for key, value in changes.items() if value is not None})

    def output_prefix(self, alignment_file: str) -> str:
        """
        usage: get the prefix of all output files of one alignment file

        input: the alignment file (path or URL)

        return: the file name without its .bam/.cram/.sam suffix, plus the
                configured suffix, placed in the output directory if any
        """
        prefix = alignment_file.rstrip('/')
        if prefix.lower().endswith(ALIGNMENT_SUFFIXES):
            prefix = prefix[:prefix.rfind('.')]
        if self.directory is not None or '://' in prefix:
            prefix = os.path.join(self.directory or '.', os.path.basename(prefix))
        suffix = self.suffix
        if suffix and not suffix.startswith('.'):
            suffix = '.' + suffix
        return prefix + suffix

    def output_files(self, alignment_file: str) -> List[str]:
        prefix = self.output_prefix(alignment_file)
        gz = '.gz' if self.compress else ''
        files = [f'{prefix}.report']
        if self.interval_track:
            files.append(f'{prefix}.bedgraph{gz}')
        if self.per_base_track:
            files.append(f'{prefix}.covfasta{gz}')
        if self.plot:
            files.append(f'{prefix}.coverage.{self.image_type}')
        return files


def load_config(config_file: str, base: Optional[DepthConfig] = None) -> DepthConfig:
    """
    usage: read a JSON configuration file

    input: the JSON file holding an object keyed by DepthConfig field names,
           the config to start from (defaults if None)

    return: the DepthConfig
    """
    base = base if base is not None else DepthConfig()
    try:
        with open(config_file, 'r') as f:
            content = json.load(f)
    except OSError as e:
        raise ConfigError(f'"{config_file}" is not an available file ({e.strerror})') from e
    except json.JSONDecodeError as e:
        raise ConfigError(f'"{config_file}" is not valid JSON: {e}') from e
    if not isinstance(content, dict):
        raise ConfigError(f'"{config_file}" must contain a JSON object')

    for key in ('regions', 'index_files'):
        if key in content and isinstance(content[key], str):
            content[key] = [content[key]]
    config = base.updated(**content)
    for key, value in content.items():
        if not _has_type(key, value):
            raise ConfigError(f'The value of "{key}" in "{config_file}" must be {_type_name(key)}')
    return config


LIST_FIELDS = ('regions', 'index_files')
OPTIONAL_STR_FIELDS = ('bed_file', 'directory')


def _has_type(key, value) -> bool:
    if value is None:
        return True
    if key in LIST_FIELDS:
        return isinstance(value, list) and all(isinstance(item, str) for item in value)
    if key in OPTIONAL_STR_FIELDS:
        return isinstance(value, str)
    expected = type(getattr(DepthConfig(), key))
    # bool is a subclass of int and must not be accepted for numbers
    return isinstance(value, expected) and not (expected is int and isinstance(value, bool))


def _type_name(key) -> str:
    if key in LIST_FIELDS:
        return 'a list of strings'
    if key in OPTIONAL_STR_FIELDS:
        return 'a string'
    return f'of type {type(getattr(DepthConfig(), key)).__name__}'


def validate(config: DepthConfig, alignment_files: List[str]):
    """
    usage: check the inputs and outputs before any processing starts

    input: the DepthConfig,
           the alignment files (paths or URLs)
    """
    if len(alignment_files) == 0:
        raise ConfigError('Please input at least one alignment file')
    for file in alignment_files:
        if '://' in file:
            continue
        if not (os.path.exists(file) and os.access(file, os.R_OK)):
            raise ConfigError(f'"{file}" is not an available file')
    if config.index_files and len(config.index_files) != len(alignment_files):
        raise ConfigError(f'Got {len(config.index_files)} index files for {len(alignment_files)} alignment files')
    if config.bed_file is not None and not (os.path.exists(config.bed_file) and os.access(config.bed_file, os.R_OK)):
        raise ConfigError(f'"{config.bed_file}" is not an available file')

    if config.min_mapping_quality < 0 or config.min_base_quality < 0:
        raise ConfigError('The minimum mapping and base qualities must not be negative')
    if config.threads < 1:
        raise ConfigError(f'The number of threads must be at least 1, got {config.threads}')
    if config.histogram_max_depth < 1:
        raise ConfigError(f'The histogram maximum depth must be at least 1, got {config.histogram_max_depth}')
    if config.image_type not in ('png', 'pdf'):
        raise ConfigError('The format of output images only supports pdf and png')

    if config.directory is not None:
        if os.path.exists(config.directory):
            if not os.access(config.directory, os.W_OK):
                raise ConfigError(f'The path "{config.directory}" is unable to write')
        else:
            os.makedirs(config.directory)

    prefixes = [config.output_prefix(file) for file in alignment_files]
    if len(set(prefixes)) != len(prefixes):
        raise ConfigError('Several alignment files share the same output prefix; please use "-d" or rename the inputs')
    if not config.force:
        for file in alignment_files:
            for output in config.output_files(file):
                if os.path.exists(output):
                    raise ConfigError(f'The file "{output}" exists\nPlease use "-f" or "--force" to rewrite')
