import json

import pytest

from qualdepth.config import ConfigError, DepthConfig, load_config, validate


def test_defaults():
    config = DepthConfig()
    assert (config.min_mapping_quality, config.min_base_quality, config.keep_duplicates, config.threads) == (20, 20, False, 1)
    assert config.histogram_max_depth == 1000


def test_load_config_reads_json(tmp_path):
    config_file = tmp_path / 'depth.json'
    config_file.write_text(json.dumps({'min_base_quality': 13, 'regions': '1:1-10', 'interval_track': True, 'threads': 3}))
    config = load_config(str(config_file))
    assert config.min_base_quality == 13
    assert config.regions == ['1:1-10']
    assert config.interval_track is True
    assert config.threads == 3
    assert config.min_mapping_quality == 20


@pytest.mark.parametrize('content', [
    '{"min_base_qual": 1}', '{"threads": "2"}', '{"threads": true}', '[1, 2]', '{oops',
    '{"regions": [5]}', '{"index_files": [1]}', '{"regions": {"1": 5}}', '{"directory": 5}', '{"bed_file": 3}',
])
def test_load_config_rejects_bad_files(tmp_path, content):
    config_file = tmp_path / 'depth.json'
    config_file.write_text(content)
    with pytest.raises(ConfigError):
        load_config(str(config_file))


def test_load_config_missing_file(tmp_path):
    with pytest.raises(ConfigError, match='not an available file'):
        load_config(str(tmp_path / 'missing.json'))


def test_updated_ignores_unset_values():
    config = DepthConfig(min_mapping_quality=5).updated(min_mapping_quality=None, keep_duplicates=True)
    assert config.min_mapping_quality == 5
    assert config.keep_duplicates is True


@pytest.mark.parametrize('file, suffix, expected', [
    ('data/sample.bam', '', 'data/sample'),
    ('data/sample.BAM', 'v2', 'data/sample.v2'),
    ('data/sample.cram', '.q30', 'data/sample.q30'),
    ('data/sample.txt', '', 'data/sample.txt'),
])
def test_output_prefix(file, suffix, expected):
    assert DepthConfig(suffix=suffix).output_prefix(file) == expected


def test_output_prefix_of_urls_and_directories():
    assert DepthConfig().output_prefix('https://example.org/bams/s1.bam') == './s1'
    assert DepthConfig(directory='out').output_prefix('data/s1.bam') == 'out/s1'


def test_output_files_follow_the_options():
    config = DepthConfig(interval_track=True, per_base_track=True, compress=True, plot=True, image_type='pdf')
    assert config.output_files('s.bam') == ['s.report', 's.bedgraph.gz', 's.covfasta.gz', 's.coverage.pdf']


def test_validate_needs_inputs(tmp_path):
    with pytest.raises(ConfigError, match='at least one'):
        validate(DepthConfig(), [])
    with pytest.raises(ConfigError, match='not an available file'):
        validate(DepthConfig(), [str(tmp_path / 'missing.bam')])


@pytest.mark.parametrize('changes', [
    {'threads': 0},
    {'min_base_quality': -1},
    {'histogram_max_depth': 0},
    {'image_type': 'svg'},
    {'index_files': ['a.bai', 'b.bai']},
    {'bed_file': 'missing.bed'},
])
def test_validate_rejects_bad_values(tmp_path, changes):
    bam = tmp_path / 's.bam'
    bam.write_bytes(b'')
    with pytest.raises(ConfigError):
        validate(DepthConfig(**changes), [str(bam)])


def test_validate_protects_existing_outputs(tmp_path):
    bam = tmp_path / 's.bam'
    bam.write_bytes(b'')
    (tmp_path / 's.report').write_text('old')
    with pytest.raises(ConfigError, match='--force'):
        validate(DepthConfig(), [str(bam)])
    validate(DepthConfig(force=True), [str(bam)])


def test_validate_creates_output_directory(tmp_path):
    bam = tmp_path / 's.bam'
    bam.write_bytes(b'')
    validate(DepthConfig(directory=str(tmp_path / 'out')), [str(bam)])
    assert (tmp_path / 'out').is_dir()


def test_validate_rejects_shared_prefixes(tmp_path):
    for name in ('a', 'b'):
        (tmp_path / name).mkdir()
        (tmp_path / name / 's.bam').write_bytes(b'')
    files = [str(tmp_path / 'a' / 's.bam'), str(tmp_path / 'b' / 's.bam')]
    validate(DepthConfig(), files)
    with pytest.raises(ConfigError, match='same output prefix'):
        validate(DepthConfig(directory=str(tmp_path / 'out')), files)
