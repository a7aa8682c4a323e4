import pytest

from sbomindex.core.config import IndexConfig
from sbomindex.core.container import Container


def test_defaults(monkeypatch):
    monkeypatch.delenv('SYFT_BIN', raising=False)
    config = IndexConfig()
    assert config.use_cache
    assert config.cache_filename == 'sbom.json'
    assert config.engine_priority == ('syft', 'trivy')
    assert config.syft_bin == 'syft'


def test_binaries_from_environment(monkeypatch):
    monkeypatch.setenv('TRIVY_BIN', '/usr/local/bin/trivy')
    assert IndexConfig().trivy_bin == '/usr/local/bin/trivy'


@pytest.mark.parametrize(
    'priority', [
        ('syft',),
        ('syft', 'syft'),
        ('syft', 'grype'),
        ('syft', 'trivy', 'syft'),
    ],
)
def test_invalid_priority(priority):
    with pytest.raises(ValueError):
        IndexConfig(engine_priority=priority)


def test_invalid_workers():
    with pytest.raises(ValueError):
        IndexConfig(workers=0)


def test_container_orders_engines_by_priority():
    scanner = Container(IndexConfig(engine_priority=('trivy', 'syft'))).get_scan_service()
    assert (scanner.first.name, scanner.second.name) == ('trivy', 'syft')


def test_container_threads_cache_switch():
    cache = Container(IndexConfig(use_cache=False, cache_filename='x.json')).get_sbom_cache()
    assert not cache.enabled
    assert cache.filename == 'x.json'
