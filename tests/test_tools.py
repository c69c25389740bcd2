"""A collection of tests for pdmrg.tools.misc and pdmrg.tools.cache."""
# Copyright (C) TeNPy Developers, GNU GPLv3

import numpy as np
import pytest

from pdmrg.tools import misc
from pdmrg.tools.cache import CacheFile, DictCache, PickleStorage, NumpyStorage, Storage
from pdmrg.models.model import MPOModel, NearestNeighborChain
from pdmrg.models.xxz_chain import XXZChain


def test_sum_none():
    a = np.ones(3)
    assert misc.sum_none(None, None) is None
    assert misc.sum_none(a, None) is a
    assert misc.sum_none(None, a) is a
    np.testing.assert_array_equal(misc.sum_none(a, a), 2. * a)


def test_set_recursive():
    data = {'a': {'b': {'c': 1}}, 'd': 2}
    misc.set_recursive(data, 'a.b.c', 3)
    assert data['a']['b']['c'] == 3
    misc.set_recursive(data, '.a.b.g', 5)
    assert data['a']['b'] == {'c': 3, 'g': 5}
    misc.set_recursive(data, 'e.f', 4, insert_dicts=True)
    assert data['e'] == {'f': 4}
    with pytest.raises(KeyError):
        misc.set_recursive(data, 'x.y', 1)


def test_merge_recursive():
    d1 = {'a': 1, 'b': {'c': 2, 'd': 3}}
    d2 = {'b': {'c': 2, 'e': 4}, 'f': 5}
    merged = misc.merge_recursive(d1, d2)
    assert merged == {'a': 1, 'b': {'c': 2, 'd': 3, 'e': 4}, 'f': 5}
    d3 = {'b': {'c': 10}}
    with pytest.raises(ValueError):
        misc.merge_recursive(d1, d3)
    assert misc.merge_recursive(d1, d3, conflict='first')['b']['c'] == 2
    assert misc.merge_recursive(d1, d3, conflict='last')['b']['c'] == 10


def test_find_subclass():
    assert misc.find_subclass(MPOModel, 'XXZChain') is XXZChain
    assert misc.find_subclass(MPOModel, 'NearestNeighborChain') is NearestNeighborChain
    assert misc.find_subclass(MPOModel, XXZChain) is XXZChain
    with pytest.raises(ValueError):
        misc.find_subclass(MPOModel, 'NotAModel')


def test_setup_logging_skipped():
    assert misc.skip_logging_setup  # set in conftest.py
    assert misc.setup_logging(to_stdout="DEBUG", filename=None) is None


def test_default_logging_config():
    config = misc._default_dict_config("run.log", "INFO", "DEBUG", "{levelname}: {message}", None,
                                       {'root': 'INFO', 'pdmrg.tools.params': 'WARNING'})
    assert sorted(config['handlers']) == ['to_file', 'to_stdout']
    assert config['handlers']['to_file']['filename'] == "run.log"
    assert config['formatters']['custom']['style'] == '{'
    assert config['root'] == {'handlers': ['to_stdout', 'to_file'], 'level': 'INFO'}
    assert config['loggers'] == {'pdmrg.tools.params': {'level': 'WARNING'}}
    config = misc._default_dict_config(None, None, "INFO", "%(message)s", None, {})
    assert config['handlers'] == {}
    assert 'style' not in config['formatters']['custom']


@pytest.mark.parametrize("storage_class", ["Storage", "PickleStorage", "NumpyStorage"])
def test_cache(storage_class, tmp_path):
    directory = tmp_path / "cache"
    kwargs = {} if storage_class == "Storage" else {'directory': directory}
    data = np.arange(6.).reshape(2, 3)
    with CacheFile.open(storage_class, **kwargs) as cache:
        assert cache
        cache['B0'] = data
        assert 'B0' in cache
        assert 'B1' not in cache
        assert cache.get('B1') is None
        np.testing.assert_array_equal(cache['B0'], data)
        assert len(cache) == 1
        if storage_class != "Storage":
            assert directory.is_dir()
        np.testing.assert_array_equal(cache.pop('B0'), data)
        assert 'B0' not in cache
        with pytest.raises(KeyError):
            cache['B0']
        cache['B1'] = data
    assert not cache
    assert not directory.exists()


def test_cache_keep_directory(tmp_path):
    directory = tmp_path / "kept"
    cache = CacheFile.open("PickleStorage", directory=directory, delete=False)
    cache['l0'] = [np.ones((1, 1)), None]
    cache.close()
    assert (directory / "l0.pkl").exists()
    with pytest.raises(ValueError):
        CacheFile.open("NoStorage")


def test_trivial_cache():
    cache = DictCache.trivial()
    assert isinstance(cache.storage, Storage)
    assert cache.storage.trivial
    group = [np.eye(2), None]
    cache['r2'] = group
    assert cache['r2'] is group
    assert cache.get('l2') is None
    del cache['r2']
    del cache['r2']  # deleting a missing key is a no-op
    assert len(cache) == 0
    assert not PickleStorage.trivial and not NumpyStorage.trivial
    storage = Storage.open()
    storage.close()
    assert not storage
    with pytest.raises(ValueError):
        storage.load('B0')
    with pytest.raises(ValueError):
        storage.close()
