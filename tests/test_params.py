"""A collection of tests for pdmrg.tools.params."""
# Copyright (C) TeNPy Developers, GNU GPLv3

import textwrap
import warnings

import numpy as np
import pytest

from pdmrg.tools.params import Config, asConfig, load_yaml_with_py_eval


def test_parameters():
    options = {'a': 1, 'b': {'c': 2.}}
    config = asConfig(options, "Test")
    assert asConfig(config, "other") is config
    assert config.get('a', 3) == 1
    assert config.get('d', 4) == 4
    assert options['d'] == 4  # defaults are written back
    sub = config.subconfig('b')
    assert isinstance(sub, Config)
    assert sub.get('c', 0.) == 2.
    e = config.subconfig('e')
    e.setdefault('f', 5)
    assert config.as_dict() == {'a': 1, 'b': {'c': 2.}, 'd': 4, 'e': {'f': 5}}
    assert len(config.unused) == 0


def test_warn_unused():
    config = Config({'Dmax': 10, 'Dmx': 5}, "trunc_params")
    config.get('Dmax', 100)
    with pytest.warns(UserWarning, match='Dmx'):
        config.warn_unused()
    config.warn_unused()  # no second warning
    with warnings.catch_warnings():
        warnings.simplefilter("error")
        config.warn_unused()


def test_expect_type():
    config = Config({'sweeps': 4.5, 'E_tol': 1}, "Test")
    with pytest.warns(UserWarning, match='sweeps'):
        config.get('sweeps', 4, int)
    with warnings.catch_warnings():
        warnings.simplefilter("error")
        assert config.get('E_tol', 1.e-9, 'real') == 1
        assert config.get('none', None, int) is None


def test_repr_and_delete():
    config = Config({'a': 1, 'b': 2}, "Test")
    assert repr(config) == "Config(<2 options>, 'Test')"
    assert str(config).startswith("Config, name='Test'")
    del config['a']
    config['c'] = 3
    assert config.unused == {'b', 'c'}
    assert sorted(config) == ['b', 'c']
    assert config['b'] + config['c'] == 5
    assert len(config.unused) == 0


def test_load_yaml_with_py_eval(tmp_path):
    yaml_content = textwrap.dedent("""\
    algorithm_params:
        sweeps: 3
        trunc_params:
            trunc_err: !py_eval "10.**-12"
            Dmax: !py_eval "2**5"
    values: !py_eval "np.arange(3)"
    """)
    data = load_yaml_with_py_eval(yaml_content=yaml_content)
    assert data['algorithm_params']['sweeps'] == 3
    assert data['algorithm_params']['trunc_params']['trunc_err'] == 1.e-12
    assert data['algorithm_params']['trunc_params']['Dmax'] == 32
    np.testing.assert_array_equal(data['values'], np.arange(3))
    fn = tmp_path / "params.yml"
    fn.write_text(yaml_content)
    config = Config.from_yaml(str(fn))
    assert config.name == "params.yml"
    assert config['algorithm_params']['sweeps'] == 3
    with pytest.raises(ValueError):
        load_yaml_with_py_eval()


def test_save_yaml(tmp_path):
    config = Config({'a': 1, 'b': {'c': 'x'}}, "Test")
    config.subconfig('b')
    fn = str(tmp_path / "out.yml")
    config.save_yaml(fn)
    config2 = Config.from_yaml(fn)
    assert config2.as_dict() == {'a': 1, 'b': {'c': 'x'}}
    assert config.get('a', 0) == 1
