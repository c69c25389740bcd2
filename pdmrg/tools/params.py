"""Options of the models and algorithms as dict-like :class:`Config` objects.

All classes taking options (models, :class:`~pdmrg.algorithms.dmrg.TwoSiteDMRGEngine`,
:class:`~pdmrg.linalg.krylov_based.LanczosGroundState`, ...) wrap a plain (nested) dictionary
into a :class:`Config`. It logs each option the first time it is read, writes used defaults
back into the dictionary, and warns about options which were never read, which are
usually typos.
"""
# Copyright (C) TeNPy Developers, GNU GPLv3

import warnings
import numpy as np
import numbers
from collections.abc import MutableMapping
import pprint
import os
import yaml
import logging
logger = logging.getLogger(__name__)

__all__ = ["Config", "asConfig", "load_yaml_with_py_eval"]


class Config(MutableMapping):
    """Dict-like wrapper for the options of one class or function.

    The dictionary is not copied: defaults used by :meth:`get`, :meth:`setdefault` and
    :meth:`subconfig` end up in the `config` passed, such that it contains all the values
    of a run afterwards.

    Parameters
    ----------
    config : dict
        The option keys and values.
    name : str
        Name for log and warning messages, e.g. ``'trunc_params'``.

    Attributes
    ----------
    name : str
        Name for log and warning messages.
    options : dict
        The option keys and values.
    unused : set
        Keys of :attr:`options` which were not read so far.
    """
    def __init__(self, config, name):
        self.options = config
        self.unused = set(config.keys())
        self.name = name

    def as_dict(self):
        """Plain (nested) dictionary of the options, with sub-configs converted as well."""
        return {k: v.as_dict() if isinstance(v, Config) else v for k, v in self.options.items()}

    def save_yaml(self, filename):
        """Write the options into the yaml file `filename`."""
        with open(filename, 'w') as stream:
            yaml.dump(self.as_dict(), stream)

    @classmethod
    def from_yaml(cls, filename, name=None):
        """Read a `Config` from the yaml file `filename`, see :func:`load_yaml_with_py_eval`.

        The `name` defaults to the basename of `filename`.
        """
        if name is None:
            name = os.path.basename(filename)
        return cls(load_yaml_with_py_eval(filename), name)

    def __getitem__(self, key):
        val = self.options[key]
        self.log(key, "reading")
        self.unused.discard(key)
        return val

    def __setitem__(self, key, value):
        if key not in self.options:
            self.unused.add(key)
        self.options[key] = value
        self.log(key, "setting")

    def __delitem__(self, key):
        self.log(key, "deleting")
        self.unused.discard(key)
        del self.options[key]

    def __iter__(self):
        return iter(self.options)

    def __len__(self):
        return len(self.options)

    def __str__(self):
        return f"Config, name={self.name!r}, options:\n{pprint.pformat(self.options)!s}"

    def __repr__(self):
        return f"Config(<{len(self.options):d} options>, {self.name!r})"

    def __del__(self):
        self.warn_unused()

    def warn_unused(self, recursive=False):
        """Issue a warning listing the options which were not read so far.

        The warning is issued only once; it is also triggered when the `Config` is
        garbage collected.

        Parameters
        ----------
        recursive : bool
            Whether to check sub-configs as well.
        """
        unused = getattr(self, 'unused', None)
        if unused is None:
            return
        if len(unused) == 1:
            warnings.warn(f"unused option {sorted(unused)!s} for config {self.name!s}")
        elif len(unused) > 1:
            warnings.warn(f"unused options for config {self.name!s}:\n{sorted(unused)!s}")
        unused.clear()
        if recursive:
            for val in self.options.values():
                if isinstance(val, Config):
                    val.warn_unused(True)

    def keys(self):
        return self.options.keys()

    def get(self, key, default, expect_type=None):
        """Read the option `key`, setting it to `default` if it is not present.

        Parameters
        ----------
        key : str
            The option to be read.
        default :
            Value used and saved if `key` is not set.
        expect_type : None | ``'real' | 'complex'`` | (sequence of) type
            Warn if the value is neither ``None`` nor an instance of one of these types.
            ``'real'`` and ``'complex'`` stand for :class:`numbers.Real` and
            :class:`numbers.Complex`, such that numpy scalars are accepted as well.

        Returns
        -------
        val :
            The value of the option.
        """
        use_default = key not in self.options
        val = self.options.setdefault(key, default)
        self.log(key, "reading", use_default)
        self.unused.discard(key)
        if expect_type is not None and val is not None:
            self._check_type(key, val, expect_type)
        return val

    def _check_type(self, key, val, expect_type):
        if expect_type == 'real':
            expect_type = [numbers.Real]
        elif expect_type == 'complex':
            expect_type = [numbers.Complex]
        elif isinstance(expect_type, type):
            expect_type = [expect_type]
        if not any(isinstance(val, t) for t in expect_type):
            names = ", ".join(t.__name__ for t in expect_type)
            warnings.warn(f'Invalid type for key "{key}" in {self.name}: expected {names}, '
                          f'got {type(val).__name__}.',
                          stacklevel=3)

    def setdefault(self, key, default):
        """Set `key` to `default` if it is not present, without counting it as read."""
        use_default = key not in self.options
        self.options.setdefault(key, default)
        self.log(key, "set default", not use_default)
        self.unused.discard(key)

    def subconfig(self, key, default=None):
        """Read the nested options ``self[key]`` (default: empty) as a :class:`Config`."""
        use_default = key not in self.options
        if use_default:
            sub = {} if default is None else dict(default)
        else:
            sub = self.options[key]
        sub = asConfig(sub, key)
        self.options[key] = sub
        self.log(key, "subconfig", use_default)
        self.unused.discard(key)
        return sub

    def log(self, option, action="Option", use_default=False):
        """Log the first access of `option`: defaults at DEBUG, explicitly set values at INFO."""
        if option not in self.unused and not use_default:
            return
        val = self.options.get(option, "<not set>")
        if use_default:
            logger.debug("%s: %s %r=%r (default)", self.name, action, option, val)
        else:
            logger.info("%s: %s %r=%r", self.name, action, option, val)


def asConfig(config, name):
    """Wrap the dictionary `config` into a :class:`Config` named `name`.

    A `config` which already is a :class:`Config` is returned unchanged.
    """
    if isinstance(config, Config):
        return config
    return Config(config, name)


def _yaml_eval_constructor(loader, node):
    """Constructor for the ``!py_eval`` yaml tag."""
    cmd = loader.construct_scalar(node)
    if not isinstance(cmd, str):
        raise ValueError("expect string argument to `!py_eval`")
    try:
        return eval(cmd, loader.eval_context)
    except Exception:
        logger.error("Error while yaml parsing the following !py_eval command:\n%s", cmd)
        raise


class _YamlLoaderWithPyEval(yaml.FullLoader):
    eval_context = {}


yaml.add_constructor("!py_eval", _yaml_eval_constructor, Loader=_YamlLoaderWithPyEval)


def load_yaml_with_py_eval(filename=None, yaml_content=None, context={'np': np}):
    """Load yaml with the additional tag ``!py_eval``, which evaluates a python expression.

    For example, the parameter file

    .. code :: yaml

        algorithm_params:
            trunc_params:
                trunc_err: !py_eval "10.**-12"

    gives ``trunc_err = 1e-12`` as a float.

    .. warning ::

        Like pickle, it is not safe to load a yaml file from an untrusted source!

    Parameters
    ----------
    filename : str | None
        The yaml file to load.
    yaml_content : str | None
        Alternatively, the content of a yaml file.
    context : dict
        The globals for `eval`, e.g. ``{'np': np, 'pdmrg': pdmrg}``.

    Returns
    -------
    config :
        The data of the yaml file, usually a nested dictionary.
    """
    _YamlLoaderWithPyEval.eval_context = context
    if filename is not None:
        with open(filename, 'r') as stream:
            return yaml.load(stream, Loader=_YamlLoaderWithPyEval)
    elif yaml_content is not None:
        return yaml.load(yaml_content, Loader=_YamlLoaderWithPyEval)
    raise ValueError("pass either filename or yaml_content!")
