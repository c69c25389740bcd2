"""Small helpers: logging setup, nested option dictionaries and class lookup by name."""
# Copyright (C) TeNPy Developers, GNU GPLv3

from collections.abc import Mapping
import os.path

__all__ = ['sum_none', 'set_recursive', 'merge_recursive', 'find_subclass', 'setup_logging']

_not_set = object()  # sentinel


def sum_none(A, B):
    """Add `A` and `B`, where ``None`` represents a zero tensor of unknown shape."""
    if A is None:
        return B
    if B is None:
        return A
    return A + B


def set_recursive(nested_data, recursive_key, value, separator=".", insert_dicts=False):
    """Set an entry of nested dictionaries.

    Parameters
    ----------
    nested_data : dict of dict
        The nested options, e.g. read from a yaml file.
    recursive_key : str
        Keys of the nesting levels joined by `separator`; a leading `separator` is ignored.
        For example, ``"algorithm_params.trunc_params.Dmax"`` sets
        ``nested_data["algorithm_params"]["trunc_params"]["Dmax"] = value``.
    value :
        The new value.
    separator : str
        Separator between the keys of different levels.
    insert_dicts : bool
        Whether to create missing intermediate levels as empty dictionaries.
        If False, a missing level raises a `KeyError`.
    """
    if recursive_key.startswith(separator):
        recursive_key = recursive_key[len(separator):]
    *path, last = recursive_key.split(separator)
    for subkey in path:
        if insert_dicts and subkey not in nested_data:
            nested_data[subkey] = {}
        nested_data = nested_data[subkey]
    nested_data[last] = value


def merge_recursive(*nested_data, conflict='error', path=None):
    """Merge nested dictionaries, e.g. the options of several yaml files.

    Parameters
    ----------
    *nested_data: dict of dict
        The dictionaries to be merged, at least one.
    conflict: "error" | "first" | "last"
        What to do if two dictionaries have different (non-dict) values for the same key:
        raise a `ValueError`, or keep the value of the first or last one.
    path: list of str
        Keys of the current nesting level, for the error message.

    Returns
    -------
    merged: dict of dict
        The merged dictionary; the inputs are not modified.
    """
    if len(nested_data) == 0:
        raise ValueError("need at least one nested_data")
    merged = nested_data[0]
    if path is None:
        path = []
    for to_merge in nested_data[1:]:
        merged = merged.copy()
        for key, val2 in to_merge.items():
            if key not in merged:
                merged[key] = val2
                continue
            val1 = merged[key]
            if isinstance(val1, Mapping) and isinstance(val2, Mapping):
                merged[key] = merge_recursive(val1, val2, conflict=conflict,
                                              path=path + [repr(key)])
            elif conflict == 'error':
                if val1 != val2:
                    where = ':'.join(path + [repr(key)])
                    raise ValueError(f"Conflict with different values at {where}: "
                                     f"{val1!r} vs {val2!r}")
            elif conflict == 'last':
                merged[key] = val2
    return merged


def find_subclass(base_class, subclass_name):
    """Find the subclass of `base_class` called `subclass_name`, e.g. a model class.

    Parameters
    ----------
    base_class : class
        The class to start the (recursive) search of ``__subclasses__()`` from.
    subclass_name : str | type
        Name of the class to be found. A class is returned unchanged.

    Returns
    -------
    subclass : class
        The unique subclass of `base_class` (or `base_class` itself) with that name.

    Raises
    ------
    ValueError: When no or multiple subclasses of `base_class` exists with that `subclass_name`.
    """
    if not isinstance(subclass_name, str):
        if not isinstance(subclass_name, type):
            raise TypeError("expect a str or class for `subclass_name`, got " +
                            repr(subclass_name))
        return subclass_name
    found = set()
    todo = [base_class]
    checked = set()
    while todo:
        cls = todo.pop()
        if cls in checked:
            continue
        checked.add(cls)
        if cls.__name__ == subclass_name:
            found.add(cls)
        todo.extend(cls.__subclasses__())
    if len(found) == 0:
        raise ValueError(f"No subclass of {base_class.__name__} called {subclass_name!r} defined. "
                         "Maybe missing an import of a file with a custom class definition?")
    elif len(found) > 1:
        msg = f"There exist multiple subclasses of {base_class!r} with name {subclass_name!r}:"
        raise ValueError('\n'.join([msg] + [repr(c) for c in found]))
    return found.pop()


#: global switch to disable :func:`setup_logging`, e.g. while running the tests.
skip_logging_setup = False


def setup_logging(output_filename=None,
                  *,
                  filename=_not_set,
                  to_stdout="INFO",
                  to_file="INFO",
                  format="%(levelname)-8s: %(message)s",
                  datefmt=None,
                  logger_levels={},
                  dict_config=None,
                  capture_warnings=None,
                  skip_setup=None):
    """Configure the :mod:`logging` module with :func:`logging.config.dictConfig`.

    By default, the root logger gets a handler printing to stdout and a handler appending to
    a log file next to the output file, both with the same `format`.
    Under MPI, only the master rank calls this; the workers keep the logging setup of the
    environment they were started in.

    Parameters
    ----------
    output_filename : None | str
        The file where the results are saved. The log file defaults to the same name with
        the extension replaced by ``.log``.

    Options
    -------
    .. cfg:config :: log

        skip_setup: bool
            If True, return without any change. Defaults to :data:`skip_logging_setup`.
        to_stdout : None | ``"DEBUG" | "INFO" | "WARNING" | "ERROR" | "CRITICAL"``
            Minimal level of messages printed to stdout; ``None`` to disable.
        to_file : None | ``"DEBUG" | "INFO" | "WARNING" | "ERROR" | "CRITICAL"``
            Minimal level of messages written to `filename`; ``None`` to disable.
        filename : None | str
            The log file. ``None`` disables the file handler.
        logger_levels : dict(str, str)
            Levels of individual loggers, e.g. ``{'pdmrg.tools.params': 'WARNING'}``
            to hide the parameter readouts, or ``{'pdmrg.linalg.krylov_based': 'DEBUG'}``
            for the Lanczos iterations.
        format, datefmt : str
            Arguments `fmt` and `datefmt` of :class:`logging.Formatter`.
        dict_config : dict
            A full configuration for :func:`logging.config.dictConfig`, used instead of the
            options above.
        capture_warnings : bool
            Whether to route :mod:`warnings` (e.g. about unused options) into the log.
    """
    import logging
    import logging.config
    if skip_setup is None:
        skip_setup = skip_logging_setup
    if skip_setup:
        return
    if filename is _not_set:
        filename = None
        if output_filename is not None:
            root, ext = os.path.splitext(output_filename)
            assert ext != '.log'
            filename = root + '.log'
    if capture_warnings is None:
        capture_warnings = dict_config is not None or bool(to_stdout or to_file)
    if dict_config is None:
        dict_config = _default_dict_config(filename, to_stdout, to_file, format, datefmt,
                                           logger_levels)
    else:
        dict_config.setdefault('disable_existing_loggers', False)
    logging.config.dictConfig(dict_config)
    if capture_warnings:
        logging.captureWarnings(True)


def _default_dict_config(filename, to_stdout, to_file, format, datefmt, logger_levels):
    handlers = {}
    if to_stdout:
        handlers['to_stdout'] = {
            'class': 'logging.StreamHandler',
            'level': to_stdout,
            'formatter': 'custom',
            'stream': 'ext://sys.stdout',
        }
    if to_file and filename is not None:
        handlers['to_file'] = {
            'class': 'logging.FileHandler',
            'level': to_file,
            'formatter': 'custom',
            'filename': filename,
            'mode': 'a',
        }
    formatter = {'format': format, 'datefmt': datefmt}
    if '%' not in format:
        formatter['style'] = '{' if '{' in format else '$'
    dict_config = {
        'version': 1,
        'disable_existing_loggers': False,
        'formatters': {
            'custom': formatter
        },
        'handlers': handlers,
        'root': {
            'handlers': list(handlers),
            'level': 'DEBUG'
        },
        'loggers': {},
    }
    for name, level in logger_levels.items():
        if name == 'root':
            dict_config['root']['level'] = level
        else:
            dict_config['loggers'][name] = {'level': level}
    return dict_config
