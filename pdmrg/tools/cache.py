"""Storage for MPS site tensors and block-operator groups which are not needed in RAM.

During a sweep, only the two site tensors and the block-operator groups around the active bond
are used. All other data is put into a :class:`DictCache`, keyed ``"B{site}"`` for MPS tensors
and ``"{side}{length}"`` for groups (see :class:`~pdmrg.networks.environment.OperatorGroupIO`).
The cache writes through to a :class:`Storage`: the plain :class:`Storage` keeps references in
RAM, :class:`PickleStorage` and :class:`NumpyStorage` write one file per key into a directory.
A :class:`CacheFile` owns its storage and needs to be closed, e.g. with a ``with`` statement::

    with CacheFile.open("PickleStorage", directory="tmp_groups") as cache:
        cache['r3'] = right_group
        right_group = cache.pop('r3')
"""
# Copyright (C) TeNPy Developers, GNU GPLv3

import pickle
import numpy as np
import shutil
import tempfile
import collections.abc
import pathlib
import logging
logger = logging.getLogger(__name__)

__all__ = ["DictCache", "CacheFile", "Storage", "PickleStorage", "NumpyStorage"]


class DictCache(collections.abc.MutableMapping):
    """Dictionary-like view of a :class:`Storage`.

    Parameters
    ----------
    storage : :class:`Storage`
        Where the data is saved.

    Attributes
    ----------
    storage : :class:`Storage`
        The storage passed during initialization.
    keys_stored : set
        Keys for which `storage` holds data.
    """
    def __init__(self, storage):
        self.storage = storage
        self.keys_stored = set()

    @classmethod
    def trivial(cls):
        """A cache which keeps everything in RAM."""
        return cls(Storage.open())

    def __getitem__(self, key):
        if key not in self.keys_stored:
            raise KeyError(f"{key!r} not in cache")
        logger.debug("cache: load %r", key)
        return self.storage.load(key)

    def __setitem__(self, key, val):
        self.keys_stored.add(key)
        logger.debug("cache: save %r", key)
        self.storage.save(key, val)

    def __delitem__(self, key):
        if key in self.keys_stored:
            self.keys_stored.remove(key)
            self.storage.delete(key)

    def __contains__(self, key):
        return key in self.keys_stored

    def __iter__(self):
        return iter(self.keys_stored)

    def __len__(self):
        return len(self.keys_stored)

    def __bool__(self):
        """Whether the underlying storage is still open."""
        return bool(self.storage)

    def pop(self, key):
        """Load `key` and remove it from the storage."""
        data = self[key]
        del self[key]
        return data


class CacheFile(DictCache):
    """A :class:`DictCache` owning its storage; :meth:`close` it after use."""
    @classmethod
    def open(cls, storage_class="Storage", delete=True, **storage_kwargs):
        """Open a new storage and wrap it into a cache.

        Parameters
        ----------
        storage_class : ``"Storage" | "PickleStorage" | "NumpyStorage"``
            How to save the data: in RAM, or on disk with :mod:`pickle` or :func:`numpy.save`.
        delete : bool
            Whether to remove the directory again when the cache is closed.
        **storage_kwargs :
            Further keyword arguments for the :meth:`Storage.open` of the `storage_class`.
        """
        classes = {c.__name__: c for c in [Storage, PickleStorage, NumpyStorage]}
        if storage_class not in classes:
            raise ValueError(f"unknown storage_class {storage_class!r}")
        return cls(classes[storage_class].open(delete=delete, **storage_kwargs))

    @classmethod
    def trivial(cls):
        return cls(Storage.open())

    def close(self):
        self.storage.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()


class Storage:
    """Keeps the saved data in a dictionary in RAM; base class for the disk storages."""
    #: Whether the data stays in memory.
    trivial = True

    def __init__(self):
        self._opened = True

    @classmethod
    def open(cls, delete=None):
        res = cls()
        res.data = {}
        return res

    def close(self):
        """Free the data; the storage can't be used afterwards."""
        self._close()
        self.data.clear()

    def _close(self):
        if not self._opened:
            raise ValueError("storage was already closed")
        self._opened = False

    def __bool__(self):
        return self._opened

    def _check_open(self):
        if not self._opened:
            raise ValueError("trying to access a closed storage")

    def load(self, key):
        self._check_open()
        return self.data[key]

    def save(self, key, val):
        self._check_open()
        self.data[key] = val

    def delete(self, key):
        self._check_open()
        del self.data[key]


class PickleStorage(Storage):
    """Saves each key into a separate file ``directory/key.pkl`` with :mod:`pickle`.

    Parameters
    ----------
    directory : path-like
        An existing directory.
    """
    trivial = False

    #: filename extension
    extension = '.pkl'

    def __init__(self, directory):
        super().__init__()
        self.directory = pathlib.Path(directory)
        self._delete_directory = None
        self._opened = self.directory.is_dir()

    @classmethod
    def open(cls, directory=None, tmpdir=None, delete=True):
        """Create (or reuse) `directory` and open a storage in it.

        Parameters
        ----------
        directory : path-like | None
            The directory for the files. If `None`, create a temporary one in `tmpdir`
            with :func:`tempfile.mkdtemp`.
        tmpdir : path-like | None
            Parent directory for the temporary directory.
        delete : bool
            Whether :meth:`close` removes the directory including all files.
        """
        if directory is None:
            directory = tempfile.mkdtemp(prefix='pdmrg_' + cls.__name__, dir=tmpdir)
        directory = pathlib.Path(directory)
        logger.info("%s: create directory %s", cls.__name__, directory)
        directory.mkdir(parents=True, exist_ok=True)
        res = cls(directory)
        if delete:
            res._delete_directory = directory.absolute()
        return res

    def close(self):
        self._close()
        if self._delete_directory is not None:
            logger.info("%s: remove directory %s", self.__class__.__name__,
                        self._delete_directory)
            shutil.rmtree(self._delete_directory)

    def _filename(self, key):
        return self.directory / (key + self.extension)

    def load(self, key):
        self._check_open()
        with open(self._filename(key), 'rb') as f:
            return pickle.load(f)

    def save(self, key, value):
        self._check_open()
        with open(self._filename(key), 'wb') as f:
            pickle.dump(value, f, protocol=pickle.HIGHEST_PROTOCOL)

    def delete(self, key):
        self._check_open()
        fn = self._filename(key)
        if fn.exists():
            fn.unlink()


class NumpyStorage(PickleStorage):
    """Like :class:`PickleStorage`, but with :func:`numpy.save`; only for single ndarrays."""
    extension = '.npy'

    def load(self, key):
        self._check_open()
        return np.load(self._filename(key))

    def save(self, key, value):
        self._check_open()
        np.save(self._filename(key), value)
