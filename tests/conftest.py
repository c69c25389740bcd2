"""Provide test configuration: disable the logging setup and register the markers."""
# Copyright (C) TeNPy Developers, GNU GPLv3

import numpy as np
import pytest

from pdmrg.tools import misc

# the tests should not overwrite the logging configuration of pytest
misc.skip_logging_setup = True


def pytest_configure(config):
    config.addinivalue_line("markers",
                            "slow: marks tests as slow (deselect with '-m \"not slow\"')")


@pytest.fixture
def np_random():
    return np.random.default_rng(seed=12345)
