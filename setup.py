# Copyright (C) TeNPy Developers, GNU GPLv3
from setuptools import setup, find_packages
import os


def read_version():
    """Read the hard-coded version from pdmrg/version.py without importing pdmrg."""
    fn = os.path.join(os.path.dirname(os.path.abspath(__file__)), 'pdmrg', 'version.py')
    with open(fn) as f:
        for line in f:
            if line.startswith('version = '):
                return line.split('=')[1].strip().strip("'\"")
    raise RuntimeError("version not found in " + fn)


if __name__ == '__main__':
    setup(
        name='pdmrg',
        version=read_version(),
        description='Distributed two-site DMRG for finite spin chains',
        license='GPLv3',
        packages=find_packages(include=['pdmrg', 'pdmrg.*']),
        python_requires='>=3.8',
        install_requires=['numpy>=1.19', 'scipy>=1.5', 'pyyaml>=5.3'],
        extras_require={
            'mpi': ['mpi4py>=3.0'],
            'test': ['pytest>=6.0'],
        },
        entry_points={
            'console_scripts': ['pdmrg-run=pdmrg:console_main'],
        },
    )
