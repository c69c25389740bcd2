"""The closed set of commands the master broadcasts to the workers.

Each command is a small immutable record carrying only the payload its handler needs, and
has a class attribute `order`, a member of the totally ordered :class:`Order`.
A bond update always broadcasts the commands in the sequence
:class:`Lanczos`, :class:`MatVecDynamic`, any number of :class:`MatVecStatic`,
:class:`LanczosFinish`, :class:`SVD`, and one of :class:`GrowLeftEnv` or :class:`GrowRightEnv`.
The initialization of the environments is a sequence of :class:`InitGrowEnvGrow` closed by
:class:`InitGrowEnvFinish`, and the whole run is enclosed by :class:`ProgramStart` and
:class:`ProgramFinal`.

A worker that receives any other command than the ones allowed in its current state raises a
:class:`ProtocolViolation`, see :func:`expect`.
"""
# Copyright (C) TeNPy Developers, GNU GPLv3

from collections import namedtuple
from enum import IntEnum

__all__ = [
    'Order', 'ProtocolViolation', 'expect', 'ProgramStart', 'ProgramFinal', 'Lanczos',
    'MatVecDynamic', 'MatVecStatic', 'LanczosFinish', 'SVD', 'GrowLeftEnv', 'GrowRightEnv',
    'InitGrowEnvGrow', 'InitGrowEnvFinish', 'ALL_COMMANDS'
]


class Order(IntEnum):
    """Identifier of the commands, in the order in which they first appear in a run."""
    PROGRAM_START = 0
    INIT_GROW_ENV_GROW = 1
    INIT_GROW_ENV_FINISH = 2
    LANCZOS = 3
    MATVEC_DYNAMIC = 4
    MATVEC_STATIC = 5
    LANCZOS_FINISH = 6
    SVD = 7
    GROW_LEFT_ENV = 8
    GROW_RIGHT_ENV = 9
    PROGRAM_FINAL = 10


class ProtocolViolation(Exception):
    """Raised if a process receives a command or message it doesn't expect.

    The master and the workers run in lock-step; after such a desynchronization there is no
    way to recover, so this exception is fatal, see :func:`~pdmrg.mpi_parallel.helpers.fatal`.
    """
    pass


def _command(name, order, fields, doc):
    base = namedtuple(name, fields)
    namespace = {'__slots__': (), '__module__': __name__, 'order': order, '__doc__': doc}
    return type(name, (base, ), namespace)


ProgramStart = _command('ProgramStart', Order.PROGRAM_START, ['H_MPO'],
                        """Start of a DMRG run; the workers keep a local copy of the MPO.""")

InitGrowEnvGrow = _command(
    'InitGrowEnvGrow', Order.INIT_GROW_ENV_GROW, ['site', 'num_tasks', 'B'],
    """Grow the initial right group over `site`, given the right-canonical `B` of that site.

    The `num_tasks` tasks are distributed by the master, one per row of the MPO matrix.""")

InitGrowEnvFinish = _command('InitGrowEnvFinish', Order.INIT_GROW_ENV_FINISH, [],
                             """The initial right groups are complete.""")

Lanczos = _command('Lanczos', Order.LANCZOS, ['l_site'],
                   """Start of the update of the bond ``(l_site, l_site + 1)``.""")

MatVecDynamic = _command(
    'MatVecDynamic', Order.MATVEC_DYNAMIC, ['num_tasks', 'theta'],
    """First matvec of a bond: receive the term-group tasks, keep them and apply them to `theta`.

    Invalidates all cached block-site and site-block operators of the previous bond.""")

MatVecStatic = _command('MatVecStatic', Order.MATVEC_STATIC, ['theta'],
                        """Further matvec with the cached operators of the current bond.""")

LanczosFinish = _command('LanczosFinish', Order.LANCZOS_FINISH, [],
                         """The eigensolver of the current bond is done.""")

SVD = _command('SVD', Order.SVD, ['num_tasks'],
               """Decompose the `num_tasks` independent blocks of the optimized two-site
               wave function.""")

GrowLeftEnv = _command(
    'GrowLeftEnv', Order.GROW_LEFT_ENV, ['A'],
    """Absorb the new left-canonical `A` into the cached block-site operators; ends the bond.""")

GrowRightEnv = _command(
    'GrowRightEnv', Order.GROW_RIGHT_ENV, ['B'],
    """Absorb the new right-canonical `B` into the cached site-block operators; ends the bond.""")

ProgramFinal = _command('ProgramFinal', Order.PROGRAM_FINAL, [], """End of the DMRG run.""")

#: all command classes, sorted by their `order`
ALL_COMMANDS = (ProgramStart, InitGrowEnvGrow, InitGrowEnvFinish, Lanczos, MatVecDynamic,
                MatVecStatic, LanczosFinish, SVD, GrowLeftEnv, GrowRightEnv, ProgramFinal)


def expect(cmd, *commands):
    """Check that `cmd` is an instance of one of the given command classes.

    Parameters
    ----------
    cmd :
        The received command.
    *commands :
        The command classes allowed in the current state.

    Returns
    -------
    cmd :
        The unchanged `cmd`, for convenience.

    Raises
    ------
    ProtocolViolation
        If `cmd` is not an instance of any of the `commands`.
    """
    if not isinstance(cmd, commands):
        expected = ", ".join(c.__name__ for c in commands)
        raise ProtocolViolation(f"expected one of [{expected}], got {cmd!r}")
    return cmd
