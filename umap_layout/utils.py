# Author: Leland McInnes <leland.mcinnes@gmail.com>
#
# License: BSD 3 clause

import time

import numpy as np
import numba

# SplitMix64 constants
GOLDEN_GAMMA = np.uint64(0x9E3779B97F4A7C15)
MIX_MULTIPLIER_1 = np.uint64(0xBF58476D1CE4E5B9)
MIX_MULTIPLIER_2 = np.uint64(0x94D049BB133111EB)

INT31_MAX = np.iinfo(np.int32).max


@numba.njit("u8(u8)", cache=True)
def splitmix64(z):
    """The SplitMix64 finalizer; a bijective scrambling of a 64 bit word.

    Parameters
    ----------
    z: uint64
        The word to scramble.

    Returns
    -------
    The scrambled uint64 value.
    """
    z = (z ^ (z >> np.uint64(30))) * MIX_MULTIPLIER_1
    z = (z ^ (z >> np.uint64(27))) * MIX_MULTIPLIER_2
    return z ^ (z >> np.uint64(31))


@numba.njit("i8(i8, i8, i8)", cache=True)
def counter_rand_int(seed, stream, counter):
    """A counter based (pseudo)-random number generator. There is no
    internal state; the same ``(seed, stream, counter)`` triple always
    produces the same value, which makes it safe to call from any number
    of parallel workers at once.

    Parameters
    ----------
    seed: int
        The global seed.

    stream: int
        The stream id; typically the index of the worker drawing numbers.

    counter: int
        The index of the draw within the stream.

    Returns
    -------
    A (pseudo)-random non-negative int in the range [0, 2**31)
    """
    key = splitmix64(np.uint64(seed) + GOLDEN_GAMMA * np.uint64(stream + 1))
    value = splitmix64(key + GOLDEN_GAMMA * np.uint64(counter + 1))
    return np.int64(value >> np.uint64(33))


def clock_seed():
    """A seed derived from the wall clock, in milliseconds since the epoch."""
    return int(time.time() * 1000) % INT31_MAX


# Generates a timestamp for use in logging messages when verbose=True
def ts():
    return time.ctime(time.time())


def disconnected_vertices(graph):
    """
    Returns a boolean vector indicating which vertices of the graph have no
    edges. These vertices receive no attractive force and are never used as
    the head of a negative sample, so they keep whatever position they were
    initialized with.

    Parameters
    ----------
    graph: sparse matrix of shape (n_vertices, n_vertices)
        The weighted graph of 1-simplices.

    Returns
    -------
    A boolean vector indicating which vertices are disconnected
    """
    graph = graph.tocsr()
    degree = np.asarray(abs(graph).sum(axis=1)).flatten()
    degree += np.asarray(abs(graph).sum(axis=0)).flatten()
    return degree == 0
