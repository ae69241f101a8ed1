"""
Copyright (c) 2023 ghcollin

Permission is hereby granted, free of charge, to any person obtaining a copy
of this software and associated documentation files (the "Software"), to deal
in the Software without restriction, including without limitation the rights
to use, copy, modify, merge, publish, distribute, sublicense, and/or sell
copies of the Software, and to permit persons to whom the Software is
furnished to do so, subject to the following conditions:

The above copyright notice and this permission notice shall be included in all
copies or substantial portions of the Software.

THE SOFTWARE IS PROVIDED "AS IS", WITHOUT WARRANTY OF ANY KIND, EXPRESS OR
IMPLIED, INCLUDING BUT NOT LIMITED TO THE WARRANTIES OF MERCHANTABILITY,
FITNESS FOR A PARTICULAR PURPOSE AND NONINFRINGEMENT. IN NO EVENT SHALL THE
AUTHORS OR COPYRIGHT HOLDERS BE LIABLE FOR ANY CLAIM, DAMAGES OR OTHER
LIABILITY, WHETHER IN AN ACTION OF CONTRACT, TORT OR OTHERWISE, ARISING FROM,
OUT OF OR IN CONNECTION WITH THE SOFTWARE OR THE USE OR OTHER DEALINGS IN THE
SOFTWARE.
"""

import logging
import threading
from typing import NamedTuple

import jax.numpy as jnp
import numpy

logger = logging.getLogger(__name__)

XMAX = 4096
PIXMAX = 262144
XMID = 512

# coordinates of the lowest corner of each face, indexed by face + 1
JRLL = numpy.array([0, 2, 2, 2, 2, 3, 3, 3, 3, 4, 4, 4, 4]) # in units of nside
JPLL = numpy.array([0, 1, 3, 5, 7, 0, 2, 4, 6, 1, 3, 5, 7]) # in units of nside/2

JRLL.setflags(write=False)
JPLL.setflags(write=False)

class OrderTables(NamedTuple):
    """Lookup tables shared by the ring/nest converters.

    Being a NamedTuple of arrays, this is a JAX pytree and can be passed
    straight through ``jax.jit`` and ``jax.vmap``.
    """
    x2pix: jnp.ndarray
    y2pix: jnp.ndarray
    pix2x: jnp.ndarray
    pix2y: jnp.ndarray
    jrll: jnp.ndarray
    jpll: jnp.ndarray

def mk_pix2xy(pixmax=PIXMAX):
    # Bits of the pixel number are taken alternately for x and y:
    #    k = ... y1 x1 y0 x0
    kpix = numpy.arange(pixmax + 1, dtype=numpy.int64)
    ix = numpy.zeros_like(kpix)
    iy = numpy.zeros_like(kpix)
    ip = 1 # bit position in x and y
    jpix = kpix.copy()
    while jpix.any():
        ix += numpy.bitwise_and(jpix, 1) * ip
        jpix = numpy.right_shift(jpix, 1)
        iy += numpy.bitwise_and(jpix, 1) * ip
        jpix = numpy.right_shift(jpix, 1)
        ip *= 2
    return ix, iy

def mk_xy2pix(xmax=XMAX):
    """
    Number of the pixel lying at coordinate i - 1, for i in [1, xmax].

    If i - 1 = sum_p b_p 2^p then x2pix[i] = sum_p b_p 4^p and
    y2pix[i] = 2 * x2pix[i]. Entry 0 is unused and left at zero.
    """
    j = numpy.arange(-1, xmax, dtype=numpy.int64)
    j[0] = 0
    k = numpy.zeros_like(j)
    ip = 1
    while j.any():
        k += numpy.bitwise_and(j, 1) * ip
        j = numpy.right_shift(j, 1)
        ip *= 4
    return k, 2 * k

def build_numpy_tables():
    x2pix, y2pix = mk_xy2pix()
    pix2x, pix2y = mk_pix2xy()
    tables = (x2pix, y2pix, pix2x, pix2y, JRLL.copy(), JPLL.copy())
    for t in tables:
        t.setflags(write=False)
    return tables

def build_tables():
    tables = OrderTables(*[ jnp.asarray(t.astype(numpy.int32)) for t in build_numpy_tables() ])
    logger.debug("built ring/nest tables: xmax=%d, pixmax=%d", XMAX, PIXMAX)
    return tables

class LazyTables:
    """Builds an OrderTables once, on first request, and hands out the same one after."""

    def __init__(self, builder=build_tables):
        self._builder = builder
        self._tables = None
        self._lock = threading.Lock()

    def get(self):
        tables = self._tables
        if tables is None:
            with self._lock:
                if self._tables is None:
                    self._tables = self._builder()
                tables = self._tables
        return tables

    def is_built(self):
        return self._tables is not None

_default_tables = LazyTables()

def get_tables():
    return _default_tables.get()
