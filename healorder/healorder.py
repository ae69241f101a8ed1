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
from functools import partial

import jax
import jax.numpy as jnp
import numpy

from .errors import IndexOutOfRange, InvalidResolution
from .tables import PIXMAX, XMAX, XMID, get_tables

logger = logging.getLogger(__name__)

# with 32 bit integers 12*nside**2 must stay below 2**31
NS_MAX_X32 = XMAX
NS_MAX_X64 = 2**20

SCHEMES = ('ring', 'nest')

def index_dtype():
    # widest integer JAX will hold; every kernel computes in it
    return jax.dtypes.canonicalize_dtype(numpy.int64)

def x64_enabled():
    return index_dtype() == numpy.int64

def ns_max():
    return NS_MAX_X64 if x64_enabled() else NS_MAX_X32

def nside2npix(nside):
    return 12*nside*nside

def npix2nside(npix):
    npix = numpy.asarray(npix)
    return numpy.round(numpy.sqrt(npix / 12)).astype(npix.dtype)

def get_nside(map):
    return npix2nside(len(map))

def isnsidelegal(nside):
    return 0 < nside <= ns_max() and (nside & (nside - 1)) == 0

def check_nside(nside):
    if isinstance(nside, (bool, numpy.bool_)) or not isinstance(nside, (int, numpy.integer)):
        raise InvalidResolution(f"nside should be an integer, got {nside!r}")
    nside = int(nside)
    if not isnsidelegal(nside):
        raise InvalidResolution(f"nside should be a power of 2 in [1, {ns_max()}], got {nside}")
    return nside

def check_index(nside, hp, name):
    hp = numpy.asarray(hp)
    if not numpy.issubdtype(hp.dtype, numpy.integer):
        raise TypeError(f"{name} should be an integer, got dtype {hp.dtype}")
    npix = nside2npix(nside)
    if hp.size > 0 and (hp.min() < 0 or hp.max() > npix - 1):
        raise IndexOutOfRange(f"{name} out of range [0, {npix - 1}] for nside={nside}")
    return hp

def check_scheme(scheme):
    if scheme not in SCHEMES:
        raise ValueError(f"unknown pixel scheme {scheme!r}, expected one of {SCHEMES}")

def cap_ring(p):
    # Ring r, counted from the pole, holding the p-th (1-based) pixel of a
    # polar cap: 2 r (r - 1) < p <= 2 r (r + 1).
    hip = p / 2.0
    r = jnp.sqrt(hip - jnp.sqrt(jnp.floor(hip))).astype(p.dtype) + 1
    # The sqrt can be one ring off once p no longer fits the float mantissa,
    # so settle r with exact integer comparisons.
    r = jnp.where(2 * r * (r - 1) >= p, r - 1, r)
    r = jnp.where(2 * r * (r + 1) < p, r + 1, r)
    return r

def healpixl_ring_to_nested(tables, nside, ipring):
    dtype = index_dtype()
    ipring = jnp.asarray(ipring).astype(dtype)
    npix = nside2npix(nside)
    nl2 = 2 * nside
    nl4 = 4 * nside
    ncap = nl2 * (nside - 1) # points in each polar cap, 0 for nside = 1
    ipring1 = ipring + 1

    # Each branch gives the face, the ring number counted from the north pole,
    # the 1-based position in the ring, a quarter of the ring length and kshift.
    def north_cap():
        irn = cap_ring(ipring1)
        iphi = ipring1 - 2 * irn * (irn - 1)
        face_num = (iphi - 1) // irn # in [0, 3]
        return face_num, irn, iphi, irn, jnp.zeros_like(irn)

    def equatorial():
        ip = ipring1 - ncap - 1
        irn = ip // nl4 + nside
        iphi = jnp.mod(ip, nl4) + 1
        kshift = jnp.mod(irn + nside, 2) # 1 if odd, 0 otherwise
        ire = irn - nside + 1 # in [1, 2*nside + 1]
        irm = nl2 + 2 - ire
        # half-face boundaries seen from either diagonal
        ifm = (iphi - ire // 2 + nside - 1) // nside
        ifp = (iphi - irm // 2 + nside - 1) // nside
        face_num = jnp.where(ifp == ifm, jnp.mod(ifp, 4) + 4,
            jnp.where(ifp + 1 == ifm,
                ifp, # (half-)faces 0 to 3
                ifp + 7 # (half-)faces 8 to 11
            )
        )
        return face_num, irn, iphi, jnp.full_like(irn, nside), kshift

    def south_cap():
        ip = npix - ipring1 + 1
        irs = cap_ring(ip) # counted from the south pole
        iphi = 4 * irs + 1 - (ip - 2 * irs * (irs - 1))
        face_num = (iphi - 1) // irs + 8 # in [8, 11]
        return face_num, nl4 - irs, iphi, irs, jnp.zeros_like(irs)

    face_num, irn, iphi, nr, kshift = jax.lax.cond(ipring1 <= ncap,
        north_cap,
        lambda: jax.lax.cond(ipring1 <= nl2 * (5 * nside + 1), equatorial, south_cap)
    )

    # (x, y) on the face
    irt = irn - tables.jrll[face_num + 1].astype(dtype) * nside + 1 # in [-nside+1, 0]
    ipt = 2 * iphi - tables.jpll[face_num + 1].astype(dtype) * nr - kshift - 1 # in [-nside+1, nside-1]
    # face 4 straddles phi = 0
    ipt = jnp.where(ipt >= nl2, ipt - 8 * nside, ipt)

    ix = (ipt - irt) // 2
    iy = -(ipt + irt) // 2

    def interleave(xc, yc):
        return tables.x2pix[xc + 1].astype(dtype) + tables.y2pix[yc + 1].astype(dtype)

    ipf = (
        interleave(ix // XMAX, iy // XMAX) * (XMAX * XMAX)
        + interleave(jnp.mod(ix, XMAX), jnp.mod(iy, XMAX))
    ) # in [0, nside**2 - 1]
    return ipf + face_num * (nside * nside)

def healpixl_nested_to_ring(tables, nside, ipnest):
    dtype = index_dtype()
    ipnest = jnp.asarray(ipnest).astype(dtype)
    npix = nside2npix(nside)
    npface = nside * nside
    nl4 = 4 * nside
    ncap = 2 * nside * (nside - 1)

    face_num = ipnest // npface # in [0, 11]
    ipf = jnp.mod(ipnest, npface)

    # x, y on the face from the three base-PIXMAX digits of ipf
    ip_low = jnp.mod(ipf, PIXMAX)
    ip_trunc = ipf // PIXMAX
    ip_med = jnp.mod(ip_trunc, PIXMAX)
    ip_hi = ip_trunc // PIXMAX

    def deinterleave(table):
        return (
            PIXMAX * table[ip_hi].astype(dtype)
            + XMID * table[ip_med].astype(dtype)
            + table[ip_low].astype(dtype)
        )

    ix = deinterleave(tables.pix2x)
    iy = deinterleave(tables.pix2y)

    jrt = ix + iy # vertical, in [0, 2*(nside-1)]
    jpt = ix - iy # horizontal, in [-nside+1, nside-1]
    jr = tables.jrll[face_num + 1].astype(dtype) * nside - jrt - 1 # ring number in [1, 4*nside-1]

    # quarter ring length, pixels in earlier rings, kshift
    def north_cap():
        return jr, 2 * jr * (jr - 1), jnp.zeros_like(jr)

    def equatorial():
        return jnp.full_like(jr, nside), ncap + nl4 * (jr - nside), jnp.mod(jr - nside, 2)

    def south_cap():
        nr = nl4 - jr
        return nr, npix - 2 * (nr + 1) * nr, jnp.zeros_like(jr)

    nr, n_before, kshift = jax.lax.cond(jr < nside,
        north_cap,
        lambda: jax.lax.cond(jr > 3 * nside, south_cap, equatorial)
    )

    # the numerator is always even, so flooring matches truncation
    jp = (tables.jpll[face_num + 1].astype(dtype) * nr + jpt + 1 + kshift) // 2 # in [1, 4*nr]
    jp = jnp.where(jp > nl4, jp - nl4, jp)
    jp = jnp.where(jp < 1, jp + nl4, jp)

    return n_before + jp - 1 # in [0, npix-1]

scheme_converters = {
    ('ring', 'nest'): healpixl_ring_to_nested,
    ('nest', 'ring'): healpixl_nested_to_ring
}

@partial(jax.jit, static_argnums=(0, 2))
def convert_indices(kernel, tables, nside, hp):
    return jax.vmap(partial(kernel, tables, nside))(hp)

def _convert(kernel, name, nside, hp, tables):
    nside = check_nside(nside)
    hp = check_index(nside, hp, name)
    tables = get_tables() if tables is None else tables
    return convert_indices(kernel, tables, nside, jnp.asarray(hp.astype(index_dtype())).ravel()).reshape(hp.shape)

##############
# API funcs
##############

def scheme2scheme(in_scheme, out_scheme, nside, hp, tables=None):
    check_scheme(in_scheme)
    check_scheme(out_scheme)
    if in_scheme == out_scheme:
        return jnp.asarray(hp).astype(index_dtype())
    tables = get_tables() if tables is None else tables
    return scheme_converters[in_scheme, out_scheme](tables, nside, hp)

def ring2nest(nside, ipring, tables=None):
    return _convert(healpixl_ring_to_nested, 'ipring', nside, ipring, tables)

def nest2ring(nside, ipnest, tables=None):
    return _convert(healpixl_nested_to_ring, 'ipnest', nside, ipnest, tables)

def ring_to_nested(nside, ring_index, tables=None):
    """
    Convert one RING pixel index to its NESTED index.

    Raises InvalidResolution if nside is not a power of 2 in [1, ns_max()]
    and IndexOutOfRange if ring_index is outside [0, 12*nside**2 - 1].
    """
    if numpy.ndim(ring_index) != 0:
        raise TypeError("ring_index should be a scalar, use ring2nest for arrays")
    return int(ring2nest(nside, ring_index, tables=tables))

def nested_to_ring(nside, nest_index, tables=None):
    """
    Convert one NESTED pixel index to its RING index.

    Raises InvalidResolution if nside is not a power of 2 in [1, ns_max()]
    and IndexOutOfRange if nest_index is outside [0, 12*nside**2 - 1].
    """
    if numpy.ndim(nest_index) != 0:
        raise TypeError("nest_index should be a scalar, use nest2ring for arrays")
    return int(nest2ring(nside, nest_index, tables=tables))

def convert_map(in_scheme, out_scheme, map, tables=None):
    check_scheme(in_scheme)
    check_scheme(out_scheme)
    map = jnp.asarray(map)
    nside = check_nside(int(get_nside(map)))
    if nside2npix(nside) != len(map):
        raise InvalidResolution(f"map of length {len(map)} is not a full sky healpix map")
    if in_scheme == out_scheme:
        return map
    logger.debug("reordering nside=%d map from %s to %s", nside, in_scheme, out_scheme)
    tables = get_tables() if tables is None else tables
    # for each output pixel, the input pixel it is read from
    permutation = convert_indices(scheme_converters[out_scheme, in_scheme], tables, nside, jnp.arange(nside2npix(nside)))
    return map[permutation]
