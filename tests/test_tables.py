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

import unittest
import threading
import time
from concurrent.futures import ThreadPoolExecutor
import jax
jax.config.update('jax_platform_name', 'cpu')
jax.config.update("jax_enable_x64", True)
import healorder
from healorder.tables import build_numpy_tables, mk_pix2xy, mk_xy2pix, JRLL, JPLL
import numpy

class TestTables(unittest.TestCase):

    def test_sizes(self):
        tables = healorder.build_tables()
        self.assertEqual(tables.x2pix.shape, (healorder.XMAX + 1,))
        self.assertEqual(tables.y2pix.shape, (healorder.XMAX + 1,))
        self.assertEqual(tables.pix2x.shape, (healorder.PIXMAX + 1,))
        self.assertEqual(tables.pix2y.shape, (healorder.PIXMAX + 1,))
        self.assertEqual(tables.jrll.shape, (13,))
        self.assertEqual(tables.jpll.shape, (13,))

    def test_deterministic(self):
        first = build_numpy_tables()
        second = build_numpy_tables()
        for a, b in zip(first, second):
            self.assertTrue((a == b).all())

        first_jax, second_jax = healorder.build_tables(), healorder.build_tables()
        for a, b in zip(first_jax, second_jax):
            self.assertTrue((numpy.asarray(a) == numpy.asarray(b)).all())

    def test_known_values(self):
        x2pix, y2pix = mk_xy2pix()
        self.assertEqual(list(x2pix[:6]), [0, 0, 1, 4, 5, 16])
        self.assertTrue((y2pix == 2 * x2pix).all())
        # 4095 = 0b111111111111 spreads to every even bit of 24
        self.assertEqual(x2pix[4096], 0x555555)

        pix2x, pix2y = mk_pix2xy()
        # 0b1011: x takes bits 0 and 2, y takes bits 1 and 3
        self.assertEqual((pix2x[0b1011], pix2y[0b1011]), (1, 3))
        self.assertEqual((pix2x[0], pix2y[0]), (0, 0))
        self.assertEqual((pix2x[healorder.PIXMAX - 1], pix2y[healorder.PIXMAX - 1]), (511, 511))
        self.assertEqual((pix2x[healorder.PIXMAX], pix2y[healorder.PIXMAX]), (512, 0))

    def test_interleave_inverse(self):
        x2pix, y2pix, pix2x, pix2y, _, _ = build_numpy_tables()
        xs, ys = numpy.meshgrid(numpy.arange(healorder.XMID), numpy.arange(healorder.XMID))
        pix = x2pix[xs + 1] + y2pix[ys + 1]
        self.assertTrue((pix2x[pix] == xs).all())
        self.assertTrue((pix2y[pix] == ys).all())
        self.assertEqual(len(numpy.unique(pix)), healorder.XMID**2)

    def test_face_constants(self):
        self.assertEqual(JRLL[0], 0)
        self.assertEqual(JPLL[0], 0)
        self.assertEqual(list(JRLL[1:]), [2]*4 + [3]*4 + [4]*4)
        self.assertEqual(list(JPLL[1:]), [1, 3, 5, 7, 0, 2, 4, 6, 1, 3, 5, 7])

    def test_read_only(self):
        for table in build_numpy_tables():
            with self.assertRaises(ValueError):
                table[0] = 1
        with self.assertRaises(ValueError):
            JRLL[1] = 0

    def test_lazy_tables_build_once(self):
        calls = []
        calls_lock = threading.Lock()

        def slow_builder():
            with calls_lock:
                calls.append(1)
            time.sleep(0.05)
            return object()

        lazy = healorder.LazyTables(slow_builder)
        self.assertFalse(lazy.is_built())
        with ThreadPoolExecutor(max_workers=8) as pool:
            results = list(pool.map(lambda _: lazy.get(), range(32)))

        self.assertEqual(len(calls), 1)
        self.assertTrue(all(r is results[0] for r in results))
        self.assertTrue(lazy.is_built())

    def test_default_tables_shared(self):
        self.assertIs(healorder.get_tables(), healorder.get_tables())


if __name__ == '__main__':
    unittest.main()
