# Copyright Red Hat
#
# tests/test_config.py - zfh configuration tests
#
# This file is part of the zfh project.
#
# SPDX-License-Identifier: Apache-2.0
from os.path import join
import unittest
import tempfile
import logging
import shutil

from zfh import ZfhArgumentError
from zfh.config import ZfhConfig, DEFAULT_MAX_CONTENT_DIFF_SIZE

log = logging.getLogger()

_FULL_CONFIG = """[global]
debug = reconcile,table

[browser]
sort_column = Name
sort_inverted = yes
watch = no

[diff]
use_magic = true
max_content_diff_size = 4096
"""


class ConfigTests(unittest.TestCase):
    """
    Test ZfhConfig loading
    """

    def setUp(self):
        log.debug("Preparing %s", self._testMethodName)
        self.cfg_dir = tempfile.mkdtemp(prefix="zfh-cfg-")

    def tearDown(self):
        log.debug("Tearing down %s", self._testMethodName)
        shutil.rmtree(self.cfg_dir)

    def _write(self, text):
        cfg_file = join(self.cfg_dir, "zfh.conf")
        with open(cfg_file, "w", encoding="utf8") as fp:
            fp.write(text)
        return cfg_file

    def test_defaults(self):
        config = ZfhConfig()
        self.assertEqual(config.debug, "")
        self.assertEqual(config.sort_column, "type")
        self.assertFalse(config.sort_inverted)
        self.assertTrue(config.watch)
        self.assertFalse(config.use_magic)
        self.assertEqual(config.max_content_diff_size, DEFAULT_MAX_CONTENT_DIFF_SIZE)

    def test_from_file_missing_returns_defaults(self):
        config = ZfhConfig.from_file(join(self.cfg_dir, "missing.conf"))
        self.assertEqual(config, ZfhConfig())

    def test_from_file(self):
        config = ZfhConfig.from_file(self._write(_FULL_CONFIG))
        self.assertEqual(config.debug, "reconcile,table")
        self.assertEqual(config.sort_column, "name")
        self.assertTrue(config.sort_inverted)
        self.assertFalse(config.watch)
        self.assertTrue(config.use_magic)
        self.assertEqual(config.max_content_diff_size, 4096)

    def test_from_file_partial(self):
        config = ZfhConfig.from_file(self._write("[browser]\nsort_column = size\n"))
        self.assertEqual(config.sort_column, "size")
        self.assertTrue(config.watch)

    def test_from_file_bad_boolean(self):
        with self.assertRaises(ZfhArgumentError):
            ZfhConfig.from_file(self._write("[browser]\nwatch = maybe\n"))

    def test_from_file_bad_integer(self):
        with self.assertRaises(ZfhArgumentError):
            ZfhConfig.from_file(self._write("[diff]\nmax_content_diff_size = lots\n"))

    def test_from_file_malformed(self):
        with self.assertRaises(ZfhArgumentError):
            ZfhConfig.from_file(self._write("this is not an ini file\n"))

    def test_bad_sort_column(self):
        with self.assertRaises(ZfhArgumentError):
            ZfhConfig(sort_column="colour")

    def test_bad_debug_option(self):
        with self.assertRaises(ZfhArgumentError):
            ZfhConfig(debug="reconcile,bogus")

    def test_negative_max_size(self):
        with self.assertRaises(ZfhArgumentError):
            ZfhConfig(max_content_diff_size=-1)
