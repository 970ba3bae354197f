# Copyright Red Hat
#
# tests/__init__.py - ZFS file history test package
#
# This file is part of the zfh project.
#
# SPDX-License-Identifier: Apache-2.0
import logging
import os
import time

log = logging.getLogger()
log.setLevel(logging.DEBUG)
formatter = logging.Formatter('%(asctime)s %(levelname)s %(name)s %(message)s')
file_handler = logging.FileHandler("test.log")
file_handler.setFormatter(formatter)
console_handler = logging.StreamHandler()
console_handler.setFormatter(formatter)
log.addHandler(file_handler)
log.addHandler(console_handler)

os.environ["TZ"] = "UTC"
time.tzset()


class MockArgs(object):
    debug = None
    verbose = 0
    version = False
    config = "/nonexistent/zfh.conf"
    log_file = None
    path = None
    snapshot = None
    sort = None
    reverse = False
    json = False
    recursive = False
    name = None
    file = None
    snapshot_name = None


def have_root():
    """Return ``True`` if the test suite is running as the root user,
    and ``False`` otherwise.
    """
    return os.geteuid() == 0 and os.getegid() == 0
