# Copyright Red Hat
#
# zfh/__init__.py - ZFS file history package initialisation
#
# This file is part of the zfh project.
#
# SPDX-License-Identifier: Apache-2.0
"""
zfh top-level package.
"""
from ._zfh import *  # noqa: F401, F403
from ._zfh import __all__  # noqa: F401

__version__ = "0.1.0"
