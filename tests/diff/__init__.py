# Copyright Red Hat
#
# tests/diff/__init__.py - content diff test package
#
# This file is part of the zfh project.
#
# SPDX-License-Identifier: Apache-2.0
