# Copyright 2025 The Groundwork Authors.
# SPDX-License-Identifier: Apache-2.0
#
import logging

import pytest

from groundwork.toolchain import ToolchainContext
from tests.helpers import FakeRunner, FakeStrategy, make_tarball

log = logging.getLogger(__name__)


@pytest.fixture
def tarball(tmp_path):
    return make_tarball(tmp_path / "pkg-1.0.tar.gz")


@pytest.fixture
def toolchain():
    return ToolchainContext(
        cc="/usr/bin/cc",
        make="/usr/bin/make",
        cxx="/usr/bin/c++",
        triplet="x86_64-linux-gnu",
        os="linux",
        arch="x86_64",
        cflags=["-O2"],
        ldflags=["-s"],
        jobs=4,
    )


@pytest.fixture
def fake_strategy():
    return FakeStrategy()


@pytest.fixture
def fake_runner():
    return FakeRunner()
