import io
import logging
import os

import pytest

from backpatch.writer import Writer


logging.basicConfig(level=logging.DEBUG if 'DEBUG' in os.environ else logging.INFO)


@pytest.fixture
def buffer():
    return io.BytesIO()


@pytest.fixture
def writer(buffer):
    return Writer(buffer)
