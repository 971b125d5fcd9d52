import pytest

from hype_sna.diagnostics import Diagnostics
from hype_sna.profiles import get_profile

from sna_builders import RAW_PROFILE, Block, RecordWriter


@pytest.fixture
def heap():
    return Block(0x10, 0x02, 0x00400000)


@pytest.fixture
def writer(heap):
    return RecordWriter(heap)


@pytest.fixture
def diagnostics():
    return Diagnostics("Test")


@pytest.fixture
def profile():
    return get_profile(RAW_PROFILE)
