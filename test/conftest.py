from __future__ import annotations

import pytest

from common import LINEAR, RBC

from dsgec import parse


@pytest.fixture(scope="session")
def rbc():
    return parse(RBC, filename="rbc.rs")


@pytest.fixture(scope="session")
def linear():
    return parse(LINEAR, filename="linear.rs")
