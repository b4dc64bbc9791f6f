"""
Reconciler kernel test configuration.

Kernel tests are synchronous; nothing here touches IO.
"""

from __future__ import annotations

import pytest

from reconciler.kernel.tests.builders import loaded, make_order, make_return


@pytest.fixture
def returns_state():
    return loaded("return", [make_return(f"r{n}") for n in range(1, 4)], total=3)


@pytest.fixture
def orders_state():
    return loaded("order", [make_order("o1"), make_order("o2", status="in_production")], total=2)
