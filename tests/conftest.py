import logging

import pytest


@pytest.fixture(autouse=True)
def _reset_mathrender_logger():
    yield
    log = logging.getLogger("mathrender")
    for handler in list(log.handlers):
        log.removeHandler(handler)
    log.propagate = True
    log.setLevel(logging.NOTSET)
