import logging

import pytest

from scenesync import logging_utils


@pytest.fixture(autouse=True)
def reset_package_logging():
    """Detach the CLI's stream handler so it never outlives a captured stream."""
    yield
    if logging_utils._handler is not None:
        logging.getLogger(logging_utils.PACKAGE_LOGGER).removeHandler(logging_utils._handler)
        logging_utils._handler = None
