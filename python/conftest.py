import pytest
import structlog


@pytest.fixture(autouse=True)
def _reset_structlog():
    # The CLI configures structlog to print to the sys.stderr of the test that
    # ran it; reset so later tests don't log to a closed capture stream.
    yield
    structlog.reset_defaults()
