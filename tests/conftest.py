import os

# The background poller would race the tests' own worker calls.
os.environ["RECONCILE_WORKER_ENABLED"] = "0"
os.environ.setdefault("CASSO_WEBHOOK_TOKEN", "")

import pytest  # noqa: E402

from orderflow.services.collaborators import registry  # noqa: E402


@pytest.fixture(autouse=True)
def _fresh_collaborators():
    """Rebuild shared clients from each test's settings and close them afterwards."""
    registry.close()
    yield
    registry.close()
