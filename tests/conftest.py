import os
os.environ["RATE_LIMIT"] = "5 per minute"  # Must be set before importing main

import pytest
import respx

from main import app, limiter

NOTION_API = "https://api.notion.com/v1"


@pytest.fixture
def client():
    app.config["TESTING"] = True
    limiter.reset()
    with app.test_client() as c:
        yield c


@pytest.fixture
def auth():
    return {"Authorization": "Bearer abc123"}


@pytest.fixture
def upstream():
    """Mock the Notion API at the httpx layer used by notion_client."""
    with respx.mock(assert_all_called=False) as router:
        yield router
