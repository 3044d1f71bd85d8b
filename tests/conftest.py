import os
import sys

PROJECT_ROOT = os.path.dirname(os.path.dirname(__file__))
SRC_DIR = os.path.join(PROJECT_ROOT, "src")
if SRC_DIR not in sys.path:
	sys.path.insert(0, SRC_DIR)

import pytest

from server_watch_mcp.store import LogStore


@pytest.fixture
def store():
	return LogStore(capacity=50)


@pytest.fixture
def filled_store(store):
	store.append("stdout", "server listening on :3000")
	store.append("stderr", "Error: database timeout")
	store.append("stdout", "GET /health 200")
	store.append("stderr", "warning: deprecated option")
	store.append("stdout", "request failed with err=ECONNRESET")
	return store
