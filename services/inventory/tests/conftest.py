import os
import tempfile

# the engine is created at import time
os.environ.setdefault("DATABASE_URL", f"sqlite:///{tempfile.mkdtemp()}/inventory.db")

import pytest
from fastapi.testclient import TestClient

import repo
from main import app


@pytest.fixture
def catalog():
    repo.Base.metadata.drop_all(repo.engine)
    repo.init_db()
    return repo.CatalogRepo()


@pytest.fixture
def api(catalog):
    with TestClient(app) as c:
        yield c
