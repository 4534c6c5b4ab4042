"""
Shared pytest fixtures for the maintenance script tests.

The scripts live as flat modules in scripts/ and import each other as
siblings (``from mongo_config import connect``), so that directory is put on
sys.path here. Database access is replaced by MagicMock collections; no test
needs a running MongoDB.
"""
import os
import sys
from unittest.mock import MagicMock

import pytest

scripts_dir = os.path.abspath(os.path.join(os.path.dirname(__file__), "..", "scripts"))
if scripts_dir not in sys.path:
    sys.path.insert(0, scripts_dir)


def make_db(name="messmass"):
    """MagicMock database where db["coll"] returns the same mock per name."""
    collections = {}
    db = MagicMock()
    db.name = name
    db.__getitem__.side_effect = lambda coll: collections.setdefault(coll, MagicMock(name=coll))
    db.collections = collections
    return db


@pytest.fixture
def db():
    return make_db()
