"""On-disk backup layout shared by backup_database.py and restore_database.py.

  scripts/backups/messmass_backup_<timestamp>/
    manifest.json
    BACKUP_SUMMARY.txt
    collections/<name>.json

Collection files are MongoDB canonical Extended JSON so ObjectIds, dates and
number types survive the round trip. The manifest checksum of a collection is
the MD5 of its documents serialized the same way.
"""

import hashlib
import os

from bson import json_util

from mongo_config import BACKUP_DIR

# naive UTC datetimes, as pymongo returns them by default
JSON_OPTIONS = json_util.JSONOptions(json_mode=json_util.JSONMode.CANONICAL, tz_aware=False)
MANIFEST = "manifest.json"
SUMMARY = "BACKUP_SUMMARY.txt"


def backup_path(name, root=BACKUP_DIR):
    return os.path.join(root, name)


def collection_path(backup_dir, collection):
    return os.path.join(backup_dir, "collections", f"{collection}.json")


def dump_documents(documents):
    return json_util.dumps(documents, json_options=JSON_OPTIONS)


def documents_checksum(documents):
    return hashlib.md5(dump_documents(documents).encode("utf-8")).hexdigest()


def write_json(path, data):
    with open(path, "w", encoding="utf-8") as f:
        f.write(json_util.dumps(data, json_options=JSON_OPTIONS, indent=2))


def read_json(path):
    with open(path, encoding="utf-8") as f:
        return json_util.loads(f.read(), json_options=JSON_OPTIONS)
