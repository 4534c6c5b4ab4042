"""Tests for the reference/index maintenance and diagnostic scripts."""

from unittest.mock import MagicMock, patch

import pytest
import requests
from bson import ObjectId
from pymongo.errors import OperationFailure

import mongo_config
from create_missing_indexes import create_indexes, missing_indexes
from diagnose_report_templates import (
    FAIL, PASS, WARN, Diagnostics, check_block_charts, check_partner_api, check_template_blocks,
)
from fix_orphaned_style_references import find_orphans, fix_references
from investigate_duplicate_collections import junction_pairs


class TestOrphanedStyles:

    def test_find_orphans_compares_as_strings(self):
        live = ObjectId()
        dead = ObjectId()
        docs = [
            {"_id": 1, "styleId": live},
            {"_id": 2, "styleId": str(dead)},
            {"_id": 3, "styleId": ""},
        ]
        assert [d["_id"] for d in find_orphans(docs, "styleId", {str(live)})] == [2]

    def test_fix_references_nulls_orphans(self, db):
        live, dead = ObjectId(), ObjectId()
        db["page_styles_enhanced"].find.return_value = [{"_id": live}]
        orphan = {"_id": ObjectId(), "name": "P", "styleId": dead}
        db["partners"].find.return_value = [orphan, {"_id": ObjectId(), "styleId": live}]
        for coll in ("projects", "report_templates"):
            db[coll].find.return_value = []

        results = fix_references(db)

        assert results[("partners", "styleId")] == 1
        assert results[("projects", "styleId")] == 0
        query, update = db["partners"].update_many.call_args[0]
        assert query == {"_id": {"$in": [orphan["_id"]]}}
        assert update["$set"]["styleId"] is None

    def test_dry_run(self, db):
        db["page_styles_enhanced"].find.return_value = []
        for coll in ("projects", "partners", "report_templates"):
            db[coll].find.return_value = [{"_id": ObjectId(), "styleId": "missing", "styleIdEnhanced": "missing"}]

        results = fix_references(db, dry=True)

        assert sum(results.values()) == 4
        assert results[("projects", "styleIdEnhanced")] == 1
        for coll in ("projects", "partners", "report_templates"):
            db[coll].update_many.assert_not_called()


class TestCreateMissingIndexes:

    definitions = [
        ("projects", "updatedAt_desc", [("updatedAt", -1)], {}),
        ("projects", "viewSlug_unique", [("viewSlug", 1)], {"unique": True}),
        ("hashtag_slugs", "slug_unique", [("slug", 1)], {"unique": True}),
    ]

    def test_missing_by_name(self, db):
        db["projects"].index_information.return_value = {"_id_": {}, "updatedAt_desc": {}}
        db["hashtag_slugs"].index_information.return_value = {"_id_": {}}

        missing, existing = missing_indexes(db, self.definitions)

        assert [d[1] for d in existing] == ["updatedAt_desc"]
        assert [(d[0], d[1]) for d in missing] == [("projects", "viewSlug_unique"), ("hashtag_slugs", "slug_unique")]
        db["projects"].index_information.assert_called_once()

    def test_create_reports_failures(self, db):
        db["projects"].create_index.side_effect = OperationFailure("E11000 duplicate key")

        results = create_indexes(db, self.definitions[1:])

        assert [r[2] for r in results] == ["failed", "created"]
        db["hashtag_slugs"].create_index.assert_called_once_with([("slug", 1)], name="slug_unique", unique=True)

    def test_dry_run(self, db):
        results = create_indexes(db, self.definitions, dry=True)
        assert {r[2] for r in results} == {"would-create"}
        db["projects"].create_index.assert_not_called()


class TestDiagnoseReportTemplates:

    def test_string_block_ids_resolve(self, db):
        block_id = ObjectId()
        db["data_blocks"].find.return_value = [{"_id": block_id, "name": "Overview", "charts": []}]
        diag = Diagnostics()
        template = {"name": "Default", "dataBlocks": [{"blockId": str(block_id), "order": 0}]}

        blocks = check_template_blocks(db, diag, [template])

        assert [b["_id"] for b in blocks] == [block_id]
        assert db["data_blocks"].find.call_args[0][0] == {"_id": {"$in": [block_id]}}
        assert diag.results[0][0] == PASS

    def test_missing_blocks_fail(self, db):
        db["data_blocks"].find.return_value = []
        diag = Diagnostics()

        check_template_blocks(db, diag, [{"name": "T", "dataBlocks": [{"blockId": ObjectId()}]}])
        check_template_blocks(db, diag, [{"name": "Empty", "dataBlocks": []}])

        assert [r[0] for r in diag.results] == [FAIL, WARN]

    def test_missing_charts_fail(self, db):
        db["chart_configurations"].find.return_value = [{"chartId": "gender"}]
        diag = Diagnostics()
        blocks = [{"_id": ObjectId(), "name": "B", "charts": [{"chartId": "gender"}, {"chartId": "ghost"}]}]

        check_block_charts(db, diag, blocks)

        assert diag.count(FAIL) == 1
        assert "ghost" in diag.results[0][2]

    def test_api_cross_check(self, db):
        partner = {"_id": ObjectId(), "name": "P", "viewSlug": "p-slug"}
        db["partners"].find_one.return_value = partner
        db["projects"].count_documents.return_value = 2
        response = MagicMock()
        response.json.return_value = {"partner": {"_id": str(partner["_id"])}, "events": [{}, {}]}
        diag = Diagnostics()

        with patch("diagnose_report_templates.requests.get", return_value=response) as get:
            check_partner_api(db, diag, "p-slug", base_url="http://app")

        get.assert_called_once_with("http://app/api/partners/report/p-slug", timeout=30)
        assert [r[0] for r in diag.results] == [PASS, PASS]

    def test_api_unreachable(self, db):
        db["partners"].find_one.return_value = {"_id": ObjectId(), "viewSlug": "p"}
        diag = Diagnostics()

        with patch("diagnose_report_templates.requests.get", side_effect=requests.ConnectionError("refused")):
            check_partner_api(db, diag, "p", base_url="http://app")

        assert diag.count(FAIL) == 1


def test_junction_pairs():
    docs = [{"projectId": "p1", "bitlyLinkId": "l1"}, {"projectId": "p1", "bitlyLinkId": "l1"}]
    assert junction_pairs(docs) == {"p1-l1"}


class TestMongoConfig:

    def test_dry_run_flag(self, monkeypatch):
        monkeypatch.setenv("DRY_RUN", "1")
        assert mongo_config.dry_run() is True
        monkeypatch.delenv("DRY_RUN")
        assert mongo_config.dry_run() is False
        assert mongo_config.dry_run(default="1") is True

    def test_connect_requires_uri(self, monkeypatch):
        monkeypatch.setattr(mongo_config, "MONGODB_URI", "")
        with pytest.raises(SystemExit) as exc:
            mongo_config.connect()
        assert exc.value.code == 1

    def test_connect_pings(self):
        with patch("mongo_config.MongoClient") as client_cls:
            client, db = mongo_config.connect("mongodb://localhost:27017", "test_db")

        client_cls.assert_called_once_with("mongodb://localhost:27017", serverSelectionTimeoutMS=10000)
        client.__getitem__.assert_called_once_with("test_db")
        db.command.assert_called_once_with("ping")
