"""Tests for the REST instance client."""

from unittest.mock import MagicMock

import pytest
import requests

from record_migrator.clients.exceptions import (
    ApiLimitError,
    AuthenticationError,
    InstanceError,
    ObjectNotFoundError,
)
from record_migrator.clients.rest_client import RestInstanceClient, build_soql, soql_literal
from record_migrator.models.instance import InstanceHandle

BASE = "https://target.example.com/services/data/v59.0"


def response(status=200, body=None, text=None):
    resp = MagicMock()
    resp.status_code = status
    resp.ok = 200 <= status < 300
    resp.reason = "reason"
    if body is None:
        resp.json.side_effect = ValueError("no body")
        resp.text = text or ""
    else:
        resp.json.return_value = body
        resp.text = text if text is not None else "{...}"
    return resp


@pytest.fixture
def session():
    return MagicMock()


@pytest.fixture
def client(session):
    handle = InstanceHandle(instance_url="https://target.example.com/", access_token="tok", name="target")
    return RestInstanceClient(handle, rate_limit=0, session=session)


class TestBuildSoql:
    def test_quotes_are_escaped(self):
        assert soql_literal("O'Brien\\Co") == "'O\\'Brien\\\\Co'"

    def test_filters_where_and_limit(self):
        soql = build_soql("Contact", ["Id", "Name"], {"AccountId": ["001A", "001B"]}, "IsActive__c = true", 5)

        assert soql == (
            "SELECT Id, Name FROM Contact WHERE AccountId IN ('001A', '001B') "
            "AND (IsActive__c = true) LIMIT 5"
        )

    def test_count(self):
        assert build_soql("Case", []) == "SELECT COUNT() FROM Case"


class TestRequests:
    def test_describe_url(self, client, session):
        session.request.return_value = response(body={"name": "Account", "fields": []})

        assert client.describe_object("Account")["name"] == "Account"
        method, url = session.request.call_args[0]
        assert (method, url) == ("GET", f"{BASE}/sobjects/Account/describe")

    def test_query_follows_pagination(self, client, session):
        session.request.side_effect = [
            response(body={"totalSize": 3, "records": [{"Id": "1"}, {"Id": "2"}],
                           "nextRecordsUrl": "/services/data/v59.0/query/01g-2000"}),
            response(body={"totalSize": 3, "records": [{"Id": "3"}]}),
        ]

        result = client.query("Account", ["Id"])

        assert [r["Id"] for r in result.records] == ["1", "2", "3"]
        assert session.request.call_args_list[1][0][1] == f"{BASE}/query/01g-2000"

    def test_large_in_filter_is_chunked(self, client, session):
        session.request.side_effect = [
            response(body={"totalSize": 1, "records": [{"Id": str(i)}]}) for i in range(3)
        ]

        result = client.query("Contact", ["Id"], in_filters={"AccountId": [f"001{i:04d}" for i in range(450)]})

        assert session.request.call_count == 3
        assert len(result.records) == 3
        last_soql = session.request.call_args_list[2][1]["params"]["q"]
        assert last_soql.count("'001") == 50

    def test_empty_in_filter_short_circuits(self, client, session):
        assert client.query("Contact", ["Id"], in_filters={"AccountId": []}).records == []
        assert client.count("Contact", in_filters={"AccountId": []}) == 0
        session.request.assert_not_called()

    def test_count_uses_total_size(self, client, session):
        session.request.return_value = response(body={"totalSize": 7, "records": []})

        assert client.count("Case", in_filters={"AccountId": ["001A"]}) == 7


class TestErrors:
    def test_401_is_authentication_error(self, client, session):
        session.request.return_value = response(
            401, [{"errorCode": "INVALID_SESSION_ID", "message": "Session expired or invalid"}]
        )

        with pytest.raises(AuthenticationError) as excinfo:
            client.describe_object("Account")
        assert excinfo.value.error_codes == ["INVALID_SESSION_ID"]

    def test_404_is_object_not_found(self, client, session):
        session.request.return_value = response(
            404, [{"errorCode": "NOT_FOUND", "message": "The requested resource does not exist"}]
        )

        with pytest.raises(ObjectNotFoundError):
            client.describe_object("Nope__c")

    def test_limit_is_api_limit_error(self, client, session):
        session.request.return_value = response(
            403, [{"errorCode": "REQUEST_LIMIT_EXCEEDED", "message": "TotalRequests Limit exceeded."}]
        )

        with pytest.raises(ApiLimitError):
            client.query("Account", ["Id"])

    def test_transport_failure_is_instance_error(self, client, session):
        session.request.side_effect = requests.exceptions.ConnectionError("refused")

        with pytest.raises(InstanceError, match="refused"):
            client.list_objects()


class TestWrites:
    def test_insert_sends_partial_success_batch(self, client, session):
        session.request.return_value = response(body=[
            {"id": "001T1", "success": True, "errors": []},
            {"success": False, "errors": [
                {"statusCode": "REQUIRED_FIELD_MISSING", "message": "Required fields are missing: [Name]",
                 "fields": ["Name"]},
            ]},
        ])

        results = client.insert_records("Account", [{"Name": "Acme"}, {"Name": None}])

        body = session.request.call_args[1]["json"]
        assert body["allOrNone"] is False
        assert body["records"][0] == {"attributes": {"type": "Account"}, "Name": "Acme"}
        assert results[0].success and results[0].id == "001T1"
        assert results[1].errors[0].status_code == "REQUIRED_FIELD_MISSING"
        assert results[1].errors[0].fields == ["Name"]

    def test_insert_result_count_mismatch(self, client, session):
        session.request.return_value = response(body=[{"id": "001T1", "success": True}])

        with pytest.raises(InstanceError):
            client.insert_records("Account", [{"Name": "a"}, {"Name": "b"}])

    def test_upsert_created(self, client, session):
        session.request.return_value = response(201, {"id": "001T1", "success": True, "created": True})

        result = client.upsert_record("Account", "Legacy_Id__c", "S00/1", {"Name": "a", "Legacy_Id__c": "S00/1"})

        method, url = session.request.call_args[0]
        assert (method, url) == ("PATCH", f"{BASE}/sobjects/Account/Legacy_Id__c/S00%2F1")
        assert session.request.call_args[1]["json"] == {"Name": "a"}
        assert (result.success, result.id, result.created) == (True, "001T1", True)

    def test_upsert_updated(self, client, session):
        session.request.return_value = response(200, {"id": "001T1", "success": True, "created": False})

        result = client.upsert_record("Account", "Legacy_Id__c", "S001", {"Name": "a"})

        assert (result.success, result.created) == (True, False)

    def test_upsert_no_content_looks_up_the_id(self, client, session):
        session.request.side_effect = [
            response(204, text=""),
            response(body={"totalSize": 1, "records": [{"Id": "001T9"}]}),
        ]

        result = client.upsert_record("Account", "Legacy_Id__c", "S001", {"Name": "a"})

        assert (result.success, result.id, result.created) == (True, "001T9", False)

    def test_upsert_multiple_matches(self, client, session):
        session.request.return_value = response(300, ["/services/data/v59.0/sobjects/Account/001A"])

        result = client.upsert_record("Account", "Legacy_Id__c", "S001", {"Name": "a"})

        assert result.success is False
        assert result.errors[0].status_code == "DUPLICATE_EXTERNAL_ID"

    def test_upsert_rejected_record(self, client, session):
        session.request.return_value = response(
            400, [{"errorCode": "STRING_TOO_LONG", "message": "data value too large", "fields": ["Name"]}]
        )

        result = client.upsert_record("Account", "Legacy_Id__c", "S001", {"Name": "a" * 300})

        assert result.success is False
        assert result.http_status == 400
        assert result.errors[0].status_code == "STRING_TOO_LONG"

    def test_delete(self, client, session):
        session.request.return_value = response(body=[
            {"id": "001T1", "success": True, "errors": []},
            {"id": "001T2", "success": False, "errors": [{"statusCode": "ENTITY_IS_DELETED", "message": "gone"}]},
        ])

        results = client.delete_records(["001T1", "001T2"])

        assert session.request.call_args[1]["params"] == {"ids": "001T1,001T2", "allOrNone": "false"}
        assert [r.success for r in results] == [True, False]
