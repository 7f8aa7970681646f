"""Tests for the upload HTTP endpoints."""

import pytest


async def _initiate(client, name="doc.pdf", parts=2) -> dict:
    resp = await client.post(
        "/upload/initiate", headers={"X-File-Name": name, "X-Total-Parts": str(parts)}
    )
    assert resp.status_code == 200
    return resp.json()


async def _part(client, upload_id, number, data=b"payload"):
    return await client.post(
        "/upload/part",
        headers={"X-Upload-ID": upload_id, "X-Part-Number": str(number)},
        content=data,
    )


class TestInitiate:
    """Tests for POST /upload/initiate."""

    async def test_initiate(self, client):
        body = await _initiate(client, "doc.pdf", 2)
        assert set(body) == {"upload_id", "key"}
        assert body["key"].endswith("_doc.pdf")
        assert body["upload_id"]

    async def test_missing_file_name(self, client, store):
        resp = await client.post("/upload/initiate", headers={"X-Total-Parts": "1"})
        assert resp.status_code == 400
        assert resp.json()["code"] == "InvalidArgument"
        assert store.calls == []

    @pytest.mark.parametrize("value", ["abc", "0", "-2", "10001"])
    async def test_bad_total_parts(self, client, value):
        resp = await client.post(
            "/upload/initiate", headers={"X-File-Name": "a", "X-Total-Parts": value}
        )
        assert resp.status_code == 400
        assert "X-Total-Parts" in resp.json()["error"]

    async def test_store_failure(self, client, store):
        store.fail.add("initiate")
        resp = await client.post(
            "/upload/initiate", headers={"X-File-Name": "a", "X-Total-Parts": "1"}
        )
        assert resp.status_code == 500
        assert resp.json()["code"] == "StoreUnavailable"


class TestPart:
    """Tests for POST /upload/part."""

    async def test_upload_part(self, client, store):
        init = await _initiate(client)
        resp = await _part(client, init["upload_id"], 2, b"world")
        assert resp.status_code == 200
        body = resp.json()
        assert body["part_number"] == 2
        assert body["etag"].startswith('"') and body["etag"].endswith('"')

    async def test_unknown_upload(self, client):
        resp = await _part(client, "does-not-exist", 1)
        assert resp.status_code == 404
        assert resp.json() == {
            "error": "Upload not found",
            "code": "SessionNotFound",
            "upload_id": "does-not-exist",
        }

    async def test_missing_upload_id(self, client):
        resp = await client.post("/upload/part", headers={"X-Part-Number": "1"}, content=b"x")
        assert resp.status_code == 400

    async def test_bad_part_number(self, client):
        init = await _initiate(client)
        resp = await client.post(
            "/upload/part",
            headers={"X-Upload-ID": init["upload_id"], "X-Part-Number": "zero"},
            content=b"x",
        )
        assert resp.status_code == 400
        assert resp.json()["code"] == "InvalidArgument"

    async def test_part_number_above_total(self, client):
        init = await _initiate(client, parts=2)
        resp = await _part(client, init["upload_id"], 3)
        assert resp.status_code == 400

    async def test_highest_accepted_total(self, client):
        """Every part number up to the largest allowed total is accepted."""
        init = await _initiate(client, parts=10000)
        resp = await _part(client, init["upload_id"], 10000)
        assert resp.status_code == 200

    async def test_store_failure(self, client, store):
        init = await _initiate(client)
        store.fail.add("upload_part")
        resp = await _part(client, init["upload_id"], 1)
        assert resp.status_code == 500
        assert resp.json()["code"] == "StoreUnavailable"


class TestComplete:
    """Tests for POST /upload/complete."""

    async def test_full_flow_out_of_order(self, client, store):
        init = await _initiate(client, "doc.pdf", 2)
        assert (await _part(client, init["upload_id"], 2, b"world")).status_code == 200
        assert (await _part(client, init["upload_id"], 1, b"hello ")).status_code == 200

        resp = await client.post("/upload/complete", headers={"X-Upload-ID": init["upload_id"]})

        assert resp.status_code == 200
        assert resp.json() == {"message": "Upload completed successfully", "key": init["key"]}
        assert store.get_object(init["key"]) == b"hello world"
        [parts] = store.completed_parts()
        assert [p.part_number for p in parts] == [1, 2]

    async def test_incomplete_then_gone(self, client):
        init = await _initiate(client, "a.txt", 1)

        resp = await client.post("/upload/complete", headers={"X-Upload-ID": init["upload_id"]})
        assert resp.status_code == 400
        body = resp.json()
        assert body["code"] == "IncompletePartSet"
        assert body["error"] == "Not all parts have been uploaded"
        assert body["received_parts"] == "0"
        assert body["expected_parts"] == "1"

        resp = await client.post("/upload/complete", headers={"X-Upload-ID": init["upload_id"]})
        assert resp.status_code == 404

    async def test_missing_upload_id(self, client):
        resp = await client.post("/upload/complete")
        assert resp.status_code == 400

    async def test_store_failure(self, client, store):
        init = await _initiate(client, parts=1)
        await _part(client, init["upload_id"], 1)
        store.fail.add("complete")

        resp = await client.post("/upload/complete", headers={"X-Upload-ID": init["upload_id"]})
        assert resp.status_code == 500

        resp = await client.post("/upload/complete", headers={"X-Upload-ID": init["upload_id"]})
        assert resp.status_code == 404


class TestAbort:
    """Tests for POST /upload/abort."""

    async def test_abort(self, client, store):
        init = await _initiate(client)
        await _part(client, init["upload_id"], 1)

        resp = await client.post("/upload/abort", headers={"X-Upload-ID": init["upload_id"]})

        assert resp.status_code == 200
        assert resp.json() == {"message": "Upload aborted", "key": init["key"]}
        assert not store.has_upload(init["upload_id"])

    async def test_abort_unknown(self, client):
        resp = await client.post("/upload/abort", headers={"X-Upload-ID": "nope"})
        assert resp.status_code == 404


class TestMethods:
    """Upload endpoints only accept POST."""

    @pytest.mark.parametrize(
        "path", ["/upload/initiate", "/upload/part", "/upload/complete", "/upload/abort"]
    )
    async def test_get_not_allowed(self, client, path):
        resp = await client.get(path)
        assert resp.status_code == 405
