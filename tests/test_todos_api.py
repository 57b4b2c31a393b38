from datetime import datetime

import pytest
from fastapi import HTTPException
from fastapi.testclient import TestClient

from todo_api import create_app


def assert_todo_shape(todo: dict):
    # Basic structure validation
    for key in ["id", "title", "completed", "categoryId", "category", "createdAt", "updatedAt"]:
        assert key in todo
    assert "description" in todo
    assert "dueDate" in todo
    assert isinstance(todo["id"], int)
    assert isinstance(todo["title"], str)
    assert isinstance(todo["completed"], bool)
    # Timestamps are ISO8601 strings
    datetime.fromisoformat(todo["createdAt"])
    datetime.fromisoformat(todo["updatedAt"])
    if todo["dueDate"] is not None:
        datetime.fromisoformat(todo["dueDate"])


def ts(value: str) -> datetime:
    return datetime.fromisoformat(value)


class TestHealth:
    def test_health_check(self, client):
        res = client.get("/api/health")
        assert res.status_code == 200
        assert res.json() == {"status": "ok", "backend": "memory"}


class TestTodosCRUD:
    def test_create_minimal_todo_lifecycle(self, client):
        res = client.post("/api/todos", json={"title": "Buy milk"})
        assert res.status_code == 201
        todo = res.json()["data"]
        assert_todo_shape(todo)
        assert todo["title"] == "Buy milk"
        assert todo["completed"] is False
        assert todo["category"] is None
        assert todo["description"] is None
        assert todo["dueDate"] is None

        res_toggle = client.patch(f"/api/todos/{todo['id']}/toggle")
        assert res_toggle.status_code == 200
        toggled = res_toggle.json()["data"]
        assert toggled["completed"] is True
        assert ts(toggled["updatedAt"]) > ts(todo["updatedAt"])

        res_del = client.delete(f"/api/todos/{todo['id']}")
        assert res_del.status_code == 204
        assert res_del.text == ""

        res_get = client.get(f"/api/todos/{todo['id']}")
        assert res_get.status_code == 404
        assert res_get.json()["error"]["code"] == "NOT_FOUND"

    def test_create_trims_and_keeps_optional_fields(self, client, make_category):
        work = make_category("Work")
        res = client.post(
            "/api/todos",
            json={
                "title": "  Write report  ",
                "description": "  quarterly  ",
                "dueDate": "2099-12-25T10:00:00Z",
                "categoryId": work["id"],
            },
        )
        assert res.status_code == 201
        todo = res.json()["data"]
        assert todo["title"] == "Write report"
        assert todo["description"] == "quarterly"
        assert ts(todo["dueDate"]) == ts("2099-12-25T10:00:00+00:00")
        assert todo["categoryId"] == work["id"]
        assert todo["category"] == {"id": work["id"], "name": "Work"}

    def test_create_with_unknown_category_is_not_found(self, client):
        res = client.post("/api/todos", json={"title": "Orphan", "categoryId": 999})
        assert res.status_code == 404
        assert res.json()["error"] == {"code": "NOT_FOUND", "message": "Category not found"}
        assert client.get("/api/todos").json()["data"] == []

    def test_get_todo_and_not_found(self, client, make_todo):
        todo = make_todo("Read book")
        res = client.get(f"/api/todos/{todo['id']}")
        assert res.status_code == 200
        assert res.json()["data"]["title"] == "Read book"

        res_404 = client.get("/api/todos/999999")
        assert res_404.status_code == 404
        assert res_404.json()["error"]["message"] == "Todo not found"

    def test_non_numeric_id_is_validation_error(self, client):
        res = client.get("/api/todos/abc")
        assert res.status_code == 400
        error = res.json()["error"]
        assert error["code"] == "VALIDATION_ERROR"
        assert error["details"] == [{"field": "id", "message": "ID must be a number"}]

    def test_unicode_digit_id_is_validation_error(self, client):
        # "²" is a digit to str.isdigit() but not a decimal number
        res = client.get("/api/todos/%C2%B2")
        assert res.status_code == 400
        assert res.json()["error"]["details"] == [{"field": "id", "message": "ID must be a number"}]

    @pytest.mark.parametrize("raw_id", ["-5", "0", "99999999999999999999"])
    def test_numeric_id_without_row_is_not_found(self, client, raw_id):
        for res in (
            client.get(f"/api/todos/{raw_id}"),
            client.patch(f"/api/todos/{raw_id}/toggle"),
            client.delete(f"/api/todos/{raw_id}"),
        ):
            assert res.status_code == 404
            assert res.json()["error"] == {"code": "NOT_FOUND", "message": "Todo not found"}

    def test_toggle_flips_back_and_forth(self, client, make_todo):
        todo = make_todo("Flip")
        first = client.patch(f"/api/todos/{todo['id']}/toggle").json()["data"]
        second = client.patch(f"/api/todos/{todo['id']}/toggle").json()["data"]
        assert first["completed"] is True
        assert second["completed"] is False
        assert ts(second["updatedAt"]) > ts(first["updatedAt"])

    def test_toggle_missing_todo(self, client):
        res = client.patch("/api/todos/4242/toggle")
        assert res.status_code == 404
        assert res.json()["error"]["code"] == "NOT_FOUND"

    def test_delete_missing_todo(self, client, make_todo):
        todo = make_todo("ToDelete")
        assert client.delete(f"/api/todos/{todo['id']}").status_code == 204
        res_again = client.delete(f"/api/todos/{todo['id']}")
        assert res_again.status_code == 404
        assert res_again.json()["error"]["message"] == "Todo not found"


class TestTodoUpdate:
    def test_update_preserves_omitted_fields(self, client, make_category, make_todo):
        work = make_category("Work")
        todo = make_todo(
            "Initial", description="A", dueDate="2100-01-01T00:00:00Z", categoryId=work["id"]
        )
        client.patch(f"/api/todos/{todo['id']}/toggle")

        res = client.put(f"/api/todos/{todo['id']}", json={"title": "Renamed"})
        assert res.status_code == 200
        updated = res.json()["data"]
        assert updated["title"] == "Renamed"
        assert updated["description"] == "A"
        assert updated["dueDate"] is not None
        assert updated["categoryId"] == work["id"]
        assert updated["completed"] is True

    def test_update_explicit_nulls_clear_fields(self, client, make_category, make_todo):
        work = make_category("Work")
        todo = make_todo(
            "Initial", description="A", dueDate="2100-01-01T00:00:00Z", categoryId=work["id"]
        )
        res = client.put(
            f"/api/todos/{todo['id']}",
            json={"title": "Initial", "description": None, "dueDate": None, "categoryId": None},
        )
        assert res.status_code == 200
        updated = res.json()["data"]
        assert updated["description"] is None
        assert updated["dueDate"] is None
        assert updated["categoryId"] is None
        assert updated["category"] is None

    def test_update_sets_completed_explicitly(self, client, make_todo):
        todo = make_todo("Done soon")
        res = client.put(f"/api/todos/{todo['id']}", json={"title": "Done soon", "completed": True})
        assert res.json()["data"]["completed"] is True

    def test_update_requires_title(self, client, make_todo):
        todo = make_todo("Keep title")
        res = client.put(f"/api/todos/{todo['id']}", json={"completed": True})
        assert res.status_code == 400
        fields = [d["field"] for d in res.json()["error"]["details"]]
        assert fields == ["title"]

    def test_update_with_unknown_category_leaves_todo_unchanged(self, client, make_category, make_todo):
        work = make_category("Work")
        todo = make_todo("Stay put", categoryId=work["id"])
        res = client.put(f"/api/todos/{todo['id']}", json={"title": "Moved", "categoryId": 9999})
        assert res.status_code == 404
        assert res.json()["error"] == {"code": "NOT_FOUND", "message": "Category not found"}

        stored = client.get(f"/api/todos/{todo['id']}").json()["data"]
        assert stored["categoryId"] == work["id"]
        assert stored["title"] == "Stay put"

    def test_update_missing_todo(self, client):
        res = client.put("/api/todos/424242", json={"title": "Nope"})
        assert res.status_code == 404
        assert res.json()["error"]["message"] == "Todo not found"


class TestTodoValidation:
    def test_all_violations_reported_together(self, client):
        res = client.post(
            "/api/todos",
            json={"title": "   ", "description": "x" * 2001, "dueDate": "not-a-date", "categoryId": -1},
        )
        assert res.status_code == 400
        error = res.json()["error"]
        assert error["code"] == "VALIDATION_ERROR"
        by_field = {d["field"]: d["message"] for d in error["details"]}
        assert set(by_field) == {"title", "description", "dueDate", "categoryId"}
        assert by_field["title"] == "Title is required"
        assert by_field["description"] == "Description must be at most 2000 characters"
        assert by_field["dueDate"] == "Due date must be a valid ISO 8601 date"

    def test_due_date_requires_a_time(self, client):
        res = client.post("/api/todos", json={"title": "Dated", "dueDate": "2025-01-01"})
        assert res.status_code == 400
        assert res.json()["error"]["details"] == [
            {"field": "dueDate", "message": "Due date must be a valid ISO 8601 date"}
        ]

    def test_category_id_beyond_storage_range(self, client):
        res = client.post("/api/todos", json={"title": "Huge", "categoryId": 99999999999999999999})
        assert res.status_code == 400
        assert [d["field"] for d in res.json()["error"]["details"]] == ["categoryId"]

    def test_title_too_long(self, client):
        res = client.post("/api/todos", json={"title": "t" * 201})
        assert res.status_code == 400
        assert res.json()["error"]["details"] == [
            {"field": "title", "message": "Title must be at most 200 characters"}
        ]

    def test_category_id_must_be_an_integer(self, client):
        res = client.post("/api/todos", json={"title": "Typed", "categoryId": "1"})
        assert res.status_code == 400
        assert res.json()["error"]["details"][0]["field"] == "categoryId"

    def test_completed_must_be_boolean(self, client, make_todo):
        todo = make_todo("Strict")
        res = client.put(f"/api/todos/{todo['id']}", json={"title": "Strict", "completed": "yes"})
        assert res.status_code == 400
        assert res.json()["error"]["details"][0]["field"] == "completed"

    def test_malformed_json_body(self, client):
        res = client.post("/api/todos", content="{not json", headers={"Content-Type": "application/json"})
        assert res.status_code == 400
        assert res.json()["error"]["code"] == "VALIDATION_ERROR"

    @pytest.mark.parametrize(
        "query, field",
        [
            ("status=done", "status"),
            ("sortBy=title", "sortBy"),
            ("sortOrder=up", "sortOrder"),
            ("categoryId=abc", "categoryId"),
            ("categoryId=0", "categoryId"),
            ("categoryId=99999999999999999999", "categoryId"),
            ("categoryId=%C2%B2", "categoryId"),
        ],
    )
    def test_invalid_list_query(self, client, query, field):
        res = client.get(f"/api/todos?{query}")
        assert res.status_code == 400
        error = res.json()["error"]
        assert error["code"] == "VALIDATION_ERROR"
        assert [d["field"] for d in error["details"]] == [field]


class TestListFilteringSorting:
    def seed(self, client, make_todo, make_category):
        work = make_category("Work")
        a = make_todo("a", categoryId=work["id"], dueDate="2030-01-02T00:00:00Z")
        b = make_todo("b", dueDate="2030-01-01T00:00:00Z")
        c = make_todo("c", categoryId=work["id"])
        client.patch(f"/api/todos/{b['id']}/toggle")
        return work, a, b, c

    def ids(self, res):
        assert res.status_code == 200
        return [t["id"] for t in res.json()["data"]]

    def test_status_filters_partition_all(self, client, make_todo, make_category):
        self.seed(client, make_todo, make_category)
        all_items = client.get("/api/todos?status=all").json()["data"]
        active = client.get("/api/todos?status=active").json()["data"]
        completed = client.get("/api/todos?status=completed").json()["data"]

        assert all(t["completed"] is False for t in active)
        assert all(t["completed"] is True for t in completed)
        assert {t["id"] for t in active} | {t["id"] for t in completed} == {t["id"] for t in all_items}
        assert len(active) + len(completed) == len(all_items)

    def test_category_filters(self, client, make_todo, make_category):
        work, a, b, c = self.seed(client, make_todo, make_category)
        assert sorted(self.ids(client.get(f"/api/todos?categoryId={work['id']}"))) == sorted([a["id"], c["id"]])
        assert self.ids(client.get("/api/todos?categoryId=null")) == [b["id"]]
        assert self.ids(client.get(f"/api/todos?categoryId={work['id']}&status=active")) == [c["id"], a["id"]]

    def test_default_sort_is_newest_first(self, client, make_todo, make_category):
        _, a, b, c = self.seed(client, make_todo, make_category)
        assert self.ids(client.get("/api/todos")) == [c["id"], b["id"], a["id"]]
        assert self.ids(client.get("/api/todos?sortOrder=asc")) == [a["id"], b["id"], c["id"]]

    def test_sort_by_due_date(self, client, make_todo, make_category):
        _, a, b, c = self.seed(client, make_todo, make_category)
        # Todos without a due date come first ascending and last descending
        assert self.ids(client.get("/api/todos?sortBy=dueDate&sortOrder=asc")) == [c["id"], b["id"], a["id"]]
        assert self.ids(client.get("/api/todos?sortBy=dueDate&sortOrder=desc")) == [a["id"], b["id"], c["id"]]


class TestGroupedList:
    def test_grouping_omits_empty_buckets(self, client, make_category, make_todo):
        work = make_category("Work")
        make_category("Personal")
        make_todo("Ship it", categoryId=work["id"])

        res = client.get("/api/todos?groupByCategory=true")
        assert res.status_code == 200
        grouped = res.json()["data"]["grouped"]
        assert len(grouped) == 1
        assert grouped[0]["category"]["name"] == "Work"
        assert len(grouped[0]["todos"]) == 1

    def test_groups_ordered_by_name_with_uncategorized_last(self, client, make_category, make_todo):
        zoo = make_category("Zoo")
        alpha = make_category("Alpha")
        make_todo("loose")
        make_todo("z1", categoryId=zoo["id"])
        make_todo("a1", categoryId=alpha["id"])
        make_todo("z2", categoryId=zoo["id"])

        grouped = client.get("/api/todos?groupByCategory=true&sortOrder=asc").json()["data"]["grouped"]
        assert [g["category"]["name"] if g["category"] else None for g in grouped] == ["Alpha", "Zoo", None]
        assert all(len(g["todos"]) > 0 for g in grouped)
        assert [t["title"] for t in grouped[1]["todos"]] == ["z1", "z2"]

    def test_group_flag_is_only_true_for_literal_true(self, client, make_todo):
        make_todo("flat")
        data = client.get("/api/todos?groupByCategory=yes").json()["data"]
        assert isinstance(data, list)

    def test_no_matches_grouped_and_flat(self, client, make_category, make_todo):
        work = make_category("Work")
        make_todo("still active", categoryId=work["id"])

        grouped = client.get("/api/todos?groupByCategory=true&status=completed")
        assert grouped.status_code == 200
        assert grouped.json() == {"data": {"grouped": []}}

        flat = client.get("/api/todos?status=completed")
        assert flat.json() == {"data": []}


class TestErrorEnvelope:
    def test_unknown_route(self, client):
        res = client.get("/api/nothing-here")
        assert res.status_code == 404
        assert res.json()["error"]["code"] == "NOT_FOUND"

    def test_method_not_allowed_uses_envelope(self, client):
        res = client.post("/api/health")
        assert res.status_code == 404
        assert res.json() == {"error": {"code": "NOT_FOUND", "message": "Resource not found"}}

    def test_other_client_errors_use_envelope(self, settings):
        app = create_app(settings)

        @app.get("/api/teapot")
        def teapot():
            raise HTTPException(status_code=418, detail="I'm a teapot")

        with TestClient(app) as teapot_client:
            res = teapot_client.get("/api/teapot")
        assert res.status_code == 418
        assert res.json() == {"error": {"code": "VALIDATION_ERROR", "message": "I'm a teapot", "details": []}}
