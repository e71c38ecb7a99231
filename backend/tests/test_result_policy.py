import asyncio

import pytest

from fakes import ADMIN_ID, OTHER_ID, OWNER_ID, FakeResultStore, admin_principal, owner_principal
from services import result_policy
from services.result_policy import FORBIDDEN_MESSAGE, Principal


def _no_role_principal() -> Principal:
    return Principal(user_id=OWNER_ID, roles=frozenset({"ROLE_GUEST"}))


def test_admin_role_wins_over_user_role() -> None:
    scope = result_policy.resolve_scope(admin_principal())
    assert scope is not None
    assert scope.name == "admin"


def test_user_role_resolves_to_owner_scope() -> None:
    scope = result_policy.resolve_scope(owner_principal())
    assert scope is not None
    assert scope.name == "owner"


def test_principal_without_known_role_has_no_scope() -> None:
    assert result_policy.resolve_scope(_no_role_principal()) is None


@pytest.mark.parametrize(
    "call",
    [
        lambda store, p: result_policy.list_results(store, p),
        lambda store, p: result_policy.get_result(store, p, 1),
        lambda store, p: result_policy.create_result(store, p, {"result": 1, "user": OWNER_ID}),
        lambda store, p: result_policy.update_result(store, p, 1, {"result": 9}),
        lambda store, p: result_policy.delete_result(store, p, 1),
    ],
)
def test_every_operation_fails_closed_without_a_role(call) -> None:
    store = FakeResultStore()
    store.add(5, OWNER_ID)

    reply = asyncio.run(call(store, _no_role_principal()))

    assert reply.status_code == 403
    assert reply.payload == {"message": {"code": 403, "message": FORBIDDEN_MESSAGE}}
    assert 1 in store.results


def test_role_check_precedes_payload_validation() -> None:
    store = FakeResultStore()

    reply = asyncio.run(result_policy.create_result(store, _no_role_principal(), {"result": None}))

    assert reply.status_code == 403
    assert store.results == {}


def test_admin_lists_every_result() -> None:
    store = FakeResultStore()
    store.add(5, OWNER_ID)
    store.add(7, OTHER_ID)

    reply = asyncio.run(result_policy.list_results(store, admin_principal()))

    assert reply.status_code == 200
    assert [r["result"] for r in reply.payload["result"]] == [5, 7]


def test_user_lists_only_owned_results() -> None:
    store = FakeResultStore()
    store.add(5, OWNER_ID)
    store.add(7, OTHER_ID)

    reply = asyncio.run(result_policy.list_results(store, owner_principal()))

    assert reply.status_code == 200
    assert [r["user"]["id"] for r in reply.payload["result"]] == [OWNER_ID]


def test_empty_listing_is_not_found() -> None:
    store = FakeResultStore()
    store.add(7, OTHER_ID)

    reply = asyncio.run(result_policy.list_results(store, owner_principal()))

    assert reply.status_code == 404
    assert reply.payload == {"message": {"code": 404, "message": "Not Found"}}


def test_user_get_on_foreign_result_looks_missing() -> None:
    store = FakeResultStore()
    foreign = store.add(7, OTHER_ID)

    reply = asyncio.run(result_policy.get_result(store, owner_principal(), foreign.id))

    assert reply.status_code == 404


def test_admin_gets_any_result() -> None:
    store = FakeResultStore()
    foreign = store.add(7, OTHER_ID)

    reply = asyncio.run(result_policy.get_result(store, admin_principal(), foreign.id))

    assert reply.status_code == 200
    assert reply.payload["result"]["id"] == foreign.id
    assert reply.payload["result"]["time"] == "2024-01-02 03:04:05"


@pytest.mark.parametrize(
    "payload",
    [
        {"result": None, "user": OWNER_ID},
        {"result": 4, "user": None},
        {"result": None, "user": None},
        {"result": 4},
        {"user": OWNER_ID},
        {},
        None,
        [1, 2],
        {"result": "not-a-number", "user": OWNER_ID},
        {"result": 3, "user": True},
        {"result": True, "user": OWNER_ID},
        {"result": 3, "user": "2"},
        {"result": 2.0, "user": OWNER_ID},
        {"result": 2**40, "user": ADMIN_ID},
        {"result": -(2**31) - 1, "user": ADMIN_ID},
        {"result": 3, "user": 2**40},
        {"result": 3, "user": 0},
    ],
)
def test_create_with_incomplete_payload_is_unprocessable(payload) -> None:
    store = FakeResultStore()

    reply = asyncio.run(result_policy.create_result(store, admin_principal(), payload))

    assert reply.status_code == 422
    assert reply.payload == {"message": {"code": 422, "message": "Unprocessable Entity"}}
    assert store.results == {}


def test_admin_create_for_unknown_user_is_bad_request() -> None:
    store = FakeResultStore()

    reply = asyncio.run(result_policy.create_result(store, admin_principal(), {"result": 3, "user": 99}))

    assert reply.status_code == 400
    assert reply.payload["message"]["message"] == "Bad Request"


def test_user_cannot_create_for_another_existing_user() -> None:
    store = FakeResultStore()

    reply = asyncio.run(
        result_policy.create_result(store, owner_principal(), {"result": 3, "user": OTHER_ID})
    )

    assert reply.status_code == 400
    assert store.results == {}


def test_admin_creates_result_for_any_user() -> None:
    store = FakeResultStore()

    reply = asyncio.run(
        result_policy.create_result(store, admin_principal(), {"result": 3, "user": OTHER_ID})
    )

    assert reply.status_code == 201
    body = reply.payload["result"]
    assert body["id"] is not None
    assert body["result"] == 3
    assert body["user"]["id"] == OTHER_ID
    assert body["time"] is not None


def test_user_creates_own_result() -> None:
    store = FakeResultStore()

    reply = asyncio.run(
        result_policy.create_result(store, owner_principal(), {"result": 8, "user": OWNER_ID})
    )

    assert reply.status_code == 201
    assert store.results[reply.payload["result"]["id"]].user_id == OWNER_ID


def test_update_keeps_fields_that_were_not_supplied() -> None:
    store = FakeResultStore()
    existing = store.add(5, ADMIN_ID)

    reply = asyncio.run(result_policy.update_result(store, admin_principal(), existing.id, {"result": 9}))

    assert reply.status_code == 209
    assert reply.payload["result"]["result"] == 9
    assert reply.payload["result"]["user"]["id"] == ADMIN_ID


def test_update_with_null_fields_changes_nothing() -> None:
    store = FakeResultStore()
    existing = store.add(5, OWNER_ID)

    reply = asyncio.run(
        result_policy.update_result(store, owner_principal(), existing.id, {"result": None, "user": None})
    )

    assert reply.status_code == 209
    assert reply.payload["result"]["result"] == 5
    assert reply.payload["result"]["user"]["id"] == OWNER_ID


def test_admin_reassigns_owner() -> None:
    store = FakeResultStore()
    existing = store.add(5, OWNER_ID)

    reply = asyncio.run(
        result_policy.update_result(store, admin_principal(), existing.id, {"user": OTHER_ID})
    )

    assert reply.status_code == 209
    assert reply.payload["result"]["user"]["id"] == OTHER_ID
    assert store.results[existing.id].user_id == OTHER_ID


def test_update_locks_the_target_row() -> None:
    store = FakeResultStore()
    existing = store.add(5, OWNER_ID)

    asyncio.run(result_policy.update_result(store, owner_principal(), existing.id, {"result": 1}))

    assert store.locked_ids == [existing.id]


def test_update_to_unknown_user_is_bad_request() -> None:
    store = FakeResultStore()
    existing = store.add(5, OWNER_ID)

    reply = asyncio.run(result_policy.update_result(store, admin_principal(), existing.id, {"user": 99}))

    assert reply.status_code == 400
    assert store.results[existing.id].user_id == OWNER_ID


def test_user_cannot_hand_result_to_someone_else() -> None:
    store = FakeResultStore()
    existing = store.add(5, OWNER_ID)

    reply = asyncio.run(
        result_policy.update_result(store, owner_principal(), existing.id, {"user": OTHER_ID})
    )

    assert reply.status_code == 400
    assert store.results[existing.id].user_id == OWNER_ID


def test_user_update_of_foreign_result_is_bad_request() -> None:
    store = FakeResultStore()
    foreign = store.add(5, OTHER_ID)

    reply = asyncio.run(result_policy.update_result(store, owner_principal(), foreign.id, {"result": 1}))

    assert reply.status_code == 400
    assert store.results[foreign.id].result == 5


def test_update_of_missing_result_is_bad_request() -> None:
    store = FakeResultStore()

    reply = asyncio.run(result_policy.update_result(store, owner_principal(), 42, {"result": 1}))

    assert reply.status_code == 400


def test_update_with_wrong_field_type_is_unprocessable() -> None:
    store = FakeResultStore()
    existing = store.add(5, OWNER_ID)

    reply = asyncio.run(
        result_policy.update_result(store, owner_principal(), existing.id, {"result": "lots"})
    )

    assert reply.status_code == 422


@pytest.mark.parametrize(
    "patch",
    [
        {"user": "2"},
        {"user": True},
        {"result": True},
        {"result": "9"},
        {"result": 2**31},
        {"user": 2**40},
    ],
)
def test_update_rejects_coercible_and_out_of_range_values(patch) -> None:
    store = FakeResultStore()
    existing = store.add(5, OWNER_ID)

    reply = asyncio.run(result_policy.update_result(store, owner_principal(), existing.id, patch))

    assert reply.status_code == 422
    assert store.results[existing.id].result == 5
    assert store.results[existing.id].user_id == OWNER_ID


def test_update_accepts_int4_boundaries() -> None:
    store = FakeResultStore()
    existing = store.add(5, OWNER_ID)

    low = asyncio.run(
        result_policy.update_result(store, owner_principal(), existing.id, {"result": -(2**31)})
    )
    high = asyncio.run(
        result_policy.update_result(store, owner_principal(), existing.id, {"result": 2**31 - 1})
    )

    assert low.status_code == 209
    assert high.status_code == 209
    assert store.results[existing.id].result == 2**31 - 1


def test_delete_removes_result_and_repeat_is_not_found() -> None:
    store = FakeResultStore()
    existing = store.add(5, OWNER_ID)

    first = asyncio.run(result_policy.delete_result(store, owner_principal(), existing.id))
    second = asyncio.run(result_policy.delete_result(store, owner_principal(), existing.id))

    assert first.status_code == 204
    assert first.payload is None
    assert second.status_code == 404
    assert store.results == {}


def test_user_cannot_delete_foreign_result() -> None:
    store = FakeResultStore()
    foreign = store.add(5, OTHER_ID)

    reply = asyncio.run(result_policy.delete_result(store, owner_principal(), foreign.id))

    assert reply.status_code == 404
    assert foreign.id in store.results


def test_allowed_methods_for_collection_and_item() -> None:
    assert result_policy.allowed_methods(0) == ["GET", "POST"]
    assert result_policy.allowed_methods(12) == ["GET", "PUT", "DELETE"]
