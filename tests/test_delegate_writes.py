import pytest

from conftest import run
from marketplace.models.proposal import ProposalStatus
from marketplace.orm.errors import (
    ForeignKeyConstraintError, RecordNotFoundError, UniqueConstraintError, ValidationError,
)


def test_create_rejects_unknown_and_missing_fields(client):
    with pytest.raises(ValidationError):
        run(client.user.create(data={"name": "A", "email": "a@example.com"}))
    with pytest.raises(ValidationError):
        run(client.user.create(data={"name": "A", "email": "a@example.com", "password": "x", "age": 3}))


def test_unique_violation_maps_to_p2002(client, seed):
    with pytest.raises(UniqueConstraintError) as exc:
        run(client.user.create(data={"name": "A2", "email": "alice@example.com", "password": "x"}))
    assert exc.value.code == "P2002"
    assert "email" in exc.value.meta["target"]


def test_foreign_key_violation_maps_to_p2003(client):
    with pytest.raises(ForeignKeyConstraintError) as exc:
        run(
            client.service.create(
                data={
                    "freelancer_id": "missing",
                    "title": "t",
                    "description": "d",
                    "category": "c",
                    "pricing_type": "fixed",
                    "price": 10.0,
                    "delivery_days": 3,
                }
            )
        )
    assert exc.value.code == "P2003"


def test_missing_required_relation(client):
    with pytest.raises(ValidationError):
        run(
            client.service.create(
                data={
                    "title": "t",
                    "description": "d",
                    "category": "c",
                    "pricing_type": "fixed",
                    "price": 10.0,
                    "delivery_days": 3,
                }
            )
        )


def test_nested_create_connect_and_connect_or_create(client, seed):
    async def scenario():
        created = await client.service.create(
            data={
                "freelancer": {"connect": {"email": "bob@example.com"}},
                "title": "Logo design",
                "description": "d",
                "category": "design",
                "pricing_type": "fixed",
                "price": 80.0,
                "delivery_days": 5,
            },
            include={"freelancer": {"select": {"name": True}}},
        )
        user = await client.user.create(
            data={
                "name": "Erin",
                "email": "erin@example.com",
                "password": "x",
                "role": "freelancer",
                "services": {
                    "create": [
                        {"title": "A", "description": "d", "category": "c", "pricing_type": "hourly",
                         "price": 30.0, "delivery_days": 1},
                        {"title": "B", "description": "d", "category": "c", "pricing_type": "fixed",
                         "price": 60.0, "delivery_days": 2},
                    ]
                },
            },
            include={"services": {"order_by": {"title": "asc"}}},
        )
        linked = await client.project.create(
            data={
                "client": {
                    "connect_or_create": {
                        "where": {"email": "frank@example.com"},
                        "create": {"name": "Frank", "email": "frank@example.com", "password": "x"},
                    }
                },
                "title": "New",
                "description": "d",
                "category": "c",
                "budget_min": 1.0,
                "budget_max": 2.0,
                "deadline": "2030-01-01T00:00:00",
            },
            include={"client": True},
        )
        return created, user, linked

    created, user, linked = run(scenario())
    assert created["freelancer"] == {"name": "Bob"}
    assert created["freelancer_id"] == seed["bob"]["id"]
    assert [s["title"] for s in user["services"]] == ["A", "B"]
    assert all(s["freelancer_id"] == user["id"] for s in user["services"])
    assert linked["client"]["name"] == "Frank"


def test_nested_connect_missing_record(client, seed):
    with pytest.raises(RecordNotFoundError):
        run(
            client.service.create(
                data={
                    "freelancer": {"connect": {"id": "missing"}},
                    "title": "t",
                    "description": "d",
                    "category": "c",
                    "pricing_type": "fixed",
                    "price": 10.0,
                    "delivery_days": 3,
                }
            )
        )


def test_failed_nested_write_rolls_back(client, seed):
    with pytest.raises(ValidationError):
        run(
            client.user.create(
                data={
                    "name": "Gina",
                    "email": "gina@example.com",
                    "password": "x",
                    "services": {"create": [{"title": "missing fields"}]},
                }
            )
        )
    assert run(client.user.find_unique(where={"email": "gina@example.com"})) is None


def test_create_many(client, seed):
    async def scenario():
        payload = await client.user.create_many(
            data=[
                {"name": "U1", "email": "u1@example.com", "password": "x"},
                {"name": "U2", "email": "u2@example.com", "password": "x", "bio": "hi"},
            ]
        )
        skipped = await client.user.create_many(
            data=[
                {"id": seed["alice"]["id"], "name": "Dup", "email": "dup@example.com", "password": "x"},
                {"name": "U3", "email": "u3@example.com", "password": "x"},
            ],
            skip_duplicates=True,
        )
        returned = await client.user.create_many_and_return(
            data=[{"name": "U4", "email": "u4@example.com", "password": "x"}],
            select={"name": True},
        )
        return payload, skipped, returned, await client.user.count()

    payload, skipped, returned, total = run(scenario())
    assert payload.count == 2
    assert skipped.count == 1
    assert returned == [{"name": "U4"}]
    assert total == 6


def test_create_many_rejects_nested_writes(client):
    with pytest.raises(ValidationError):
        run(
            client.user.create_many(
                data=[{"name": "A", "email": "a@example.com", "password": "x", "services": {"create": []}}]
            )
        )


def test_update_with_atomic_operations(client, seed):
    async def scenario():
        service = await client.service.create(
            data={
                "freelancer_id": seed["bob"]["id"],
                "title": "t",
                "description": "d",
                "category": "c",
                "pricing_type": "fixed",
                "price": 100.0,
                "delivery_days": 4,
            }
        )
        updated = await client.service.update(
            where={"id": service["id"]},
            data={
                "price": {"multiply": 1.5},
                "delivery_days": {"increment": 2},
                "total_reviews": {"set": 3},
                "title": "renamed",
            },
        )
        halved = await client.service.update(
            where={"id": service["id"]}, data={"price": {"divide": 3}, "delivery_days": {"decrement": 1}}
        )
        return updated, halved

    updated, halved = run(scenario())
    assert updated["price"] == 150.0
    assert updated["delivery_days"] == 6
    assert updated["total_reviews"] == 3
    assert updated["title"] == "renamed"
    assert halved["price"] == 50.0
    assert halved["delivery_days"] == 5


def test_divide_on_int_field_truncates(client, seed):
    async def scenario():
        service = await client.service.create(
            data={
                "freelancer_id": seed["bob"]["id"],
                "title": "t",
                "description": "d",
                "category": "c",
                "pricing_type": "fixed",
                "price": 7.0,
                "delivery_days": 7,
            }
        )
        return await client.service.update(
            where={"id": service["id"]},
            data={"delivery_days": {"divide": 2}, "price": {"divide": 2}},
        )

    updated = run(scenario())
    # Int 欄位做整數除法，Float 欄位不受影響
    assert updated["delivery_days"] == 3
    assert isinstance(updated["delivery_days"], int)
    assert updated["price"] == 3.5


def test_update_missing_record_raises_p2025(client):
    with pytest.raises(RecordNotFoundError) as exc:
        run(client.user.update(where={"id": "missing"}, data={"name": "x"}))
    assert exc.value.code == "P2025"


def test_nested_update_of_to_one_and_to_many(client, seed):
    async def scenario():
        proposal = await client.proposal.update(
            where={"id": seed["proposal"]["id"]},
            data={"project": {"update": {"title": "Renamed via proposal"}}},
            include={"project": True},
        )
        project = await client.project.update(
            where={"id": seed["project"]["id"]},
            data={
                "proposals": {
                    "update_many": {"where": {"status": "pending"}, "data": {"status": "rejected"}},
                }
            },
            include={"proposals": True},
        )
        return proposal, project

    proposal, project = run(scenario())
    assert proposal["project"]["title"] == "Renamed via proposal"
    assert [p["status"] for p in project["proposals"]] == [ProposalStatus.rejected]


def test_update_many_and_return(client, seed):
    async def scenario():
        payload = await client.user.update_many(where={"role": "client"}, data={"bio": "hiring"})
        returned = await client.user.update_many_and_return(
            where={"role": "freelancer"}, data={"hourly_rate": {"increment": 10}}, select={"hourly_rate": True}
        )
        nothing = await client.user.update_many(where={"email": "nobody@example.com"}, data={"bio": "x"})
        return payload, returned, nothing

    payload, returned, nothing = run(scenario())
    assert payload.count == 1
    assert returned == [{"hourly_rate": 50.0}]
    assert nothing.count == 0


def test_update_many_and_return_with_select(client, seed):
    async def scenario():
        returned = await client.user.update_many_and_return(
            where={"email": {"ends_with": "@example.com"}},
            data={"bio": "updated"},
            select={"name": True, "bio": True},
        )
        nothing = await client.user.update_many_and_return(
            where={"email": "nobody@example.com"}, data={"bio": "x"}, select={"name": True}
        )
        return returned, nothing

    returned, nothing = run(scenario())
    assert sorted(returned, key=lambda u: u["name"]) == [
        {"name": "Alice", "bio": "updated"},
        {"name": "Bob", "bio": "updated"},
    ]
    assert nothing == []


def test_upsert(client, seed):
    async def scenario():
        created = await client.user.upsert(
            where={"email": "hank@example.com"},
            create={"name": "Hank", "email": "hank@example.com", "password": "x"},
            update={"name": "never"},
        )
        updated = await client.user.upsert(
            where={"email": "hank@example.com"},
            create={"name": "never", "email": "hank@example.com", "password": "x"},
            update={"name": "Hank II"},
        )
        return created, updated

    created, updated = run(scenario())
    assert created["name"] == "Hank"
    assert updated["name"] == "Hank II"
    assert created["id"] == updated["id"]


def test_delete_returns_previous_record(client, seed):
    async def scenario():
        user = await client.user.create(data={"name": "Ivy", "email": "ivy@example.com", "password": "x"})
        deleted = await client.user.delete(where={"id": user["id"]})
        return deleted, await client.user.find_unique(where={"id": user["id"]})

    deleted, after = run(scenario())
    assert deleted["name"] == "Ivy"
    assert after is None


def test_delete_missing_and_restricted(client, seed):
    with pytest.raises(RecordNotFoundError):
        run(client.user.delete(where={"id": "missing"}))
    # 仍有案件參照這位雇主
    with pytest.raises(ForeignKeyConstraintError):
        run(client.user.delete(where={"id": seed["alice"]["id"]}))


def test_delete_many(client, seed):
    async def scenario():
        await client.user.create_many(
            data=[
                {"name": "Temp1", "email": "t1@example.com", "password": "x"},
                {"name": "Temp2", "email": "t2@example.com", "password": "x"},
            ]
        )
        payload = await client.user.delete_many(where={"name": {"starts_with": "Temp"}})
        return payload, await client.user.count()

    payload, remaining = run(scenario())
    assert payload.count == 2
    assert remaining == 2
