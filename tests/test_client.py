import asyncio
import logging

import pytest

from conftest import run
from marketplace.client import MarketplaceClient, ModelName, UserScalarFieldEnum
from marketplace.orm.errors import (
    InitializationError,
    KnownRequestError,
    UniqueConstraintError,
    ValidationError,
)
from marketplace.orm.raw import join, raw, sql
from marketplace.orm.runtime import BatchPayload


def user_data(name, **extra):
    data = {"name": name, "email": f"{name.lower()}@example.com", "password": "x"}
    data.update(extra)
    return data


def test_client_requires_url_or_engine():
    with pytest.raises(InitializationError):
        MarketplaceClient()


def test_connect_with_unknown_driver():
    db = MarketplaceClient("nosuchdriver://localhost/db")
    with pytest.raises(InitializationError):
        run(db.connect())
    assert db.is_connected is False


def test_connect_and_disconnect(database_url):
    async def scenario():
        async with MarketplaceClient(database_url) as db:
            connected = db.is_connected
        return connected, db.is_connected

    assert run(scenario()) == (True, False)


def test_generated_enums():
    assert ModelName.User.value == "User"
    assert UserScalarFieldEnum.hourly_rate.value == "hourly_rate"


def test_query_is_deferred(client):
    query = client.user.create(data=user_data("Carol"))
    assert query.model == "User"
    assert query.action == "create"
    # 還沒 await，所以不會寫入
    assert run(client.user.count()) == 0

    run(query)
    assert run(client.user.count()) == 1


def test_batch_transaction(client):
    async def scenario():
        results = await client.transaction([
            client.user.create(data=user_data("Carol")),
            client.user.create(data=user_data("Dave")),
            client.user.count(),
        ])
        return results

    carol, dave, total = run(scenario())
    assert carol["name"] == "Carol"
    assert dave["name"] == "Dave"
    assert total == 2


def test_batch_transaction_rolls_back(client):
    async def scenario():
        with pytest.raises(UniqueConstraintError):
            await client.transaction([
                client.user.create(data=user_data("Carol")),
                client.user.create(data=user_data("Carol")),
            ])
        return await client.user.count()

    assert run(scenario()) == 0


def test_batch_transaction_rejects_non_queries(client):
    with pytest.raises(ValidationError):
        run(client.transaction([client.user.count(), "SELECT 1"]))


def test_interactive_transaction(client):
    async def work(tx):
        user = await tx.user.create(data=user_data("Carol"))
        updated = await tx.user.update_many(where={"name": "Carol"}, data={"bio": "hello"})
        # 同一個交易看得到自己的寫入
        seen = await tx.user.find_unique(where={"id": user["id"]})
        return updated, seen

    updated, seen = run(client.transaction(work))
    assert updated == BatchPayload(count=1)
    assert seen["bio"] == "hello"
    assert run(client.user.count()) == 1


def test_interactive_transaction_rolls_back(client):
    class Boom(Exception):
        pass

    async def work(tx):
        await tx.user.create(data=user_data("Carol"))
        raise Boom()

    with pytest.raises(Boom):
        run(client.transaction(work))
    assert run(client.user.count()) == 0


def test_transaction_timeout(client):
    async def slow(tx):
        await tx.user.create(data=user_data("Carol"))
        await asyncio.sleep(1)

    with pytest.raises(KnownRequestError) as info:
        run(client.transaction(slow, timeout=50))
    assert info.value.code == "P2028"
    assert run(client.user.count()) == 0


def test_transaction_isolation_level(client):
    async def work(tx):
        return await tx.user.count()

    assert run(client.transaction(work, isolation_level="Serializable")) == 0
    with pytest.raises(ValidationError):
        run(client.transaction(work, isolation_level="Chaos"))


def test_query_raw(client, seed):
    rows = run(
        client.query_raw(sql("SELECT name, email FROM users WHERE role = {}", "freelancer"))
    )
    assert rows == [{"name": "Bob", "email": "bob@example.com"}]


def test_query_raw_with_join_and_fragments(client, seed):
    query = sql(
        "SELECT name FROM users WHERE email IN ({}) {}",
        join(["alice@example.com", "bob@example.com"]),
        raw("ORDER BY name DESC"),
    )
    assert query.values == ["alice@example.com", "bob@example.com"]
    rows = run(client.query_raw(query))
    assert [row["name"] for row in rows] == ["Bob", "Alice"]


def test_execute_raw(client, seed):
    async def scenario():
        changed = await client.execute_raw(sql("UPDATE users SET bio = {} WHERE role = {}", "hi", "client"))
        alice = await client.user.find_unique(where={"email": "alice@example.com"})
        return changed, alice

    changed, alice = run(scenario())
    assert changed == 1
    assert alice["bio"] == "hi"


def test_raw_unsafe_positional(client, seed):
    async def scenario():
        rows = await client.query_raw_unsafe("SELECT name FROM users WHERE email = $1", "alice@example.com")
        changed = await client.execute_raw_unsafe("UPDATE users SET bio = $1 WHERE name = $2", "x", "Bob")
        return rows, changed

    rows, changed = run(scenario())
    assert rows == [{"name": "Alice"}]
    assert changed == 1


def test_raw_validation(client):
    with pytest.raises(ValidationError):
        client.query_raw("SELECT 1")
    with pytest.raises(ValidationError):
        sql("SELECT {} + {}", 1)
    with pytest.raises(ValidationError):
        join([])
    with pytest.raises(ValidationError):
        client.query_raw_unsafe("SELECT $2", 1)


def test_raw_inside_transaction(client, seed):
    async def work(tx):
        await tx.execute_raw(sql("UPDATE users SET bio = {}", "tx"))
        return await tx.query_raw(sql("SELECT bio FROM users ORDER BY name"))

    rows = run(client.transaction(work))
    assert rows == [{"bio": "tx"}, {"bio": "tx"}]


def test_info_logging(database_url, caplog):
    db = MarketplaceClient(database_url, log=["info"])

    async def scenario():
        await db.push_schema()
        await db.user.count()
        await db.disconnect()

    with caplog.at_level(logging.INFO, logger="marketplace.orm.client"):
        run(scenario())
    assert "User.count" in caplog.text
