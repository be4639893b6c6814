import unittest

from docgraph.db.repositories.postgres.links import PostgresReferenceRepository, PostgresTagRepository
from docgraph.models import Reference


class _FakeTransaction:
    def __init__(self, events: list) -> None:
        self.events = events

    async def __aenter__(self):
        self.events.append(("begin",))
        return self

    async def __aexit__(self, exc_type, exc, tb):
        self.events.append(("rollback",) if exc_type else ("commit",))
        return False


class _FakeConnection:
    def __init__(self, events: list, fail_executemany: bool = False) -> None:
        self.events = events
        self.fail_executemany = fail_executemany

    def transaction(self):
        return _FakeTransaction(self.events)

    async def execute(self, query, *args):
        self.events.append(("execute", query.split()[0], args))

    async def executemany(self, query, rows):
        if self.fail_executemany:
            raise RuntimeError("insert failed")
        self.events.append(("executemany", query.split()[0], list(rows)))


class _FakeAcquire:
    def __init__(self, conn: _FakeConnection) -> None:
        self.conn = conn

    async def __aenter__(self):
        return self.conn

    async def __aexit__(self, exc_type, exc, tb):
        return False


class _FakePool:
    """Pool stand-in; statements outside ``acquire()`` are recorded as ``pool``."""

    def __init__(self, fail_executemany: bool = False) -> None:
        self.events: list = []
        self.conn = _FakeConnection(self.events, fail_executemany)

    def acquire(self):
        return _FakeAcquire(self.conn)

    async def execute(self, query, *args):
        self.events.append(("pool", query.split()[0], args))

    async def fetchrow(self, query, *args):
        return {"id": 7}


class PostgresReferenceRepositoryTests(unittest.IsolatedAsyncioTestCase):
    async def test_replace_all_runs_in_one_transaction(self) -> None:
        pool = _FakePool()
        repo = PostgresReferenceRepository(pool)

        count = await repo.replace_all([Reference(source="a", target="b", type="path", weight=0.3, signals=["path"])])

        self.assertEqual(count, 1)
        self.assertEqual([event[0] for event in pool.events], ["begin", "execute", "executemany", "commit"])
        self.assertEqual(pool.events[1][1], "DELETE")

    async def test_failed_insert_rolls_back_the_delete(self) -> None:
        pool = _FakePool(fail_executemany=True)
        repo = PostgresReferenceRepository(pool)

        with self.assertRaises(RuntimeError):
            await repo.replace_all([Reference(source="a", target="b", type="link", weight=0.5)])

        self.assertEqual([event[0] for event in pool.events], ["begin", "execute", "rollback"])


class PostgresTagRepositoryTests(unittest.IsolatedAsyncioTestCase):
    async def test_replace_entity_tags_swaps_links_in_one_transaction(self) -> None:
        pool = _FakePool()
        repo = PostgresTagRepository(pool)

        tag_ids = await repo.replace_entity_tags("document", "doc-1", ["important", " ", "important"])

        self.assertEqual(tag_ids, [7])
        self.assertEqual([event[0] for event in pool.events], ["begin", "execute", "executemany", "commit"])
        self.assertEqual(pool.events[2][2], [("document", "doc-1", 7)])


if __name__ == "__main__":
    unittest.main()
