from __future__ import annotations

import asyncio
from unittest.mock import Mock

from dripcourse.repos.registry import new_in_memory_repositories, pg_repositories


def test_pg_bundle_uses_session_savepoints() -> None:
    session = Mock()
    repos = pg_repositories(session)
    assert repos.savepoint == session.begin_nested


def test_in_memory_savepoint_is_a_plain_scope() -> None:
    repos = new_in_memory_repositories()

    async def enter() -> str:
        async with repos.savepoint():
            return "inside"

    assert asyncio.run(enter()) == "inside"
