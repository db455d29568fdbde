"""
Template contract.

A template is one node of an execution tree: it takes a Session and returns
a new Session. Templates never mutate the session they are given.
"""
from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Optional

from config.settings import get_settings
from context.session import Session


class Template(ABC):

    async def execute(self, session: Optional[Session] = None) -> Session:
        """Run this node. With no session, start from an empty one."""
        if session is None:
            session = Session.create(print=get_settings().print_messages)
        return await self._run(session)

    @abstractmethod
    async def _run(self, session: Session) -> Session:
        ...

    def __repr__(self) -> str:
        return f"{type(self).__name__}()"
