"""
Interactive input — reads one line from a person.

The line reader is a collaborator: ``read_line(prompt) -> str``, sync or
async. By default it is a prompt_toolkit prompt on the controlling terminal.
"""
from __future__ import annotations

import inspect
from typing import TYPE_CHECKING, Awaitable, Callable, Optional, Union

from prompt_toolkit import PromptSession
from prompt_toolkit.patch_stdout import patch_stdout

from config.settings import get_settings
from sources.base import Source

if TYPE_CHECKING:
    from context.session import Session
    from validation.base import Validator

ReadLine = Callable[[str], Union[str, Awaitable[str]]]


class PromptToolkitReader:
    """Terminal line reader; one PromptSession is kept so input history carries across turns."""

    def __init__(self) -> None:
        self._prompt_session: Optional[PromptSession[str]] = None

    async def __call__(self, prompt: str) -> str:
        if self._prompt_session is None:
            self._prompt_session = PromptSession()
        with patch_stdout(raw=True):
            return await self._prompt_session.prompt_async(prompt)


prompt_toolkit_read_line = PromptToolkitReader()


class InteractiveSource(Source):

    def __init__(
        self,
        prompt: Optional[str] = None,
        default: Optional[str] = None,
        read_line: Optional[ReadLine] = None,
        validator: Optional["Validator"] = None,
        max_attempts: int = 1,
        raise_error: bool = True,
    ):
        super().__init__(validator=validator, max_attempts=max_attempts, raise_error=raise_error)
        settings = get_settings().interactive
        self.prompt = prompt if prompt is not None else settings.prompt
        self.default = default if default is not None else (settings.default or None)
        self._read_line = read_line or prompt_toolkit_read_line

    async def _produce(self, session: "Session") -> str:
        line = self._read_line(self.prompt)
        if inspect.isawaitable(line):
            line = await line
        line = line.rstrip("\n")
        if not line.strip() and self.default is not None:
            return self.default
        return line
