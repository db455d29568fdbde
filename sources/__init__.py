"""
Content sources.

A source produces the text (or ModelOutput) for one message. Every source
shares the same validation / retry envelope; see sources.base.
"""
from sources.base import Source, content_text
from sources.text import StaticSource, RandomSource, ListSource, CallbackSource
from sources.interactive import InteractiveSource, prompt_toolkit_read_line
from sources.llm import LlmSource, CallCounter
