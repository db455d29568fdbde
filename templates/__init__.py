"""
Conversation Template System.

Templates are executable conversation plans. Each node takes a Session and
returns a new one; composites thread the session through their children.

  Primitives:  System, User, Assistant, Transform, Conditional
  Composites:  Sequence, Loop, Subroutine, Parallel
  Builder:     Agent
"""
from templates.base import Template
from templates.primitives import System, User, Assistant, Transform, Conditional
from templates.composite import Sequence, Loop, Subroutine
from templates.parallel import Parallel
from templates.agent import Agent
