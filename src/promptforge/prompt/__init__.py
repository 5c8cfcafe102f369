"""Provider request rendering.

Provides ``PromptManager``, a Jinja2-based template engine that renders the
question, enhancement and one-shot instructions sent to the provider.
"""

from promptforge.prompt.manager import PromptManager

__all__ = ["PromptManager"]
