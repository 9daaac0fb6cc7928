"""
PromptMaster - an interview-driven prompt engineering assistant.

A guided interview gathers the four pillars of a prompt (Persona, Task,
Context, Format), a chat-completion model drafts it, and the editor offers
AI critique, rewriting and locking of prompt segments on top of it.
"""

__version__ = "0.1.0"
