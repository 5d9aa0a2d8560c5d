"""
beads-ralph: dependency-aware task store ("Beads") and execution loop ("Ralph").

Subpackages:
- context: rule/skill document loader + relevance matching
- tasks: task models, repository, TaskStore
- ralph: execution cycles, prompts, response parsing, orchestrator
- llm: chat-completion clients (OpenRouter, offline)
- api: FastAPI application factory
- cli: composition root + console entrypoint
"""

__version__ = "0.1.0"
