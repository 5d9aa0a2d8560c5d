"""
Task subsystem ("Beads").

Components:
- task_models.py: data structures (Task, TaskStatus, TaskPriority, TaskResult, ...)
- task_repo.py: in-memory repository behind the TaskRepo port
- task_store.py: dependency-aware store + priority selection + unblocking
"""
