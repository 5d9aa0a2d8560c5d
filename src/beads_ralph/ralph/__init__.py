"""
Execution subsystem ("Ralph").

Components:
- cycle_models.py: ExecutionCycle and its log entries
- prompts.py: system instruction + execution prompt builder
- response_parser.py: modified-file extraction + issue classification
- executor.py: StopToken + ExecutionOrchestrator
"""
