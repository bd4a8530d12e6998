"""
Per-conversation orchestration of the agent graph.

Contains:
- handles: Bounded LRU/TTL cache of execution-state handles
- orchestrator: AgentOrchestrator, the never-raising turn runner
"""
