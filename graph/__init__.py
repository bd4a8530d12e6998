"""
Graph package for the news research team.

Contains:
- state: Graph state TypedDict definition
- routing: Conditional routing functions
- builder: StateGraph construction and compilation
"""
