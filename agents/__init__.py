"""
Agent package for the news research team.

Modules:
- supervisor: Coordinates the team and writes the final answer
- searcher: Tool-calling search agent
- editor: Writes cited markdown reports
- reviewer: Fact-checks reports
"""
