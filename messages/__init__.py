"""
Raw agent-runtime messages and their classification into a chat trace.
"""
