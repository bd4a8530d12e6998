"""
Shared prompt text.
"""
