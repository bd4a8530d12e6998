"""
Realtime package.

Contains:
- feed: In-process change feed of message row inserts and updates
- delivery: Client-side reconciliation of the feed against an optimistic list
"""
