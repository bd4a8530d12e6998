"""
Services package.

Contains:
- chat_db: Persistence bridge for conversations, messages and usage
- processing: Background processing of inbound user messages
"""
