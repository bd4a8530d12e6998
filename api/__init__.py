"""
HTTP API package.

Contains:
- main: Application factory
- dependencies: Authentication and access to shared services
- schemas: Request and response models
- routes: Chat, conversation and realtime routers
"""
