"""Handlers for managed kinds.

The kopf watch handlers live in handlers.controller and register themselves
when that module is imported.
"""
