"""
Unit tests for SolveFlow core modules.

This package contains unit tests for:
- extractors: bullets, code blocks, pseudocode, complexity, problem JSON
- config: loading, sanitization and change notifications
- cancellation: tokens and the per-kind controller
- events: run events and the event channel
- types: pipeline state machine and problem model
- stages: stage executors against a mock client
- providers: HTTP adapters and the provider registry
"""
