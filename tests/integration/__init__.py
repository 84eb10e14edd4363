"""
stratconf — integration test package

File: tests/integration/__init__.py

Purpose
- Test package marker for subprocess and real-file contracts.
"""
