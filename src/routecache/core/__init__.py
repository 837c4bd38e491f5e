"""
Core Package.

Contains the report models and the orchestration engine:
- Route Entry model
- Analysis Engine
"""
