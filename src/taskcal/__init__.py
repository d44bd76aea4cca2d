# src/taskcal/__init__.py

"""Personal task and calendar planner core."""

__version__ = "0.1.0"
