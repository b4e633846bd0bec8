"""Audecode decode graph: engine, node types, session builder."""

from .builder import Session, build_session
from .engine import EngineState, ProcessingEngine, default_engine_factory
from .nodes import notch_coefficients

__all__ = [
    "Session", "build_session",
    "EngineState", "ProcessingEngine", "default_engine_factory",
    "notch_coefficients",
]
