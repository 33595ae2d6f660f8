"""Folioscope - portfolio price cache, snapshot store and analytics engine."""

__version__ = "0.1.0"
