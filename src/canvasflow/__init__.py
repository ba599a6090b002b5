"""canvasflow: graph execution scheduler for node-canvas media workflows."""

__version__ = "0.1.0"
