"""
ModelCut Studio backend: product-shot generation and green-screen
background removal.
"""

__version__ = "1.0.0"
