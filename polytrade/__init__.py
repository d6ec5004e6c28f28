"""
Polytrade - trading session and order execution core for Polymarket
"""
__version__ = "0.1.0"
