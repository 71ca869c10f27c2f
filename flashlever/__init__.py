"""
Flash-loan leveraged position engine.

Sizes and atomically executes leveraged positions against a lending pool
using a flash loan, a supply/borrow cycle and an external swap.
"""

__version__ = "0.1.0"
