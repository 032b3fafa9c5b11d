"""
DA-Assistant - conversational session runtime for the loyalty platform.
"""

__version__ = "0.3.0"
