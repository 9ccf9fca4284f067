"""
Tool Agent - a conversational agent that answers through tool calls.
"""

__version__ = "0.1.0"
