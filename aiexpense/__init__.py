# -*- coding: utf-8 -*-
"""
AI Expense Bot

Multi-channel expense bookkeeping: chat messages in, parsed and stored
expenses out, confirmations delivered back through the originating channel.
"""

__version__ = "1.0.0"
