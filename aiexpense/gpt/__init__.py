# -*- coding: utf-8 -*-
"""AI backend for expense extraction."""
