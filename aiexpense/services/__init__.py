# -*- coding: utf-8 -*-
"""Application services: signup, expense persistence, AI cost accounting."""
