"""KochoCORS models package.

  - errors.py — ProxyError taxonomy and the plain-text error response builder
"""
