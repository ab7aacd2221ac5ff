"""
Asset loading, compositing and the worker context.
"""
