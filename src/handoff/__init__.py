"""
Hand one count-prefixed array of integers from a producer process to a consumer
process over an anonymous pipe, a named FIFO or POSIX shared memory.
"""

__version__ = "0.1.0"
