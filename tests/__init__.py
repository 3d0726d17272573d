"""
Scheduling engine test suite
"""
