"""
GSSMediator Test Suite

Test organization:
- unit/: Unit tests for individual modules, run against an in-memory engine
- property/: Property-based tests using Hypothesis
"""
