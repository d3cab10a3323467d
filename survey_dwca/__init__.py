"""
Survey export to Darwin Core Archive pipeline.
Flattens nested survey records, resolves taxonomy against WoRMS and writes
one Darwin Core Archive per dataset.
"""

__version__ = "0.1.0"
