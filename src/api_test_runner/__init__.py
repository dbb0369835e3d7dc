"""API test synthesis and execution for Spring controllers."""
__version__ = "0.1.0"
