"""stepwise - plan, execute and resume multi-step function pipelines."""
__version__ = "0.1.0"
