"""
terrarun - Terraform orchestration with retries and state protection.
"""

__version__ = "0.9.0"
