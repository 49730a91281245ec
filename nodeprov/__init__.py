"""Provisioner model, validation, and fake and AWS-style cloud providers for node creation."""

__version__ = "0.1.0"