"""Terraform deployment orchestration for infrastructure-as-code roots."""

__version__ = "0.1.0"
