"""Provision, reconcile and tear down S3 + CloudFront storage resources."""

__version__ = "0.1.0"
